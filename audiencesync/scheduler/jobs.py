"""audiencesync — Scheduler Jobs.

APScheduler daily job: sync the phone audience, then derive its lookalike.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from audiencesync.config import settings
from audiencesync.core.errors import MissingCredentialsError
from audiencesync.core.logging import get_logger
from audiencesync.database import engine
from audiencesync.models.pipeline_models import PipelineResult
from audiencesync.pipeline.context import build_context
from audiencesync.pipeline.orchestrator import Orchestrator

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def scheduled_sync_job() -> PipelineResult:
    """Run sync → lookalike. Never raises into the scheduler."""
    logger.info("Scheduled audience sync starting...")
    try:
        ctx = build_context(settings, engine)
    except MissingCredentialsError as e:
        logger.error(f"Scheduled sync skipped: {e}")
        return PipelineResult(success=False, message=str(e))

    try:
        result = await Orchestrator(ctx).run_scheduled()
    finally:
        await ctx.close()

    if result.success:
        logger.info(f"Scheduled run complete: {result.message}")
    else:
        logger.error(f"Scheduled run failed: {result.message}")
    return result


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        scheduled_sync_job,
        "cron",
        hour=settings.sync_hour,
        minute=0,
        id="daily_audience_sync",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily audience sync at {settings.sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
