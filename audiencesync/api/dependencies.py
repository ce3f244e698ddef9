"""audiencesync — Shared Route Dependencies."""

from fastapi.responses import JSONResponse

from audiencesync.config import settings
from audiencesync.database import engine
from audiencesync.models.pipeline_models import PipelineResult
from audiencesync.pipeline.context import build_context
from audiencesync.pipeline.orchestrator import Orchestrator


async def get_orchestrator():
    """Yield an orchestrator bound to a fresh pipeline context.

    Raises ``MissingCredentialsError`` (rendered as a fixed 500) before any
    pipeline work when the Meta credentials are not configured.
    """
    ctx = build_context(settings, engine)
    try:
        yield Orchestrator(ctx)
    finally:
        await ctx.close()


def to_response(result: PipelineResult) -> JSONResponse:
    """Map a pipeline result to HTTP: failures become 500 with the same body."""
    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.model_dump(mode="json"),
    )
