"""audiencesync — Campaign, Insights & Metrics Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from audiencesync.analyzer.insights import DEFAULT_INSIGHT_FIELDS
from audiencesync.api.dependencies import get_orchestrator, to_response
from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import InsightsQuery
from audiencesync.pipeline.orchestrator import Orchestrator

logger = get_logger("api.metrics")

router = APIRouter(prefix="/api", tags=["Metrics"])


@router.get("/campaigns")
async def list_campaigns(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """List campaigns with their status."""
    return to_response(await orchestrator.list_campaigns())


@router.get("/insights")
async def get_insights(
    level: str = Query("campaign", pattern="^(account|campaign|adset|ad)$"),
    date_preset: str = Query("last_7d"),
    campaign_ids: Optional[str] = Query(None, description="Comma-separated IDs"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Fetch fresh insights, following pagination to the end."""
    object_ids = [i.strip() for i in campaign_ids.split(",") if i.strip()] if campaign_ids else None
    query = InsightsQuery(
        level=level,
        fields=DEFAULT_INSIGHT_FIELDS,
        date_preset=date_preset,
        object_ids=object_ids,
    )
    return to_response(await orchestrator.fetch_insights(query))


@router.post("/metrics/collect")
async def collect_metrics(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Collect insights for active campaigns and store the summary snapshot."""
    return to_response(await orchestrator.collect_metrics())


@router.get("/metrics/latest")
async def latest_metrics(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Return the most recently stored metrics snapshot."""
    return to_response(orchestrator.get_stored_metrics())
