"""audiencesync — Audience API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from audiencesync.api.dependencies import get_orchestrator, to_response
from audiencesync.core.logging import get_logger
from audiencesync.pipeline.orchestrator import Orchestrator

logger = get_logger("api.audiences")

router = APIRouter(prefix="/api", tags=["Audiences"])


# ── Request Models ──


class SyncAudienceRequest(BaseModel):
    """Request body for POST /api/sync-audience."""

    phones: Optional[List[str]] = None
    """Raw phone numbers. Omit to read the configured phone source file."""


class LookalikeRequest(BaseModel):
    """Request body for POST /api/create-lookalike."""

    source_name: Optional[str] = None
    country: Optional[str] = None
    ratio: Optional[float] = None

    model_config = {
        "json_schema_extra": {
            "examples": [{"source_name": "Phone Audience", "country": "RU", "ratio": 0.01}]
        }
    }


# ── Endpoints ──


@router.post("/sync-audience")
async def sync_audience(
    request: Optional[SyncAudienceRequest] = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Hash phone numbers and upload them to the phone Custom Audience."""
    phones = request.phones if request else None
    result = await orchestrator.sync_phone_audience(phones)
    return to_response(result)


@router.post("/create-lookalike")
async def create_lookalike(
    request: Optional[LookalikeRequest] = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Derive (or reuse) the lookalike of the phone Custom Audience."""
    request = request or LookalikeRequest()
    result = await orchestrator.derive_phone_lookalike(
        source_name=request.source_name,
        country=request.country,
        ratio=request.ratio,
    )
    return to_response(result)


@router.get("/audiences")
async def list_audiences(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """List every Custom Audience in the ad account."""
    return to_response(await orchestrator.list_audiences())
