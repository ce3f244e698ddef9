"""audiencesync — Pipeline Models.

Audiences, upload outcomes, insight records and metrics snapshots as they
flow between the pipeline components.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────
# AUDIENCES
# ─────────────────────────────────────────────


class AudienceSubtype(str, Enum):
    CUSTOM = "CUSTOM"
    LOOKALIKE = "LOOKALIKE"


class CreatedVia(str, Enum):
    """How an audience ID was obtained."""

    CACHE = "cache"
    RESOLVED = "resolved"  # matched in the remote listing
    CREATED = "created"


class ResolvedAudience(BaseModel):
    id: str
    name: str
    subtype: AudienceSubtype = AudienceSubtype.CUSTOM
    source_audience_id: Optional[str] = None
    created_via: CreatedVia


# ─────────────────────────────────────────────
# UPLOADS
# ─────────────────────────────────────────────


class BatchResult(BaseModel):
    """Per-batch counts returned by the remote users endpoint."""

    index: int
    audience_id: Optional[str] = None
    received: int = 0
    invalid: int = 0


class UploadOutcome(BaseModel):
    """Aggregate of one upload run.

    When ``failed_batch`` is set, the totals cover only the batches that
    went through before the failure; which identifiers landed is unknown.
    """

    total_received: int = 0
    total_invalid: int = 0
    batches_total: int = 0
    batches_sent: int = 0
    failed_batch: Optional[int] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.failed_batch is None


# ─────────────────────────────────────────────
# INSIGHTS
# ─────────────────────────────────────────────


InsightLevel = Literal["account", "campaign", "adset", "ad"]


class TimeRange(BaseModel):
    since: str
    until: str


class InsightsQuery(BaseModel):
    """Parameters for one insights collection."""

    level: InsightLevel = "campaign"
    fields: List[str] = []
    object_ids: Optional[List[str]] = None
    date_preset: Optional[str] = None
    time_range: Optional[TimeRange] = None
    statuses: Optional[List[str]] = None


class InsightRecord(BaseModel):
    """One flattened report row; ``metrics`` holds every non-identity column."""

    id: str = ""
    name: str = ""
    date_start: str = ""
    date_stop: str = ""
    metrics: Dict[str, Any] = {}


class InsightsResult(BaseModel):
    records: List[InsightRecord] = []
    pages: int = 0
    truncated: bool = False


# ─────────────────────────────────────────────
# METRICS
# ─────────────────────────────────────────────


class MetricsSummary(BaseModel):
    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: int = 0
    avg_ctr: float = 0.0
    avg_cpc: float = 0.0
    avg_cpm: float = 0.0
    avg_cpa: float = 0.0


class MetricsSnapshot(BaseModel):
    """Latest collected metrics. Overwritten wholesale on each collection."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    records: List[InsightRecord] = []
    summary: MetricsSummary = MetricsSummary()
    truncated: bool = False


# ─────────────────────────────────────────────
# ORCHESTRATOR BOUNDARY
# ─────────────────────────────────────────────


class PipelineResult(BaseModel):
    """Structured result every pipeline entry point returns."""

    success: bool
    message: str
    data: Optional[Any] = None
