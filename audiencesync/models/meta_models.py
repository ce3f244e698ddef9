"""audiencesync — Meta API Response Models.

One model per endpoint shape, validated at the connector boundary.
Unknown fields are ignored except where the row is genuinely open-ended
(insight rows keep every column).
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class Paging(BaseModel):
    """Pagination link attached to listing responses."""

    next: Optional[str] = None


class CustomAudience(BaseModel):
    id: str
    name: str = ""
    subtype: Optional[str] = None
    description: Optional[str] = None


class CustomAudienceListResponse(BaseModel):
    data: List[CustomAudience] = []
    paging: Optional[Paging] = None


class Campaign(BaseModel):
    id: str
    name: str = ""
    status: str = ""


class CampaignListResponse(BaseModel):
    data: List[Campaign] = []
    paging: Optional[Paging] = None


class CreateResponse(BaseModel):
    """Returned by audience creation (custom and lookalike)."""

    id: Optional[str] = None


class UsersUploadResponse(BaseModel):
    """Returned by ``POST /<audience_id>/users``."""

    audience_id: Optional[str] = None
    session_id: Optional[str] = None
    num_received: int = 0
    num_invalid_entries: int = 0


class InsightRow(BaseModel):
    """Raw insight row. Metric columns vary with the requested fields."""

    model_config = ConfigDict(extra="allow")

    date_start: str = ""
    date_stop: str = ""


class InsightsPage(BaseModel):
    data: List[InsightRow] = []
    paging: Optional[Paging] = None

    @property
    def next_url(self) -> Optional[str]:
        return self.paging.next if self.paging else None

    def rows(self) -> List[Dict[str, Any]]:
        return [row.model_dump() for row in self.data]
