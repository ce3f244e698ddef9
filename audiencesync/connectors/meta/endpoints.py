"""audiencesync — Meta API Endpoints.

One method per Meta Marketing API resource the pipeline touches. Every
response is validated into its typed model before it leaves this module.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ResponseValidationError

from audiencesync.connectors.meta.client import MetaAPIError, MetaClient
from audiencesync.core.logging import get_logger
from audiencesync.models.meta_models import (
    Campaign,
    CampaignListResponse,
    CreateResponse,
    CustomAudience,
    CustomAudienceListResponse,
    InsightsPage,
    UsersUploadResponse,
)

logger = get_logger("meta.endpoints")

AUDIENCE_FIELDS = "id,name,subtype,description"
CAMPAIGN_FIELDS = "id,name,status"
PHONE_SCHEMA = "PHONE_SHA256"


def _parse(model, payload: Dict[str, Any], what: str):
    try:
        return model.model_validate(payload)
    except ResponseValidationError as e:
        raise MetaAPIError(f"Unexpected {what} response: {e}", body=payload) from e


class MetaEndpoints:
    """Typed access to the Meta resources used by the pipeline."""

    def __init__(self, client: MetaClient):
        self.client = client

    # ── Custom Audiences ──

    async def list_custom_audiences(self) -> List[CustomAudience]:
        """List every Custom Audience in the ad account."""
        url = f"{self.client.account_url}/customaudiences"
        data = await self.client._paginated_get(url, {"fields": AUDIENCE_FIELDS})
        listing = _parse(CustomAudienceListResponse, {"data": data}, "audience listing")
        logger.info(f"Fetched {len(listing.data)} custom audiences")
        return listing.data

    async def create_custom_audience(self, name: str, description: str) -> str:
        """Create a customer-file Custom Audience and return its ID."""
        url = f"{self.client.account_url}/customaudiences"
        payload = {
            "name": name,
            "description": description,
            "subtype": "CUSTOM",
            "customer_file_source": "USER_PROVIDED_ONLY",
        }
        result = _parse(CreateResponse, await self.client.post(url, payload), "create")
        if not result.id:
            raise MetaAPIError("Failed to create Custom Audience: no ID returned")
        return result.id

    async def create_lookalike_audience(
        self,
        name: str,
        source_audience_id: str,
        country: str,
        ratio: float,
    ) -> str:
        """Create a Lookalike Audience seeded from ``source_audience_id``."""
        url = f"{self.client.account_url}/customaudiences"
        payload = {
            "name": name,
            "subtype": "LOOKALIKE",
            "origin_audience_id": source_audience_id,
            "lookalike_spec": json.dumps(
                {"country": country, "ratio": ratio, "type": "custom_audience"}
            ),
        }
        result = _parse(CreateResponse, await self.client.post(url, payload), "create")
        if not result.id:
            raise MetaAPIError("Failed to create Lookalike Audience: no ID returned")
        return result.id

    async def upload_users(
        self,
        audience_id: str,
        hashed_phones: List[str],
        max_attempts: int = 1,
    ) -> UsersUploadResponse:
        """Add one batch of hashed phones to an audience."""
        url = self.client.url(audience_id, "users")
        # Each identifier is its own single-column row
        payload = {
            "schema": [PHONE_SCHEMA],
            "data": [[phone] for phone in hashed_phones],
        }
        raw = await self.client.post(url, payload, max_attempts=max_attempts)
        return _parse(UsersUploadResponse, raw, "users upload")

    # ── Campaigns ──

    async def list_campaigns(self) -> List[Campaign]:
        url = f"{self.client.account_url}/campaigns"
        data = await self.client._paginated_get(
            url, {"fields": CAMPAIGN_FIELDS, "limit": 500}
        )
        listing = _parse(CampaignListResponse, {"data": data}, "campaign listing")
        return listing.data

    # ── Insights ──

    async def get_insights_page(
        self,
        params: Dict[str, Any],
        next_url: Optional[str] = None,
    ) -> InsightsPage:
        """Fetch the first insights page, or the page behind ``next_url``."""
        if next_url:
            raw = await self.client.get(next_url)
        else:
            raw = await self.client.get(f"{self.client.account_url}/insights", params)
        return _parse(InsightsPage, raw, "insights")
