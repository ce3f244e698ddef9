"""audiencesync — Insights Collector.

Builds one insights query, follows the ``paging.next`` cursor until the
remote stops returning one, and flattens rows into ``InsightRecord``s.

Reporting prefers partial data over none: if a follow-up page fails, the
walk stops and the records gathered so far are returned with
``truncated=True``. A failure on the first page raises.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from audiencesync.connectors.meta.client import MetaAPIError
from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import (
    InsightRecord,
    InsightsQuery,
    InsightsResult,
)

logger = get_logger("analyzer.insights")

DEFAULT_INSIGHT_FIELDS = [
    "campaign_name",
    "impressions",
    "clicks",
    "spend",
    "reach",
    "cpm",
    "cpc",
    "ctr",
    "unique_clicks",
    "frequency",
    "actions",
    "action_values",
    "cost_per_action_type",
]

IDENTITY_COLUMNS = {
    "campaign_id",
    "campaign_name",
    "adset_id",
    "adset_name",
    "ad_id",
    "ad_name",
    "date_start",
    "date_stop",
}

# Filter field used for an object-ID restriction at each reporting level
ID_FILTER_FIELDS = {
    "campaign": "campaign.id",
    "adset": "adset.id",
    "ad": "ad.id",
}


def build_params(query: InsightsQuery) -> Dict[str, Any]:
    """Translate an ``InsightsQuery`` into Graph API query parameters."""
    params: Dict[str, Any] = {"level": query.level}
    fields = query.fields or DEFAULT_INSIGHT_FIELDS
    params["fields"] = ",".join(fields)

    if query.date_preset:
        params["date_preset"] = query.date_preset
    elif query.time_range:
        params["time_range"] = json.dumps(
            {"since": query.time_range.since, "until": query.time_range.until}
        )

    filtering: List[Dict[str, Any]] = []
    if query.object_ids and query.level in ID_FILTER_FIELDS:
        filtering.append(
            {
                "field": ID_FILTER_FIELDS[query.level],
                "operator": "IN",
                "value": list(query.object_ids),
            }
        )
    if query.statuses:
        filtering.append(
            {"field": "effective_status", "operator": "IN", "value": list(query.statuses)}
        )
    if filtering:
        params["filtering"] = json.dumps(filtering)

    return params


def flatten_insights(rows: Iterable[Dict[str, Any]]) -> List[InsightRecord]:
    """Turn raw insight rows into uniform report records."""
    records: List[InsightRecord] = []
    for row in rows:
        records.append(
            InsightRecord(
                id=row.get("campaign_id") or row.get("adset_id") or row.get("ad_id") or "",
                name=row.get("campaign_name")
                or row.get("adset_name")
                or row.get("ad_name")
                or "",
                date_start=row.get("date_start") or "",
                date_stop=row.get("date_stop") or "",
                metrics={k: v for k, v in row.items() if k not in IDENTITY_COLUMNS},
            )
        )
    return records


class InsightsCollector:
    def __init__(self, endpoints: MetaEndpoints, max_pages: Optional[int] = None):
        self.endpoints = endpoints
        self.max_pages = max_pages

    async def fetch_rows(self, query: InsightsQuery) -> tuple[List[Dict[str, Any]], int, bool]:
        """Walk every page. Returns ``(rows, pages, truncated)``."""
        params = build_params(query)
        page = await self.endpoints.get_insights_page(params)
        rows = page.rows()
        pages = 1
        truncated = False
        next_url = page.next_url

        while next_url:
            if self.max_pages is not None and pages >= self.max_pages:
                logger.warning(f"Stopping insights walk at page limit {self.max_pages}")
                truncated = True
                break
            try:
                page = await self.endpoints.get_insights_page(params, next_url=next_url)
            except MetaAPIError as e:
                logger.error(
                    f"Insights page {pages + 1} failed, keeping {len(rows)} records: {e}",
                    extra={"status_code": e.status_code},
                )
                truncated = True
                break
            rows.extend(page.rows())
            pages += 1
            next_url = page.next_url
            logger.info(f"Added page {pages} of insights. Total: {len(rows)}")

        return rows, pages, truncated

    async def collect(self, query: InsightsQuery) -> InsightsResult:
        rows, pages, truncated = await self.fetch_rows(query)
        records = flatten_insights(rows)
        logger.info(
            f"Collected {len(records)} {query.level} insight records over {pages} page(s)"
            + (" (truncated)" if truncated else "")
        )
        return InsightsResult(records=records, pages=pages, truncated=truncated)
