"""audiencesync — Pipeline Orchestrator.

Sequences the components into the three flows:
  sync:      hash → resolve audience → upload batches
  lookalike: source ID (cache, else read-only remote lookup) → derive
  metrics:   list campaigns → keep ACTIVE → collect insights → summarize → persist

Every entry point returns a ``PipelineResult`` and never raises. Runs of the
same flow for the same account are mutually exclusive within the process;
an overlapping invocation is turned away instead of racing the
read-then-create window of audience resolution.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from pydantic import ValidationError as SnapshotValidationError

from audiencesync.analyzer.insights import DEFAULT_INSIGHT_FIELDS, InsightsCollector
from audiencesync.analyzer.metrics import summarize
from audiencesync.audiences.hashing import hash_all, normalize_phone
from audiencesync.audiences.lookalike import LookalikeDeriver, validate_ratio
from audiencesync.audiences.phone_source import load_phones
from audiencesync.audiences.resolver import AudienceResolver
from audiencesync.audiences.uploader import BatchUploader
from audiencesync.connectors.meta.client import MetaAPIError
from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.errors import PipelineError
from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import (
    InsightsQuery,
    MetricsSnapshot,
    PipelineResult,
)
from audiencesync.pipeline.context import PipelineContext
from audiencesync.storage.resource_cache import (
    ACTIVE_CAMPAIGNS_KEY,
    LAST_METRICS_KEY,
    audience_key,
)

logger = get_logger("pipeline.orchestrator")

_RUN_LOCKS: Dict[str, asyncio.Lock] = {}


class FlowBusy(Exception):
    """Another run of the same flow for the same account is in progress."""


@asynccontextmanager
async def _exclusive(account: str, flow: str):
    key = f"{account}:{flow}"
    lock = _RUN_LOCKS.setdefault(key, asyncio.Lock())
    if lock.locked():
        raise FlowBusy(f"A {flow} run is already in progress for {account}")
    async with lock:
        yield


def _fail(message: str, data=None) -> PipelineResult:
    return PipelineResult(success=False, message=message, data=data)


def lookalike_name(source_name: str, ratio: float) -> str:
    return f"{source_name} - Lookalike {ratio * 100:g}%"


class Orchestrator:
    def __init__(self, ctx: PipelineContext):
        self.ctx = ctx
        self.settings = ctx.settings
        self.endpoints = MetaEndpoints(ctx.client)
        self.resolver = AudienceResolver(self.endpoints, ctx.cache)
        self.deriver = LookalikeDeriver(self.endpoints, ctx.cache)
        self.collector = InsightsCollector(self.endpoints)

    # ── Sync Flow ──

    async def sync_phone_audience(self, phones: Optional[List[str]] = None) -> PipelineResult:
        """Hash phones, resolve the Custom Audience, upload in batches."""
        flow = "sync"
        try:
            async with _exclusive(self.ctx.account_ref, flow):
                return await self._sync(phones)
        except FlowBusy as e:
            logger.warning(str(e), extra={"flow": flow})
            return _fail(str(e))
        except PipelineError as e:
            logger.error(f"Audience sync failed: {e}", extra={"flow": flow})
            return _fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in audience sync: {e}", extra={"flow": flow})
            return _fail(f"Unexpected error during audience sync: {e}")

    async def _sync(self, phones: Optional[List[str]]) -> PipelineResult:
        name = self.settings.audience_name
        raws = phones if phones is not None else load_phones(self.settings.phone_source_path)

        # Hashing
        usable = [raw for raw in raws if normalize_phone(raw)]
        skipped = len(raws) - len(usable)
        if skipped:
            logger.warning(f"Skipping {skipped} identifiers with no digits", extra={"flow": "sync"})
        if not usable:
            return _fail("No phone numbers provided")
        hashes = hash_all(usable, self.settings.hash_workers)
        logger.info(f"Hashed {len(hashes)} phone numbers", extra={"flow": "sync"})

        # Resolving
        audience = await self.resolver.resolve_or_create(
            name, self.settings.audience_description
        )

        # Uploading
        uploader = BatchUploader(
            self.endpoints,
            rate_limiter=self.ctx.new_rate_limiter(),
            batch_size=self.settings.upload_batch_size,
            max_attempts=self.settings.upload_max_attempts,
        )
        outcome = await uploader.upload(audience.id, hashes)

        data = {
            "audience_id": audience.id,
            "audience_name": audience.name,
            "created_via": audience.created_via.value,
            "hashed": len(hashes),
            "skipped": skipped,
            "upload": {
                **outcome.model_dump(),
                "received": outcome.total_received,
                "invalid": outcome.total_invalid,
            },
        }
        if not outcome.ok:
            return _fail(
                f"Upload failed at batch {outcome.failed_batch + 1} of "
                f"{outcome.batches_total}: {outcome.error}. "
                f"{outcome.batches_sent} batch(es) were already uploaded.",
                data,
            )
        return PipelineResult(
            success=True,
            message=(
                f"Phone audience sync complete. Processed {len(hashes)} numbers "
                f"in {outcome.batches_sent} batch(es)."
            ),
            data=data,
        )

    # ── Lookalike Flow ──

    async def derive_phone_lookalike(
        self,
        source_name: Optional[str] = None,
        country: Optional[str] = None,
        ratio: Optional[float] = None,
    ) -> PipelineResult:
        """Derive the lookalike of a previously synced Custom Audience."""
        flow = "lookalike"
        try:
            async with _exclusive(self.ctx.account_ref, flow):
                return await self._lookalike(
                    source_name or self.settings.audience_name,
                    country or self.settings.lookalike_country,
                    ratio if ratio is not None else self.settings.lookalike_ratio,
                )
        except FlowBusy as e:
            logger.warning(str(e), extra={"flow": flow})
            return _fail(str(e))
        except PipelineError as e:
            logger.error(f"Lookalike derivation failed: {e}", extra={"flow": flow})
            return _fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in lookalike derivation: {e}", extra={"flow": flow})
            return _fail(f"Unexpected error during lookalike derivation: {e}")

    async def _lookalike(self, source_name: str, country: str, ratio: float) -> PipelineResult:
        # Reject a bad ratio before the source lookup touches the remote
        validate_ratio(ratio)
        source_id = self.ctx.cache.get(audience_key(source_name))

        if not source_id:
            logger.warning(
                f"Source audience '{source_name}' not cached; looking it up remotely",
                extra={"flow": "lookalike"},
            )
            try:
                found = await self.resolver.resolve_or_create(source_name, "", create=False)
            except MetaAPIError as e:
                logger.error(f"Remote lookup of '{source_name}' failed: {e}")
                found = None
            if found is None:
                return _fail(
                    f'Source audience "{source_name}" not found. '
                    f"Sync the phone audience first."
                )
            source_id = found.id

        name = lookalike_name(source_name, ratio)
        lookalike = await self.deriver.derive(source_id, name, country, ratio)
        return PipelineResult(
            success=True,
            message=f'Lookalike audience "{name}" is based on "{source_name}"',
            data={
                "audience_id": lookalike.id,
                "name": lookalike.name,
                "source_audience_id": source_id,
                "created_via": lookalike.created_via.value,
                "country": country,
                "ratio": ratio,
            },
        )

    # ── Metrics Flow ──

    async def collect_metrics(self) -> PipelineResult:
        """Collect insights for active campaigns and persist the latest snapshot."""
        flow = "metrics"
        try:
            async with _exclusive(self.ctx.account_ref, flow):
                return await self._metrics()
        except FlowBusy as e:
            logger.warning(str(e), extra={"flow": flow})
            return _fail(str(e))
        except PipelineError as e:
            logger.error(f"Metrics collection failed: {e}", extra={"flow": flow})
            return _fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in metrics collection: {e}", extra={"flow": flow})
            return _fail(f"Unexpected error during metrics collection: {e}")

    async def _metrics(self) -> PipelineResult:
        campaigns = await self.endpoints.list_campaigns()
        active = [c for c in campaigns if c.status == "ACTIVE"]
        if not active:
            return PipelineResult(success=True, message="No active campaigns found.")

        active_ids = [c.id for c in active]
        logger.info(f"Found {len(active_ids)} active campaigns", extra={"flow": "metrics"})
        self.ctx.cache.put(ACTIVE_CAMPAIGNS_KEY, json.dumps(active_ids))

        result = await self.collector.collect(
            InsightsQuery(
                level="campaign",
                object_ids=active_ids,
                fields=DEFAULT_INSIGHT_FIELDS,
                date_preset=self.settings.metrics_date_preset,
            )
        )
        if not result.records:
            return PipelineResult(
                success=True,
                message="No metrics data available for the active campaigns.",
            )

        snapshot = MetricsSnapshot(
            records=result.records,
            summary=summarize(result.records),
            truncated=result.truncated,
        )
        first = result.records[0]
        data = {
            "metrics": snapshot.model_dump(mode="json"),
            "insights_count": len(result.records),
            "date_range": f"{first.date_start} to {first.date_stop}",
            "truncated": result.truncated,
        }

        if not self.ctx.cache.put(LAST_METRICS_KEY, snapshot.model_dump_json()):
            return _fail("Collected metrics but could not persist the snapshot.", data)

        return PipelineResult(
            success=True,
            message=f"Successfully collected metrics for {len(result.records)} campaigns.",
            data=data,
        )

    def get_stored_metrics(self) -> PipelineResult:
        """Read the latest persisted snapshot."""
        raw = self.ctx.cache.get(LAST_METRICS_KEY)
        if not raw:
            return _fail("No metrics data found. Please run metrics collection first.")
        try:
            snapshot = MetricsSnapshot.model_validate_json(raw)
        except SnapshotValidationError as e:
            logger.error(f"Stored metrics snapshot is unreadable: {e}")
            return _fail("Stored metrics snapshot is unreadable.")
        last_updated = snapshot.timestamp.isoformat()
        return PipelineResult(
            success=True,
            message=f"Retrieved metrics last updated at {last_updated}",
            data={"last_updated": last_updated, "metrics": snapshot.model_dump(mode="json")},
        )

    # ── Read-only passthroughs ──

    async def list_campaigns(self) -> PipelineResult:
        try:
            campaigns = await self.endpoints.list_campaigns()
        except MetaAPIError as e:
            return _fail(f"Failed to fetch campaigns: {e}")
        return PipelineResult(
            success=True,
            message=f"Fetched {len(campaigns)} campaigns.",
            data=[c.model_dump() for c in campaigns],
        )

    async def list_audiences(self) -> PipelineResult:
        try:
            audiences = await self.endpoints.list_custom_audiences()
        except MetaAPIError as e:
            return _fail(f"Failed to fetch audiences: {e}")
        return PipelineResult(
            success=True,
            message=f"Fetched {len(audiences)} audiences.",
            data=[
                {
                    "id": a.id,
                    "name": a.name,
                    "type": a.subtype or "Unknown",
                    "description": a.description or "",
                }
                for a in audiences
            ],
        )

    async def fetch_insights(self, query: InsightsQuery) -> PipelineResult:
        try:
            result = await self.collector.collect(query)
        except MetaAPIError as e:
            return _fail(f"Failed to fetch insights: {e}")
        return PipelineResult(
            success=True,
            message=f"Fetched insights for {len(result.records)} items.",
            data={
                "records": [r.model_dump(mode="json") for r in result.records],
                "pages": result.pages,
                "truncated": result.truncated,
            },
        )

    # ── Scheduled Chain ──

    async def run_scheduled(self) -> PipelineResult:
        """Sync, then derive the lookalike only if the sync succeeded."""
        sync = await self.sync_phone_audience()
        logger.info(f"Scheduled sync finished: {sync.message}", extra={"flow": "scheduled"})
        if not sync.success:
            logger.warning(
                "Skipping lookalike derivation due to failed audience sync",
                extra={"flow": "scheduled"},
            )
            return _fail(
                f"Sync failed, lookalike skipped: {sync.message}",
                {"sync": sync.model_dump(), "lookalike": None},
            )

        lookalike = await self.derive_phone_lookalike()
        logger.info(
            f"Scheduled lookalike finished: {lookalike.message}", extra={"flow": "scheduled"}
        )
        return PipelineResult(
            success=lookalike.success,
            message=f"{sync.message} {lookalike.message}",
            data={"sync": sync.model_dump(), "lookalike": lookalike.model_dump()},
        )
