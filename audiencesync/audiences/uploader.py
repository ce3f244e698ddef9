"""audiencesync — Batch Uploader.

Splits hashed phones into API-sized batches and uploads them one after
another. A failed batch stops the run; batches already sent stay on the
remote side (adds are idempotent per hash), so the outcome reports the
partial totals and the failing batch index.
"""

from typing import List, Sequence

from audiencesync.connectors.meta.client import MetaAPIError
from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.errors import ValidationError
from audiencesync.core.logging import get_logger
from audiencesync.core.rate_limit import NoopRateLimiter, RateLimiter
from audiencesync.models.pipeline_models import BatchResult, UploadOutcome

logger = get_logger("audiences.uploader")

MAX_BATCH_SIZE = 10000


def chunk(items: Sequence[str], size: int = MAX_BATCH_SIZE) -> List[List[str]]:
    """Consecutive slices of at most ``size`` elements, order preserved."""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchUploader:
    def __init__(
        self,
        endpoints: MetaEndpoints,
        rate_limiter: RateLimiter | None = None,
        batch_size: int = MAX_BATCH_SIZE,
        max_attempts: int = 1,
    ):
        self.endpoints = endpoints
        self.rate_limiter = rate_limiter or NoopRateLimiter()
        self.batch_size = min(max(1, batch_size), MAX_BATCH_SIZE)
        self.max_attempts = max_attempts

    async def upload(self, audience_id: str, hashed_phones: Sequence[str]) -> UploadOutcome:
        """Upload every hash to ``audience_id``. Empty input is rejected."""
        if not hashed_phones:
            raise ValidationError("No phone numbers provided")

        batches = chunk(hashed_phones, self.batch_size)
        outcome = UploadOutcome(batches_total=len(batches))

        for index, batch in enumerate(batches):
            if len(batches) > 1:
                await self.rate_limiter.acquire()
            logger.info(
                f"Uploading batch {index + 1} of {len(batches)} ({len(batch)} hashes)",
                extra={"audience_id": audience_id, "batch_index": index},
            )
            try:
                resp = await self.endpoints.upload_users(
                    audience_id, batch, max_attempts=self.max_attempts
                )
            except MetaAPIError as e:
                logger.error(
                    f"Batch {index + 1} of {len(batches)} failed: {e}",
                    extra={"audience_id": audience_id, "batch_index": index},
                )
                outcome.failed_batch = index
                outcome.error = str(e)
                outcome.status_code = e.status_code or None
                return outcome

            result = BatchResult(
                index=index,
                audience_id=resp.audience_id,
                received=resp.num_received,
                invalid=resp.num_invalid_entries,
            )
            if not result.audience_id:
                logger.warning(f"Batch {index + 1} response carried no audience_id")
            outcome.total_received += result.received
            outcome.total_invalid += result.invalid
            outcome.batches_sent += 1

        logger.info(
            f"Upload complete: {outcome.total_received} received, "
            f"{outcome.total_invalid} invalid in {outcome.batches_sent} batches",
            extra={"audience_id": audience_id},
        )
        return outcome
