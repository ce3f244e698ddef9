"""audiencesync — Lookalike Deriver.

Cache first, then create. Unlike the Custom Audience resolver there is no
list-and-match step: lookalikes are tracked only through the composite
cache key, so every miss creates.
"""

from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.errors import ValidationError
from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import (
    AudienceSubtype,
    CreatedVia,
    ResolvedAudience,
)
from audiencesync.storage.resource_cache import ResourceCache, lookalike_key

logger = get_logger("audiences.lookalike")

MIN_RATIO = 0.01
MAX_RATIO = 0.20


def validate_ratio(ratio: float) -> None:
    if not MIN_RATIO <= ratio <= MAX_RATIO:
        raise ValidationError(
            "Ratio must be between 0.01 and 0.20 (1% to 20% of population)"
        )


class LookalikeDeriver:
    def __init__(self, endpoints: MetaEndpoints, cache: ResourceCache):
        self.endpoints = endpoints
        self.cache = cache

    async def derive(
        self,
        source_audience_id: str,
        name: str,
        country: str,
        ratio: float,
    ) -> ResolvedAudience:
        validate_ratio(ratio)
        key = lookalike_key(name, country, ratio)

        cached = self.cache.get(key)
        if cached:
            logger.info(f"Cache hit for lookalike '{name}'", extra={"audience_id": cached})
            return ResolvedAudience(
                id=cached,
                name=name,
                subtype=AudienceSubtype.LOOKALIKE,
                source_audience_id=source_audience_id,
                created_via=CreatedVia.CACHE,
            )

        logger.info(
            f"Creating lookalike '{name}' ({country}, {ratio}) from {source_audience_id}"
        )
        audience_id = await self.endpoints.create_lookalike_audience(
            name, source_audience_id, country, ratio
        )
        self.cache.put(key, audience_id)
        logger.info(f"Created lookalike '{name}'", extra={"audience_id": audience_id})
        return ResolvedAudience(
            id=audience_id,
            name=name,
            subtype=AudienceSubtype.LOOKALIKE,
            source_audience_id=source_audience_id,
            created_via=CreatedVia.CREATED,
        )
