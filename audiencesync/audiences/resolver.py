"""audiencesync — Custom Audience Resolver.

Guarantees a single logical Custom Audience per name:
  cache hit → remote listing match (case-insensitive) → create.
No retries here: a blind retry of the create call could duplicate the
audience on the remote side.
"""

from typing import Optional

from audiencesync.connectors.meta.endpoints import MetaEndpoints
from audiencesync.core.logging import get_logger
from audiencesync.models.pipeline_models import (
    AudienceSubtype,
    CreatedVia,
    ResolvedAudience,
)
from audiencesync.storage.resource_cache import ResourceCache, audience_key

logger = get_logger("audiences.resolver")


class AudienceResolver:
    """Resolve a Custom Audience name to its remote ID, creating it if needed."""

    def __init__(self, endpoints: MetaEndpoints, cache: ResourceCache):
        self.endpoints = endpoints
        self.cache = cache

    async def find_remote(self, name: str) -> Optional[str]:
        """Return the ID of the first listed audience whose name matches."""
        wanted = name.lower()
        matches = [
            a for a in await self.endpoints.list_custom_audiences()
            if a.name.lower() == wanted
        ]
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} audiences match '{name}' ignoring case; "
                f"using the first listed ({matches[0].id})"
            )
        return matches[0].id if matches else None

    async def resolve_or_create(
        self,
        name: str,
        description: str = "",
        create: bool = True,
    ) -> Optional[ResolvedAudience]:
        """Return the audience for ``name``.

        With ``create=False`` nothing is created and ``None`` is returned
        when neither the cache nor the remote listing knows the name.
        Raises ``MetaAPIError`` on any remote failure.
        """
        key = audience_key(name)

        cached = self.cache.get(key)
        if cached:
            logger.info(f"Cache hit for audience '{name}'", extra={"audience_id": cached})
            return ResolvedAudience(id=cached, name=name, created_via=CreatedVia.CACHE)

        found = await self.find_remote(name)
        if found:
            logger.info(f"Found existing audience '{name}'", extra={"audience_id": found})
            self.cache.put(key, found)
            return ResolvedAudience(id=found, name=name, created_via=CreatedVia.RESOLVED)

        if not create:
            logger.info(f"Audience '{name}' not found remotely")
            return None

        audience_id = await self.endpoints.create_custom_audience(
            name, description or f"Custom audience: {name}"
        )
        logger.info(f"Created audience '{name}'", extra={"audience_id": audience_id})
        self.cache.put(key, audience_id)
        return ResolvedAudience(
            id=audience_id,
            name=name,
            subtype=AudienceSubtype.CUSTOM,
            created_via=CreatedVia.CREATED,
        )
