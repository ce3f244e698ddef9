"""audiencesync — Pipeline Context.

Everything a pipeline run needs, passed explicitly: settings, the Meta
client, and the resource cache.
"""

from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.engine import Engine

from audiencesync.config import Settings
from audiencesync.connectors.meta.client import MetaClient
from audiencesync.core.errors import MissingCredentialsError
from audiencesync.core.rate_limit import IntervalRateLimiter, RateLimiter
from audiencesync.storage.kv_store import SQLModelKVStore
from audiencesync.storage.resource_cache import ResourceCache


@dataclass
class PipelineContext:
    settings: Settings
    client: MetaClient
    cache: ResourceCache
    rate_limiter_factory: Callable[[], RateLimiter] | None = field(default=None)

    @property
    def account_ref(self) -> str:
        return self.client.ad_account_id

    def new_rate_limiter(self) -> RateLimiter:
        """Fresh limiter per upload run, so the first batch never waits."""
        if self.rate_limiter_factory is not None:
            return self.rate_limiter_factory()
        return IntervalRateLimiter(self.settings.upload_pacing_seconds)

    async def close(self) -> None:
        await self.client.close()


def build_context(settings: Settings, engine: Engine) -> PipelineContext:
    """Build a context from configuration. Raises if credentials are missing."""
    if not settings.has_meta_credentials:
        raise MissingCredentialsError("Missing Meta API credentials configuration.")
    client = MetaClient(
        access_token=settings.meta_access_token,
        ad_account_id=settings.meta_ad_account_id,
        base_url=settings.meta_base_url,
        api_version=settings.meta_api_version,
    )
    return PipelineContext(
        settings=settings,
        client=client,
        cache=ResourceCache(SQLModelKVStore(engine)),
    )
