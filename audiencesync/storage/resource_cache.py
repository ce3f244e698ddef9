"""audiencesync — Name-Keyed Resource Cache.

Maps human-readable names to remote resource IDs. The cache is an
optimization, never the source of truth: every store failure is logged and
reported as a miss (``get``) or ``False`` (``put``/``delete``).
"""

from typing import Optional

from audiencesync.core.logging import get_logger
from audiencesync.storage.kv_store import KeyValueStore

logger = get_logger("storage.cache")

LAST_METRICS_KEY = "last_metrics"
ACTIVE_CAMPAIGNS_KEY = "active_campaigns"


def audience_key(name: str) -> str:
    return f"audience:{name}"


def lookalike_key(name: str, country: str, ratio: float) -> str:
    return f"lookalike:{name}:{country}:{ratio}"


class ResourceCache:
    """Fail-closed wrapper around a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.error(f"Cache get failed for {key}: {e}")
            return None

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        try:
            self.store.put(key, value, ttl_seconds)
            return True
        except Exception as e:
            logger.error(f"Cache put failed for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self.store.delete(key)
            return True
        except Exception as e:
            logger.error(f"Cache delete failed for {key}: {e}")
            return False
