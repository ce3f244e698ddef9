"""audiencesync — Pacing for sequential remote calls.

The uploader acquires before every batch; the first acquisition never
waits. Production uses a fixed interval, tests inject the no-op variant.
"""

import asyncio
import time
from typing import Optional


class RateLimiter:
    """Interface: ``await acquire()`` returns once the next call may proceed."""

    async def acquire(self) -> None:
        raise NotImplementedError


class NoopRateLimiter(RateLimiter):
    """Never waits."""

    async def acquire(self) -> None:
        return None


class IntervalRateLimiter(RateLimiter):
    """Guarantees at least ``interval_seconds`` between consecutive acquisitions."""

    def __init__(self, interval_seconds: float):
        self.interval_seconds = max(0.0, float(interval_seconds))
        self._last: Optional[float] = None

    async def acquire(self) -> None:
        now = time.monotonic()
        if self._last is not None:
            wait = self.interval_seconds - (now - self._last)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last = time.monotonic()
