"""
Two-tier cache.

Reads check the process-local tier first, then the shared tier; a shared
hit refreshes the local tier for the entry's remaining lifetime. Writes
land in the local tier immediately and reach the shared tier in the
background, so callers never wait on Redis.

When the shared tier is unreachable the cache keeps working from the local
tier alone and probes the shared tier again after a back-off.
"""

import asyncio
import time
from typing import Any, Callable, Optional

from ..errors import CacheUnavailableError
from ..metrics import metrics
from ..utils import get_logger, fire_and_forget
from .base import CacheBackend, CacheCategory
from .local import LocalCache

logger = get_logger("cache.tiered")

# Local refresh lifetime when the shared tier does not report a TTL
DEFAULT_REFRESH_TTL_SECONDS = 60.0


class TieredCache(CacheBackend):
    """Local tier in front of an optional shared tier."""

    def __init__(
        self,
        local: Optional[LocalCache] = None,
        shared: Optional[CacheBackend] = None,
        retry_after_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            local: Process-local tier (created if omitted)
            shared: Shared tier, usually a RedisCache; None for local-only
            retry_after_seconds: How long to skip the shared tier after a failure
            clock: Monotonic clock for the back-off
        """
        self.local = local or LocalCache()
        self.shared = shared
        self.retry_after_seconds = retry_after_seconds
        self._clock = clock
        self._degraded_until: Optional[float] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def degraded(self) -> bool:
        return self._degraded_until is not None

    def _shared_available(self) -> bool:
        if self.shared is None:
            return False
        if self._degraded_until is None:
            return True
        return self._clock() >= self._degraded_until

    def _mark_degraded(self, error: Exception) -> None:
        if self._degraded_until is None:
            logger.warning("Shared cache unavailable, serving from local tier: %s", error)
            metrics.cache_degraded.set(1)
        self._degraded_until = self._clock() + self.retry_after_seconds

    def _mark_healthy(self) -> None:
        if self._degraded_until is not None:
            logger.info("Shared cache recovered")
            metrics.cache_degraded.set(0)
        self._degraded_until = None

    async def get_with_ttl(
        self,
        category: CacheCategory,
        key: str,
    ) -> Optional[tuple[Any, Optional[float]]]:
        hit = await self.local.get_with_ttl(category, key)
        if hit is not None:
            metrics.cache_lookups.labels(category.value, "local", "hit").inc()
            return hit

        if not self._shared_available():
            metrics.cache_lookups.labels(category.value, "local", "miss").inc()
            return None

        try:
            hit = await self.shared.get_with_ttl(category, key)
        except CacheUnavailableError as e:
            self._mark_degraded(e)
            metrics.cache_lookups.labels(category.value, "shared", "error").inc()
            return None

        self._mark_healthy()
        if hit is None:
            metrics.cache_lookups.labels(category.value, "shared", "miss").inc()
            return None

        metrics.cache_lookups.labels(category.value, "shared", "hit").inc()
        value, remaining = hit
        await self.local.set(
            category,
            key,
            value,
            remaining if remaining is not None else DEFAULT_REFRESH_TTL_SECONDS,
        )
        return hit

    async def set(
        self,
        category: CacheCategory,
        key: str,
        value: Any,
        ttl_seconds: float,
    ) -> None:
        await self.local.set(category, key, value, ttl_seconds)

        if not self._shared_available():
            return

        task = fire_and_forget(
            self._write_shared(category, key, value, ttl_seconds),
            name=f"cache-write:{category.value}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_shared(
        self,
        category: CacheCategory,
        key: str,
        value: Any,
        ttl_seconds: float,
    ) -> None:
        try:
            await self.shared.set(category, key, value, ttl_seconds)
        except CacheUnavailableError as e:
            self._mark_degraded(e)
            return
        self._mark_healthy()

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for background writes to the shared tier."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=timeout)
