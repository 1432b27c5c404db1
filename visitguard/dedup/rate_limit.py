"""
Per-IP rate limiting.

Fixed one-minute windows counted in Redis with INCR + EXPIRE in one
pipeline, so every API process shares the budget. Falls back to
process-local counters while Redis is unreachable.

Key format: {prefix}rate_limit:{ip}:{window}
"""

import asyncio
import time
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..cache import CacheCategory
from ..config import settings
from ..errors import RateLimitExceededError
from ..metrics import metrics
from ..utils import get_logger

logger = get_logger("dedup.rate_limit")

WINDOW_SECONDS = 60
MAX_LOCAL_COUNTERS = 10000


class RateLimiter:
    """Fixed-window request counter per client IP."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        limit_per_minute: Optional[int] = None,
        key_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.limit = limit_per_minute or settings.rate_limit_per_minute
        self.prefix = key_prefix if key_prefix is not None else settings.redis_key_prefix
        self._clock = clock
        self._local: dict[str, tuple[int, int]] = {}
        self._redis_failing = False

    async def hit(self, ip: str) -> int:
        """Count one request and return the count for the current window."""
        window = int(self._clock() // WINDOW_SECONDS)

        if self.redis is not None:
            key = f"{self.prefix}{CacheCategory.RATE_LIMIT.value}:{ip}:{window}"
            try:
                pipe = self.redis.pipeline()
                pipe.incr(key)
                pipe.expire(key, WINDOW_SECONDS * 2)
                count, _ = await pipe.execute()
                if self._redis_failing:
                    logger.info("Rate limiter back on Redis")
                    self._redis_failing = False
                return int(count)
            except (RedisError, OSError, asyncio.TimeoutError) as e:
                if not self._redis_failing:
                    logger.warning("Rate limiter falling back to local counters: %s", e)
                    self._redis_failing = True

        return self._hit_local(ip, window)

    async def check(self, ip: str) -> None:
        """Count a request; raise RateLimitExceededError over the limit."""
        count = await self.hit(ip)
        if count > self.limit:
            metrics.rate_limited_total.inc()
            raise RateLimitExceededError(ip, self.limit)

    def _hit_local(self, ip: str, window: int) -> int:
        current_window, count = self._local.get(ip, (window, 0))
        if current_window != window:
            count = 0
        count += 1
        self._local[ip] = (window, count)

        if len(self._local) > MAX_LOCAL_COUNTERS:
            self._local = {k: v for k, v in self._local.items() if v[0] == window}
        return count
