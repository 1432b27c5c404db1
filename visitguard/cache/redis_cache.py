"""
Redis cache tier.

Values are stored as JSON strings with a millisecond expiry.

Key format: {prefix}{category}:{key}
Example: visits:location:203.0.113.7
"""

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import CacheUnavailableError
from ..utils import get_logger
from .base import CacheBackend, CacheCategory

logger = get_logger("cache.redis")


class RedisCache(CacheBackend):
    """Shared cache tier backed by Redis (tier 2)."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "visits:"):
        """
        Initialize Redis cache.

        Args:
            redis_client: Async Redis client
            key_prefix: Prefix for all Redis keys
        """
        self.redis = redis_client
        self.prefix = key_prefix

    def _make_key(self, category: CacheCategory, key: str) -> str:
        return f"{self.prefix}{category.value}:{key}"

    async def get_with_ttl(
        self,
        category: CacheCategory,
        key: str,
    ) -> Optional[tuple[Any, Optional[float]]]:
        redis_key = self._make_key(category, key)
        try:
            pipe = self.redis.pipeline()
            pipe.get(redis_key)
            pipe.pttl(redis_key)
            raw, pttl = await pipe.execute()
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheUnavailableError(
                f"Redis read failed: {e}", details={"key": redis_key}
            ) from e

        if raw is None:
            return None

        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", redis_key)
            return None

        remaining = pttl / 1000 if pttl and pttl > 0 else None
        return value, remaining

    async def set(
        self,
        category: CacheCategory,
        key: str,
        value: Any,
        ttl_seconds: float,
    ) -> None:
        redis_key = self._make_key(category, key)
        try:
            if ttl_seconds <= 0:
                await self.redis.delete(redis_key)
                return
            await self.redis.set(
                redis_key,
                json.dumps(value, default=str),
                px=max(1, int(ttl_seconds * 1000)),
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheUnavailableError(
                f"Redis write failed: {e}", details={"key": redis_key}
            ) from e
