"""
Cache Backend Interface

Every cache in the pipeline is addressed by (category, key). Categories
keep the five kinds of cached data apart so TTLs, metrics and key
namespaces never collide.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional


class CacheCategory(str, Enum):
    """Cached data kinds."""
    LOCATION = "location"
    THREAT = "threat"
    RECENT_VISIT = "recent_visit"
    SESSION = "session"
    RATE_LIMIT = "rate_limit"


class CacheBackend(ABC):
    """
    Async key/value cache with per-entry TTL.

    Values must be JSON-serializable (dicts, lists, strings, numbers) so the
    same payload can live in process memory and in Redis.
    """

    @abstractmethod
    async def get_with_ttl(
        self,
        category: CacheCategory,
        key: str,
    ) -> Optional[tuple[Any, Optional[float]]]:
        """
        Look up an entry.

        Returns:
            (value, remaining_ttl_seconds) or None on miss. The remaining TTL
            is None when the backend cannot tell.
        """

    @abstractmethod
    async def set(
        self,
        category: CacheCategory,
        key: str,
        value: Any,
        ttl_seconds: float,
    ) -> None:
        """Store a value; a non-positive TTL removes the entry instead."""

    async def get(self, category: CacheCategory, key: str) -> Optional[Any]:
        hit = await self.get_with_ttl(category, key)
        return None if hit is None else hit[0]

    async def delete(self, category: CacheCategory, key: str) -> None:
        await self.set(category, key, None, 0)
