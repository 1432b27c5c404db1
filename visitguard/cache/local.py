"""
Process-local cache tier.

Bounded in-memory map with per-entry expiry. When full, expired entries are
purged first and then the least recently written entries are evicted.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Optional

from .base import CacheBackend, CacheCategory


class LocalCache(CacheBackend):
    """In-memory TTL cache (tier 1)."""

    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_entries: Upper bound on stored entries
            clock: Returns the current time in epoch seconds (injectable for tests)
        """
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get_with_ttl(
        self,
        category: CacheCategory,
        key: str,
    ) -> Optional[tuple[Any, Optional[float]]]:
        entry_key = (category.value, key)
        entry = self._entries.get(entry_key)
        if entry is None:
            return None

        expires_at, value = entry
        remaining = expires_at - self._clock()
        if remaining <= 0:
            del self._entries[entry_key]
            return None
        return value, remaining

    async def set(
        self,
        category: CacheCategory,
        key: str,
        value: Any,
        ttl_seconds: float,
    ) -> None:
        entry_key = (category.value, key)
        if ttl_seconds <= 0:
            self._entries.pop(entry_key, None)
            return

        self._entries[entry_key] = (self._clock() + ttl_seconds, value)
        self._entries.move_to_end(entry_key)
        self._evict()

    def _evict(self) -> None:
        if len(self._entries) <= self.max_entries:
            return

        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for k in expired:
            del self._entries[k]

        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
