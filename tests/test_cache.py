"""
Cache Layer Tests

Tests for the local tier, the Redis tier and their tiered composition.
Shared-tier failures are simulated with an in-memory backend that can be
switched off.
"""

import logging
from typing import Any, Optional

import pytest

from visitguard.cache import CacheBackend, CacheCategory, LocalCache, RedisCache, TieredCache
from visitguard.errors import CacheUnavailableError


class FlakySharedCache(CacheBackend):
    """Shared tier stand-in that records writes and can be made unavailable."""

    def __init__(self, clock):
        self.inner = LocalCache(clock=clock)
        self.available = True
        self.reads = 0
        self.writes = 0

    async def get_with_ttl(self, category: CacheCategory, key: str) -> Optional[tuple[Any, Optional[float]]]:
        self.reads += 1
        if not self.available:
            raise CacheUnavailableError("shared tier down")
        return await self.inner.get_with_ttl(category, key)

    async def set(self, category: CacheCategory, key: str, value: Any, ttl_seconds: float) -> None:
        self.writes += 1
        if not self.available:
            raise CacheUnavailableError("shared tier down")
        await self.inner.set(category, key, value, ttl_seconds)


class TestLocalCache:
    """Tests for the process-local tier."""

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, local_cache, clock):
        """Entries are served until their TTL passes, then miss."""
        await local_cache.set(CacheCategory.LOCATION, "8.8.8.8", {"country": "US"}, 60)

        clock.advance(59)
        assert await local_cache.get(CacheCategory.LOCATION, "8.8.8.8") == {"country": "US"}

        clock.advance(2)
        assert await local_cache.get(CacheCategory.LOCATION, "8.8.8.8") is None

    @pytest.mark.asyncio
    async def test_reports_remaining_ttl(self, local_cache, clock):
        await local_cache.set(CacheCategory.THREAT, "k", True, 100)
        clock.advance(40)

        value, remaining = await local_cache.get_with_ttl(CacheCategory.THREAT, "k")
        assert value is True
        assert remaining == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_categories_do_not_collide(self, local_cache):
        await local_cache.set(CacheCategory.LOCATION, "1.1.1.1", "geo", 60)
        await local_cache.set(CacheCategory.THREAT, "1.1.1.1", "threat", 60)

        assert await local_cache.get(CacheCategory.LOCATION, "1.1.1.1") == "geo"
        assert await local_cache.get(CacheCategory.THREAT, "1.1.1.1") == "threat"

    @pytest.mark.asyncio
    async def test_non_positive_ttl_deletes(self, local_cache):
        await local_cache.set(CacheCategory.SESSION, "id:s1", {"a": 1}, 60)
        await local_cache.delete(CacheCategory.SESSION, "id:s1")

        assert await local_cache.get(CacheCategory.SESSION, "id:s1") is None

    @pytest.mark.asyncio
    async def test_eviction_prefers_expired_entries(self, clock):
        """When full, expired entries go before live ones."""
        cache = LocalCache(max_entries=2, clock=clock)
        await cache.set(CacheCategory.LOCATION, "old-live", 1, 1000)
        await cache.set(CacheCategory.LOCATION, "short", 2, 5)
        clock.advance(10)

        await cache.set(CacheCategory.LOCATION, "new", 3, 1000)

        assert len(cache) == 2
        assert await cache.get(CacheCategory.LOCATION, "old-live") == 1
        assert await cache.get(CacheCategory.LOCATION, "new") == 3

    @pytest.mark.asyncio
    async def test_eviction_drops_oldest_when_all_live(self, clock):
        cache = LocalCache(max_entries=2, clock=clock)
        await cache.set(CacheCategory.LOCATION, "a", 1, 1000)
        await cache.set(CacheCategory.LOCATION, "b", 2, 1000)
        await cache.set(CacheCategory.LOCATION, "c", 3, 1000)

        assert await cache.get(CacheCategory.LOCATION, "a") is None
        assert await cache.get(CacheCategory.LOCATION, "b") == 2
        assert await cache.get(CacheCategory.LOCATION, "c") == 3


class TestTieredCache:
    """Tests for the local + shared composition."""

    @pytest.mark.asyncio
    async def test_set_writes_local_immediately_and_shared_in_background(self, local_cache, clock):
        shared = FlakySharedCache(clock)
        cache = TieredCache(local_cache, shared)

        await cache.set(CacheCategory.LOCATION, "8.8.8.8", {"country": "US"}, 300)

        assert await local_cache.get(CacheCategory.LOCATION, "8.8.8.8") == {"country": "US"}
        await cache.drain()
        assert shared.writes == 1
        assert await shared.inner.get(CacheCategory.LOCATION, "8.8.8.8") == {"country": "US"}

    @pytest.mark.asyncio
    async def test_shared_hit_refreshes_local_with_remaining_ttl(self, local_cache, clock):
        """A value written by another process is copied into the local tier."""
        shared = FlakySharedCache(clock)
        cache = TieredCache(local_cache, shared)
        await shared.inner.set(CacheCategory.THREAT, "1.2.3.4", {"is_vpn": True}, 100)
        clock.advance(30)

        assert await cache.get(CacheCategory.THREAT, "1.2.3.4") == {"is_vpn": True}

        _, remaining = await local_cache.get_with_ttl(CacheCategory.THREAT, "1.2.3.4")
        assert remaining == pytest.approx(70)

        # Served locally until the original expiry
        clock.advance(69)
        reads = shared.reads
        assert await cache.get(CacheCategory.THREAT, "1.2.3.4") == {"is_vpn": True}
        assert shared.reads == reads

    @pytest.mark.asyncio
    async def test_shared_failure_degrades_to_local(self, local_cache, clock, caplog):
        """An unreachable shared tier is logged once and never raised."""
        shared = FlakySharedCache(clock)
        shared.available = False
        cache = TieredCache(local_cache, shared, retry_after_seconds=0)

        with caplog.at_level(logging.WARNING, logger="visitguard"):
            assert await cache.get(CacheCategory.LOCATION, "a") is None
            assert await cache.get(CacheCategory.LOCATION, "b") is None
            await cache.set(CacheCategory.LOCATION, "c", 1, 60)
            await cache.drain()

        assert cache.degraded
        warnings = [r for r in caplog.records if "Shared cache unavailable" in r.getMessage()]
        assert len(warnings) == 1
        assert await cache.get(CacheCategory.LOCATION, "c") == 1

    @pytest.mark.asyncio
    async def test_recovers_after_shared_tier_returns(self, local_cache, clock):
        shared = FlakySharedCache(clock)
        shared.available = False
        cache = TieredCache(local_cache, shared, retry_after_seconds=0)
        await cache.get(CacheCategory.LOCATION, "x")
        assert cache.degraded

        shared.available = True
        await cache.get(CacheCategory.LOCATION, "x")

        assert not cache.degraded

    @pytest.mark.asyncio
    async def test_backoff_skips_shared_tier(self, local_cache, clock):
        """While degraded, the shared tier is not retried until the back-off passes."""
        shared = FlakySharedCache(clock)
        shared.available = False
        cache = TieredCache(local_cache, shared, retry_after_seconds=3600)

        await cache.get(CacheCategory.LOCATION, "x")
        await cache.get(CacheCategory.LOCATION, "y")

        assert shared.reads == 1

    @pytest.mark.asyncio
    async def test_local_only_without_shared_tier(self, tiered_cache):
        await tiered_cache.set(CacheCategory.SESSION, "id:s1", {"session_id": "s1"}, 60)

        assert await tiered_cache.get(CacheCategory.SESSION, "id:s1") == {"session_id": "s1"}
        assert not tiered_cache.degraded


@pytest.mark.integration
class TestRedisCache:
    """Tests against a real Redis (skipped when unavailable)."""

    @pytest.mark.asyncio
    async def test_round_trip_with_ttl(self, redis_client):
        cache = RedisCache(redis_client, key_prefix="visits-test:")

        await cache.set(CacheCategory.LOCATION, "8.8.8.8", {"country": "US"}, 60)
        value, remaining = await cache.get_with_ttl(CacheCategory.LOCATION, "8.8.8.8")

        assert value == {"country": "US"}
        assert 0 < remaining <= 60
        assert await redis_client.exists("visits-test:location:8.8.8.8") == 1

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, redis_client):
        cache = RedisCache(redis_client, key_prefix="visits-test:")

        assert await cache.get(CacheCategory.THREAT, "missing") is None
