"""
Pytest Configuration and Fixtures

Provides shared fixtures for the visit pipeline tests. Everything runs
in-process: a settable clock drives TTLs and windows, providers are stubs
with call counters, and collaborators are the in-memory implementations.
"""

import asyncio
from datetime import datetime, UTC
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import AsyncClient, ASGITransport

from visitguard.api import main as api_main
from visitguard.cache import LocalCache, TieredCache
from visitguard.collaborators import (
    InMemoryNotifier,
    InMemoryVisitStore,
    InMemoryWebsiteDirectory,
)
from visitguard.config import settings
from visitguard.dedup import DedupGate, RateLimiter
from visitguard.identity import IdentityResolver, SessionStore
from visitguard.pipeline import IngestionOrchestrator
from visitguard.resolvers import LocationResolver, ThreatResolver
from visitguard.schemas import (
    AccuracyTier,
    LocationResult,
    ThreatResult,
    VisitEvent,
    WebsiteConfig,
)
from visitguard.utils.tasks import drain_background_tasks

PUBLIC_IP = "81.2.69.142"
OTHER_PUBLIC_IP = "8.8.4.4"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = (
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests (no infrastructure)")
    config.addinivalue_line("markers", "integration: integration tests (requires Redis)")


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Settable epoch clock shared by caches, sessions and dedup windows."""

    def __init__(self, start: float = 1_750_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, UTC)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_cache(clock: FakeClock) -> LocalCache:
    return LocalCache(max_entries=1000, clock=clock)


@pytest.fixture
def tiered_cache(local_cache: LocalCache) -> TieredCache:
    return TieredCache(local_cache)


# =============================================================================
# Provider stubs
# =============================================================================

class StubLocationProvider:
    """Location provider returning a fixed result after an optional delay."""

    def __init__(
        self,
        name: str,
        result: Optional[LocationResult] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        timeout: float = 1.0,
    ):
        self.name = name
        self.result = result
        self.delay = delay
        self.error = error
        self.timeout = timeout
        self.calls = 0

    async def lookup(self, ip: str) -> Optional[LocationResult]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class StubThreatStrategy:
    """Threat strategy returning a fixed result after an optional delay."""

    def __init__(
        self,
        name: str,
        result: Optional[ThreatResult] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        timeout: float = 1.0,
    ):
        self.name = name
        self.result = result
        self.delay = delay
        self.error = error
        self.timeout = timeout
        self.calls = 0

    async def assess(self, ip: str, isp: Optional[str] = None) -> Optional[ThreatResult]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def london_location(provider: str = "stub") -> LocationResult:
    return LocationResult(
        country="United Kingdom",
        country_code="GB",
        region="England",
        city="London",
        latitude=51.5074,
        longitude=-0.1278,
        timezone="Europe/London",
        isp="British Telecommunications PLC",
        org="BT",
        accuracy=AccuracyTier.HIGH,
        provider=provider,
    )


@pytest.fixture
def location_provider() -> StubLocationProvider:
    return StubLocationProvider("stub-geo", london_location())


@pytest.fixture
def threat_strategy() -> StubThreatStrategy:
    return StubThreatStrategy("stub-reputation", ThreatResult(provider="stub-reputation"))


@pytest.fixture
def location_resolver(tiered_cache, location_provider) -> LocationResolver:
    return LocationResolver(tiered_cache, [location_provider], deadline_seconds=1.0)


@pytest.fixture
def threat_resolver(tiered_cache, threat_strategy) -> ThreatResolver:
    return ThreatResolver(tiered_cache, [threat_strategy], deadline_seconds=1.0)


# =============================================================================
# Pipeline
# =============================================================================

@pytest.fixture
def website() -> WebsiteConfig:
    return WebsiteConfig(
        tracking_code="TRK-TEST-001",
        website_id="site_1",
        owner_id="owner_1",
        domain="example.com",
    )


@pytest.fixture
def website_directory(website: WebsiteConfig) -> InMemoryWebsiteDirectory:
    directory = InMemoryWebsiteDirectory([website])
    directory.add(WebsiteConfig(
        tracking_code="TRK-INACTIVE",
        website_id="site_2",
        owner_id="owner_1",
        domain="inactive.example.org",
        is_active=False,
    ))
    return directory


@pytest.fixture
def visit_store() -> InMemoryVisitStore:
    return InMemoryVisitStore()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def identity_resolver(tiered_cache, clock) -> IdentityResolver:
    return IdentityResolver(SessionStore(tiered_cache), clock=clock.datetime)


@pytest.fixture
def dedup_gate(tiered_cache, clock) -> DedupGate:
    return DedupGate(tiered_cache, clock=clock.datetime)


@pytest.fixture
def rate_limiter(clock) -> RateLimiter:
    return RateLimiter(None, limit_per_minute=100, clock=clock)


@pytest.fixture
def orchestrator(
    website_directory,
    identity_resolver,
    dedup_gate,
    location_resolver,
    threat_resolver,
    visit_store,
    notifier,
    rate_limiter,
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        websites=website_directory,
        identity=identity_resolver,
        dedup=dedup_gate,
        location=location_resolver,
        threat=threat_resolver,
        store=visit_store,
        notifier=notifier,
        rate_limiter=rate_limiter,
        storage_retry_attempts=1,
        alert_threshold=70,
        high_visit_frequency_threshold=30,
    )


@pytest.fixture
def sample_event(website: WebsiteConfig) -> VisitEvent:
    """A first page view from a desktop Chrome visitor arriving from Google."""
    return VisitEvent.model_validate({
        "trackingCode": website.tracking_code,
        "website": "https://example.com",
        "page": "https://example.com/pricing",
        "title": "Pricing",
        "referrer": "https://www.google.com/search?q=example",
        "userAgent": CHROME_UA,
        "screenResolution": "1920x1080",
        "colorDepth": 24,
        "platform": "Win32",
        "language": "en-GB",
        "timezone": "Europe/London",
        "mouseMovements": 42,
        "clicks": 3,
        "pageLoadTime": 850,
        "type": "page_visit",
    })


@pytest_asyncio.fixture
async def drained() -> AsyncGenerator[None, None]:
    """Wait for background writes and notifications after the test body."""
    yield
    await drain_background_tasks()


# =============================================================================
# Infrastructure
# =============================================================================

@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[redis.Redis, None]:
    """
    Get Redis client for tests.

    Uses a test-specific key prefix to avoid conflicts.
    """
    client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        decode_responses=True,
        socket_connect_timeout=0.5,
    )

    try:
        await client.ping()
    except Exception:
        await client.aclose()
        pytest.skip("Redis not available")

    try:
        yield client
    finally:
        keys = await client.keys("visits-test:*")
        if keys:
            await client.delete(*keys)
        await client.aclose()


@pytest_asyncio.fixture
async def api_client(orchestrator, tiered_cache) -> AsyncGenerator[AsyncClient, None]:
    """
    Get async HTTP client for API tests.

    Wires the in-memory pipeline into the app's globals instead of running
    the lifespan, so no Redis or PostgreSQL is needed.
    """
    api_main.orchestrator = orchestrator
    api_main.cache = tiered_cache
    transport = ASGITransport(app=api_main.app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        await drain_background_tasks()
        api_main.orchestrator = None
        api_main.cache = None
