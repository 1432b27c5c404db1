"""
Location Resolver

Resolves an IP to a LocationResult by racing several free geolocation
services. Each provider is a strategy with its own URL, response mapping
and accuracy tier, so adding or removing a service never touches the
resolver itself.

Resolution order:
1. Private/loopback/link-local addresses -> fixed "Local" result
2. Cached result (success or failure)
3. Race of all providers under one deadline
"""

import asyncio
import time
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Optional, Sequence

import httpx

from ..cache import CacheBackend, CacheCategory
from ..config import settings
from ..metrics import metrics
from ..schemas import AccuracyTier, LocationResult
from ..utils import get_logger
from .network import is_local_address, parse_ip
from .race import Contender, race_with_deadline

logger = get_logger("resolvers.location")


def _text(value: Any) -> str:
    if value is None:
        return "Unknown"
    value = str(value).strip()
    return value or "Unknown"


class LocationProvider(ABC):
    """A single geolocation service."""

    name: str = "provider"
    accuracy: AccuracyTier = AccuracyTier.MEDIUM

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        self.client = client
        self.timeout = timeout or settings.location_provider_timeout_seconds
        self.user_agent = user_agent or settings.provider_user_agent

    @abstractmethod
    def build_request(self, ip: str) -> tuple[str, dict[str, str]]:
        """Return (url, query params) for an IP."""

    @abstractmethod
    def parse(self, data: dict[str, Any]) -> Optional[LocationResult]:
        """Map a provider response to a LocationResult, or None if unusable."""

    async def lookup(self, ip: str) -> Optional[LocationResult]:
        url, params = self.build_request(ip)
        response = await self.client.get(
            url,
            params=params,
            headers={"User-Agent": self.user_agent},
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            return None
        return self.parse(data)

    def _result(self, **fields: Any) -> LocationResult:
        return LocationResult(
            country=_text(fields.get("country")),
            country_code=str(fields.get("country_code") or "XX"),
            region=_text(fields.get("region")),
            city=_text(fields.get("city")),
            latitude=float(fields.get("latitude") or 0.0),
            longitude=float(fields.get("longitude") or 0.0),
            timezone=_text(fields.get("timezone")),
            isp=_text(fields.get("isp")),
            org=_text(fields.get("org")),
            accuracy=self.accuracy,
            provider=self.name,
        )


class IpApiProvider(LocationProvider):
    """ip-api.com (free tier, HTTP only)."""

    name = "ip-api"
    accuracy = AccuracyTier.HIGH

    FIELDS = "status,message,country,countryCode,regionName,city,lat,lon,timezone,isp,org,as"

    def build_request(self, ip: str) -> tuple[str, dict[str, str]]:
        return f"http://ip-api.com/json/{ip}", {"fields": self.FIELDS}

    def parse(self, data: dict[str, Any]) -> Optional[LocationResult]:
        if data.get("status") != "success":
            return None
        return self._result(
            country=data.get("country"),
            country_code=data.get("countryCode"),
            region=data.get("regionName"),
            city=data.get("city"),
            latitude=data.get("lat"),
            longitude=data.get("lon"),
            timezone=data.get("timezone"),
            isp=data.get("isp"),
            org=data.get("org") or data.get("as"),
        )


class IpapiCoProvider(LocationProvider):
    """ipapi.co"""

    name = "ipapi.co"
    accuracy = AccuracyTier.MEDIUM

    def build_request(self, ip: str) -> tuple[str, dict[str, str]]:
        return f"https://ipapi.co/{ip}/json/", {}

    def parse(self, data: dict[str, Any]) -> Optional[LocationResult]:
        if data.get("error"):
            return None
        return self._result(
            country=data.get("country_name"),
            country_code=data.get("country_code"),
            region=data.get("region"),
            city=data.get("city"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            timezone=data.get("timezone"),
            isp=data.get("org"),
            org=data.get("org"),
        )


class IpWhoisProvider(LocationProvider):
    """ipwho.is"""

    name = "ipwho.is"
    accuracy = AccuracyTier.HIGH

    def build_request(self, ip: str) -> tuple[str, dict[str, str]]:
        return f"https://ipwho.is/{ip}", {}

    def parse(self, data: dict[str, Any]) -> Optional[LocationResult]:
        if data.get("success") is False:
            return None
        connection = data.get("connection") or {}
        timezone = data.get("timezone")
        if isinstance(timezone, dict):
            timezone = timezone.get("id")
        return self._result(
            country=data.get("country"),
            country_code=data.get("country_code"),
            region=data.get("region"),
            city=data.get("city"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            timezone=timezone,
            isp=connection.get("isp"),
            org=connection.get("org"),
        )


class IpinfoProvider(LocationProvider):
    """ipinfo.io; the token is optional but lifts the anonymous rate limit."""

    name = "ipinfo.io"
    accuracy = AccuracyTier.MEDIUM

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.token = token

    def build_request(self, ip: str) -> tuple[str, dict[str, str]]:
        params = {"token": self.token} if self.token else {}
        return f"https://ipinfo.io/{ip}/json", params

    def parse(self, data: dict[str, Any]) -> Optional[LocationResult]:
        if data.get("bogon") or not data.get("loc"):
            return None
        try:
            lat, lon = (float(part) for part in str(data["loc"]).split(",", 1))
        except ValueError:
            return None
        return self._result(
            # ipinfo only reports the ISO code
            country=data.get("country"),
            country_code=data.get("country"),
            region=data.get("region"),
            city=data.get("city"),
            latitude=lat,
            longitude=lon,
            timezone=data.get("timezone"),
            isp=data.get("org"),
            org=data.get("org"),
        )


def default_location_providers(client: httpx.AsyncClient) -> list[LocationProvider]:
    """Providers used in production, built from settings."""
    return [
        IpApiProvider(client),
        IpapiCoProvider(client),
        IpWhoisProvider(client),
        IpinfoProvider(client, token=settings.ipinfo_token),
    ]


class LocationResolver:
    """
    Cached, single-flight geolocation.

    Concurrent resolutions of the same IP in one process share a single
    provider race; the result (including the failure default) is cached.
    """

    def __init__(
        self,
        cache: CacheBackend,
        providers: Sequence[LocationProvider],
        deadline_seconds: Optional[float] = None,
        success_ttl_seconds: Optional[int] = None,
        failure_ttl_seconds: Optional[int] = None,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.deadline = deadline_seconds or settings.resolution_deadline_seconds
        self.success_ttl = success_ttl_seconds or settings.location_ttl_seconds
        self.failure_ttl = failure_ttl_seconds or settings.location_failure_ttl_seconds
        self._inflight: dict[str, asyncio.Task] = {}

    async def resolve(self, ip: str) -> LocationResult:
        """Resolve an IP. Never raises; falls back to the unknown default."""
        address = parse_ip(ip)
        if address is None:
            return LocationResult.unknown()
        if is_local_address(ip):
            return LocationResult.local()

        key = str(address)
        cached = await self.cache.get(CacheCategory.LOCATION, key)
        if cached is not None:
            return LocationResult.model_validate(cached)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._lookup(key), name=f"location:{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))

        # One caller giving up must not cancel the shared lookup
        return await asyncio.shield(task)

    async def _lookup(self, ip: str) -> LocationResult:
        start = time.perf_counter()
        contenders = [
            Contender(provider.name, partial(provider.lookup, ip), provider.timeout)
            for provider in self.providers
        ]
        winner = await race_with_deadline(
            contenders,
            self.deadline,
            accept=lambda result: result is not None and result.is_resolved,
            resolver="location",
        )

        if winner is not None:
            result = winner.result
            ttl = self.success_ttl
        else:
            logger.info("No location provider answered for %s", ip)
            metrics.resolution_fallbacks.labels("location").inc()
            result = LocationResult.unknown()
            ttl = self.failure_ttl

        await self.cache.set(CacheCategory.LOCATION, ip, result.model_dump(mode="json"), ttl)
        metrics.resolution_latency.labels("location").observe(
            (time.perf_counter() - start) * 1000
        )
        return result
