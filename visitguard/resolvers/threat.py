"""
Threat Resolver

Flags VPN, proxy, Tor and hosting/datacenter addresses. Reputation
services are raced against an ISP keyword heuristic; the heuristic only
answers when it recognises a keyword, so a clean-looking ISP never beats a
reputation service that knows better.
"""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from ..cache import CacheBackend, CacheCategory
from ..config import settings
from ..metrics import metrics
from ..schemas import LocationResult, ThreatResult
from ..utils import get_logger
from .network import is_local_address, parse_ip
from .race import Contender, race_with_deadline

logger = get_logger("resolvers.threat")

VPN_KEYWORDS = (
    "vpn", "proxy", "tor", "nord", "express", "surfshark", "cyberghost",
    "private internet access", "pia", "mullvad", "windscribe", "proton",
    "hidemyass", "hide.me", "tunnelbear", "purevpn", "ipvanish",
    "hotspot shield", "zenmate", "hoxx", "browsec", "torguard", "airvpn",
)

HOSTING_KEYWORDS = (
    "amazon", "aws", "google cloud", "microsoft azure", "digitalocean",
    "linode", "akamai", "vultr", "ovh", "hetzner", "contabo", "hostinger",
    "godaddy", "bluehost", "hostgator", "dreamhost", "a2 hosting", "inmotion",
    "liquid web", "siteground", "wp engine", "kinsta", "oracle cloud",
    "alibaba cloud", "scaleway", "leaseweb", "choopa",
)

# Short tokens that also occur inside ordinary words ("operator", "olympia")
_WORD_ONLY = {"tor", "pia"}


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern:
    parts = [
        rf"\b{re.escape(k)}\b" if k in _WORD_ONLY else re.escape(k)
        for k in keywords
    ]
    return re.compile("|".join(parts))


_VPN_PATTERN = _keyword_pattern(VPN_KEYWORDS)
_HOSTING_PATTERN = _keyword_pattern(HOSTING_KEYWORDS)

IspLookup = Callable[[str], Awaitable[LocationResult]]


class ThreatStrategy(ABC):
    """One way of deciding whether an IP is anonymised."""

    name: str = "strategy"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.threat_provider_timeout_seconds

    @abstractmethod
    async def assess(self, ip: str, isp: Optional[str] = None) -> Optional[ThreatResult]:
        """Return flags, or None when this strategy cannot tell."""


class IPHubStrategy(ThreatStrategy):
    """
    IPHub reputation lookup.

    block: 0 = residential, 1 = non-residential (hosting, VPN, proxy),
    2 = mixed. Any non-zero value is treated as VPN/proxy. The optional
    `type` field names Tor exits and hosting ranges.
    """

    name = "iphub"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        super().__init__(timeout)
        self.client = client
        self.api_key = api_key
        self.user_agent = user_agent or settings.provider_user_agent

    async def assess(self, ip: str, isp: Optional[str] = None) -> Optional[ThreatResult]:
        response = await self.client.get(
            f"https://v2.api.iphub.info/ip/{ip}",
            headers={"X-Key": self.api_key, "User-Agent": self.user_agent},
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or data.get("block") is None:
            return None

        blocked = int(data["block"]) != 0
        kind = str(data.get("type") or "").lower()
        return ThreatResult(
            is_vpn=blocked,
            is_proxy=blocked,
            is_tor=kind == "tor",
            is_hosting=kind == "hosting",
            provider=self.name,
        )


class IPQualityScoreStrategy(ThreatStrategy):
    """IPQualityScore proxy/VPN detection."""

    name = "ipqualityscore"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        self.client = client
        self.api_key = api_key

    async def assess(self, ip: str, isp: Optional[str] = None) -> Optional[ThreatResult]:
        response = await self.client.get(
            f"https://ipqualityscore.com/api/json/ip/{self.api_key}/{ip}",
        )
        response.raise_for_status()
        data: dict[str, Any] = response.json()
        if not isinstance(data, dict) or not data.get("success"):
            return None

        is_proxy = bool(data.get("proxy"))
        return ThreatResult(
            is_vpn=bool(data.get("vpn")) or is_proxy,
            is_proxy=is_proxy,
            is_tor=bool(data.get("tor")),
            is_hosting=bool(data.get("hosting")),
            provider=self.name,
        )


class HeuristicStrategy(ThreatStrategy):
    """
    ISP/org keyword matching.

    Uses the ISP supplied by the caller when known, otherwise asks the
    location resolver (which is cached and single-flight, so this usually
    piggybacks on a lookup already in progress). While waiting on that
    lookup the strategy is bounded by the resolution deadline rather than
    the keyword check timeout.
    """

    name = "heuristic"

    def __init__(self, isp_lookup: Optional[IspLookup] = None, timeout: Optional[float] = None):
        if timeout is None:
            timeout = (
                settings.resolution_deadline_seconds
                if isp_lookup is not None
                else settings.heuristic_timeout_seconds
            )
        super().__init__(timeout)
        self.isp_lookup = isp_lookup

    async def assess(self, ip: str, isp: Optional[str] = None) -> Optional[ThreatResult]:
        if isp is None:
            if self.isp_lookup is None:
                return None
            location = await self.isp_lookup(ip)
            isp = f"{location.isp} {location.org}"
        return self.classify(isp)

    def classify(self, isp: str) -> Optional[ThreatResult]:
        text = (isp or "").lower()
        is_vpn = bool(_VPN_PATTERN.search(text))
        is_hosting = bool(_HOSTING_PATTERN.search(text))
        if not (is_vpn or is_hosting):
            return None
        return ThreatResult(
            is_vpn=is_vpn,
            is_proxy=is_vpn,
            is_hosting=is_hosting,
            provider=self.name,
        )


def default_threat_strategies(
    client: httpx.AsyncClient,
    isp_lookup: Optional[IspLookup] = None,
) -> list[ThreatStrategy]:
    """Strategies used in production; keyed services are skipped without a key."""
    strategies: list[ThreatStrategy] = []
    if settings.iphub_api_key:
        strategies.append(IPHubStrategy(client, settings.iphub_api_key))
    if settings.ipqualityscore_api_key:
        strategies.append(IPQualityScoreStrategy(client, settings.ipqualityscore_api_key))
    strategies.append(HeuristicStrategy(isp_lookup))
    return strategies


class ThreatResolver:
    """Cached, single-flight threat assessment."""

    def __init__(
        self,
        cache: CacheBackend,
        strategies: Sequence[ThreatStrategy],
        deadline_seconds: Optional[float] = None,
        success_ttl_seconds: Optional[int] = None,
        failure_ttl_seconds: Optional[int] = None,
    ):
        self.cache = cache
        self.strategies = list(strategies)
        self.deadline = deadline_seconds or settings.resolution_deadline_seconds
        self.success_ttl = success_ttl_seconds or settings.threat_ttl_seconds
        self.failure_ttl = failure_ttl_seconds or settings.threat_failure_ttl_seconds
        self._inflight: dict[str, asyncio.Task] = {}

    async def resolve(self, ip: str, isp: Optional[str] = None) -> ThreatResult:
        """Assess an IP. Never raises; falls back to all-false flags."""
        address = parse_ip(ip)
        if address is None:
            return ThreatResult.clean()
        if is_local_address(ip):
            return ThreatResult.clean("local")

        key = str(address)
        cached = await self.cache.get(CacheCategory.THREAT, key)
        if cached is not None:
            return ThreatResult.model_validate(cached)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._assess(key, isp), name=f"threat:{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _assess(self, ip: str, isp: Optional[str]) -> ThreatResult:
        start = time.perf_counter()
        contenders = [
            Contender(strategy.name, _bind(strategy, ip, isp), strategy.timeout)
            for strategy in self.strategies
        ]
        winner = await race_with_deadline(contenders, self.deadline, resolver="threat")

        if winner is not None:
            result = winner.result
            ttl = self.success_ttl
        else:
            metrics.resolution_fallbacks.labels("threat").inc()
            result = ThreatResult.clean()
            ttl = self.failure_ttl

        await self.cache.set(CacheCategory.THREAT, ip, result.model_dump(mode="json"), ttl)
        metrics.resolution_latency.labels("threat").observe(
            (time.perf_counter() - start) * 1000
        )
        return result


def _bind(strategy: ThreatStrategy, ip: str, isp: Optional[str]) -> Callable[[], Awaitable[Optional[ThreatResult]]]:
    return lambda: strategy.assess(ip, isp)
