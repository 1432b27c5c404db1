"""
Real-time visit notifications.

Publishes a VisitSummary for every recorded visit to the website's channel
and its owner's channel, and a security alert for high-risk visits.

Channels:
    {prefix}website:{website_id}
    {prefix}owner:{owner_id}
    {prefix}alerts
"""

from abc import ABC, abstractmethod

import redis.asyncio as redis

from ..schemas import VisitSummary


class VisitNotifier(ABC):
    @abstractmethod
    async def publish(self, summary: VisitSummary) -> None:
        """Announce a recorded visit."""

    @abstractmethod
    async def alert(self, summary: VisitSummary) -> None:
        """Announce a high-risk visit."""


class InMemoryNotifier(VisitNotifier):
    def __init__(self):
        self.published: list[VisitSummary] = []
        self.alerts: list[VisitSummary] = []

    async def publish(self, summary: VisitSummary) -> None:
        self.published.append(summary)

    async def alert(self, summary: VisitSummary) -> None:
        self.alerts.append(summary)


class RedisNotifier(VisitNotifier):
    """Redis pub/sub notifier."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "visits:"):
        self.redis = redis_client
        self.prefix = key_prefix

    def website_channel(self, website_id: str) -> str:
        return f"{self.prefix}website:{website_id}"

    def owner_channel(self, owner_id: str) -> str:
        return f"{self.prefix}owner:{owner_id}"

    @property
    def alert_channel(self) -> str:
        return f"{self.prefix}alerts"

    async def publish(self, summary: VisitSummary) -> None:
        payload = summary.model_dump_json()
        pipe = self.redis.pipeline()
        pipe.publish(self.website_channel(summary.website_id), payload)
        pipe.publish(self.owner_channel(summary.owner_id), payload)
        await pipe.execute()

    async def alert(self, summary: VisitSummary) -> None:
        await self.redis.publish(self.alert_channel, summary.model_dump_json())
