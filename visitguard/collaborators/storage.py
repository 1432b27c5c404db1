"""
Visit Store

Persists accepted visits. Writes happen in the background after the
snippet has its response; a failed write raises PersistenceError and the
caller decides whether to retry.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ..config import settings
from ..errors import PersistenceError
from ..schemas import Visit

logger = logging.getLogger("visitguard.collaborators.storage")

CREATE_VISITS_TABLE = """
    CREATE TABLE IF NOT EXISTS visits (
        id VARCHAR(32) PRIMARY KEY,
        recorded_at TIMESTAMPTZ NOT NULL,
        tracking_code VARCHAR(128) NOT NULL,
        website_id VARCHAR(64) NOT NULL,
        owner_id VARCHAR(64) NOT NULL,
        event_type VARCHAR(32) NOT NULL,
        visit_type VARCHAR(16) NOT NULL,
        session_id VARCHAR(128) NOT NULL,
        is_new_session BOOLEAN NOT NULL,
        ip_address VARCHAR(64) NOT NULL,
        page TEXT,
        referrer TEXT,
        user_agent TEXT,
        device_type VARCHAR(16),
        country VARCHAR(128),
        city VARCHAR(128),
        is_vpn BOOLEAN NOT NULL,
        is_proxy BOOLEAN NOT NULL,
        is_tor BOOLEAN NOT NULL,
        is_hosting BOOLEAN NOT NULL,
        is_bot BOOLEAN NOT NULL,
        fraud_score SMALLINT NOT NULL,
        location JSONB NOT NULL,
        threat JSONB NOT NULL,
        bot JSONB NOT NULL,
        fraud_factors JSONB NOT NULL,
        suspicious_activity JSONB NOT NULL,
        payload JSONB NOT NULL
    )
"""

INSERT_VISIT = """
    INSERT INTO visits (
        id, recorded_at, tracking_code, website_id, owner_id,
        event_type, visit_type, session_id, is_new_session, ip_address,
        page, referrer, user_agent, device_type, country, city,
        is_vpn, is_proxy, is_tor, is_hosting, is_bot, fraud_score,
        location, threat, bot, fraud_factors, suspicious_activity, payload
    ) VALUES (
        :id, :recorded_at, :tracking_code, :website_id, :owner_id,
        :event_type, :visit_type, :session_id, :is_new_session, :ip_address,
        :page, :referrer, :user_agent, :device_type, :country, :city,
        :is_vpn, :is_proxy, :is_tor, :is_hosting, :is_bot, :fraud_score,
        CAST(:location AS JSONB), CAST(:threat AS JSONB), CAST(:bot AS JSONB),
        CAST(:fraud_factors AS JSONB), CAST(:suspicious_activity AS JSONB),
        CAST(:payload AS JSONB)
    )
    ON CONFLICT (id) DO NOTHING
"""


class VisitStore(ABC):
    @abstractmethod
    async def save(self, visit: Visit) -> None:
        """Persist a visit; raise PersistenceError on failure."""


class InMemoryVisitStore(VisitStore):
    """Bounded in-process store for development and tests."""

    def __init__(self, maxlen: int = 10000):
        self.visits: Deque[Visit] = deque(maxlen=maxlen)

    async def save(self, visit: Visit) -> None:
        self.visits.append(visit)


class SqlVisitStore(VisitStore):
    """PostgreSQL visit store (SQLAlchemy async + asyncpg)."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = None
        self.session_factory = None

    async def initialize(self) -> None:
        """Initialize database connection and ensure the table exists."""
        try:
            self.engine = create_async_engine(
                self.database_url,
                echo=settings.app_debug,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )
            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            async with self.engine.begin() as conn:
                await conn.execute(text(CREATE_VISITS_TABLE))
        except Exception as e:
            logger.warning("Visit store initialization failed: %s", e)
            # Continue without database; writes will fail and be dropped
            self.session_factory = None

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()

    async def health_check(self) -> bool:
        if not self.session_factory:
            raise PersistenceError("Visit store not initialized")

        async with self.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1

    async def save(self, visit: Visit) -> None:
        if not self.session_factory:
            raise PersistenceError("Visit store not initialized")

        try:
            async with self.session_factory() as session:
                await session.execute(text(INSERT_VISIT), self._row(visit))
                await session.commit()
        except Exception as e:
            raise PersistenceError(
                f"Visit insert failed: {e}", details={"visit_id": visit.visit_id}
            ) from e

    @staticmethod
    def _row(visit: Visit) -> dict:
        data = visit.model_dump(mode="json")
        return {
            "id": visit.visit_id,
            "recorded_at": visit.timestamp,
            "tracking_code": visit.tracking_code,
            "website_id": visit.website_id,
            "owner_id": visit.owner_id,
            "event_type": visit.event_type.value,
            "visit_type": visit.visit_type.value,
            "session_id": visit.session_id,
            "is_new_session": visit.is_new_session,
            "ip_address": visit.ip,
            "page": visit.page,
            "referrer": visit.referrer,
            "user_agent": visit.user_agent,
            "device_type": visit.device_type,
            "country": visit.location.country,
            "city": visit.location.city,
            "is_vpn": visit.threat.is_vpn,
            "is_proxy": visit.threat.is_proxy,
            "is_tor": visit.threat.is_tor,
            "is_hosting": visit.threat.is_hosting,
            "is_bot": visit.bot.is_bot,
            "fraud_score": visit.fraud.score,
            "location": json.dumps(data["location"]),
            "threat": json.dumps(data["threat"]),
            "bot": json.dumps(data["bot"]),
            "fraud_factors": json.dumps(data["fraud"]["factors"]),
            "suspicious_activity": json.dumps(data["suspicious_activity"]),
            "payload": json.dumps(data),
        }
