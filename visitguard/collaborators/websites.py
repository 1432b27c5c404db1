"""
Website Directory

Resolves a tracking code to the website it was issued for. Website
management lives elsewhere; the pipeline only reads.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ..config import settings
from ..schemas import WebsiteConfig

logger = logging.getLogger("visitguard.collaborators.websites")


class WebsiteDirectory(ABC):
    @abstractmethod
    async def get_by_tracking_code(self, tracking_code: str) -> Optional[WebsiteConfig]:
        """Return the website for a tracking code, active or not, or None."""


class InMemoryWebsiteDirectory(WebsiteDirectory):
    """Static registry, used for development and tests."""

    def __init__(self, websites: Iterable[WebsiteConfig] = ()):
        self._websites = {w.tracking_code: w for w in websites}

    def add(self, website: WebsiteConfig) -> None:
        self._websites[website.tracking_code] = website

    async def get_by_tracking_code(self, tracking_code: str) -> Optional[WebsiteConfig]:
        return self._websites.get(tracking_code)


class SqlWebsiteDirectory(WebsiteDirectory):
    """Reads the websites table in PostgreSQL."""

    def __init__(self, database_url: str):
        """
        Args:
            database_url: PostgreSQL connection URL
        """
        self.database_url = database_url
        self.engine = None
        self.session_factory = None

    async def initialize(self) -> None:
        """Initialize database connection."""
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
        except Exception as e:
            logger.warning("Website directory initialization failed: %s", e)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()

    async def get_by_tracking_code(self, tracking_code: str) -> Optional[WebsiteConfig]:
        if not self.session_factory:
            return None

        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                    SELECT tracking_code, id, owner_id, domain, is_active
                    FROM websites
                    WHERE tracking_code = :tracking_code
                """),
                {"tracking_code": tracking_code},
            )
            row = result.mappings().first()

        if row is None:
            return None
        return WebsiteConfig(
            tracking_code=row["tracking_code"],
            website_id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            domain=row["domain"],
            is_active=bool(row["is_active"]),
        )
