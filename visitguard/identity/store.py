"""
Session Store

Sessions and their lookup indexes live in the cache layer's session
category. Each session is stored once under its id; the fingerprint,
computer id and IP indexes point at that id.

Key format (category "session"):
    id:{session_id}                  -> Session JSON
    fp:{website_id}:{fingerprint}    -> session_id
    cid:{website_id}:{computer_id}   -> session_id
    ip:{website_id}:{ip}             -> session_id
"""

from typing import Optional

from ..cache import CacheBackend, CacheCategory
from ..config import settings
from ..schemas import Session


class SessionStore:
    """Keyed session storage with TTL eviction."""

    def __init__(self, cache: CacheBackend, ttl_seconds: Optional[int] = None):
        self.cache = cache
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds

    async def get(self, session_id: str) -> Optional[Session]:
        data = await self.cache.get(CacheCategory.SESSION, f"id:{session_id}")
        if data is None:
            return None
        return Session.model_validate(data)

    async def find_by_fingerprint(self, website_id: str, fingerprint: str) -> Optional[Session]:
        return await self._find(f"fp:{website_id}:{fingerprint}")

    async def find_by_computer_id(self, website_id: str, computer_id: str) -> Optional[Session]:
        return await self._find(f"cid:{website_id}:{computer_id}")

    async def find_by_ip(self, website_id: str, ip: str) -> Optional[Session]:
        return await self._find(f"ip:{website_id}:{ip}")

    async def save(self, session: Session) -> None:
        """Store the session and (re)point its indexes at it."""
        await self.cache.set(
            CacheCategory.SESSION,
            f"id:{session.session_id}",
            session.model_dump(mode="json"),
            self.ttl_seconds,
        )
        for index_key in self._index_keys(session):
            await self.cache.set(
                CacheCategory.SESSION,
                index_key,
                session.session_id,
                self.ttl_seconds,
            )

    async def _find(self, index_key: str) -> Optional[Session]:
        session_id = await self.cache.get(CacheCategory.SESSION, index_key)
        if not session_id:
            return None
        return await self.get(session_id)

    @staticmethod
    def _index_keys(session: Session) -> list[str]:
        keys = []
        if session.device_fingerprint:
            keys.append(f"fp:{session.website_id}:{session.device_fingerprint}")
        if session.computer_id:
            keys.append(f"cid:{session.website_id}:{session.computer_id}")
        if session.ip:
            keys.append(f"ip:{session.website_id}:{session.ip}")
        return keys
