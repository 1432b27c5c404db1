"""
Identity Resolver

Maps a request's identity signals to a session. Signals are tried from
strongest to weakest:

1. Supplied session id (non-expired, same website)
2. Device fingerprint, then computer id (session created within the
   fingerprint window)
3. Raw IP (non-expired session on the same website)
4. New session
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Callable, Optional
from uuid import uuid4

from ..config import settings
from ..schemas import IdentitySignals, Session
from ..utils import get_logger
from .store import SessionStore

logger = get_logger("identity")


@dataclass
class IdentityResolution:
    session: Session
    is_new_session: bool
    source: str  # session_id | fingerprint | computer_id | ip | new


def synthesize_session_id(signals: IdentitySignals, now: datetime) -> str:
    material = "-".join(
        [
            signals.ip,
            signals.computer_id or "",
            signals.device_fingerprint or "",
            str(now.timestamp()),
            uuid4().hex,
        ]
    )
    return hashlib.sha256(material.encode()).hexdigest()[:32]


class IdentityResolver:
    """Session lookup and creation for incoming events."""

    def __init__(
        self,
        store: SessionStore,
        session_ttl_seconds: Optional[int] = None,
        fingerprint_window_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.store = store
        self.session_ttl = session_ttl_seconds or settings.session_ttl_seconds
        self.fingerprint_window = timedelta(
            seconds=fingerprint_window_seconds or settings.fingerprint_match_window_seconds
        )
        self._clock = clock

    async def resolve(self, signals: IdentitySignals) -> IdentityResolution:
        now = self._clock()
        website_id = signals.website_id
        foreign_session_id = False

        # Supplied session id
        if signals.session_id:
            session = await self.store.get(signals.session_id)
            if session is not None:
                if session.website_id != website_id:
                    foreign_session_id = True
                elif not session.is_expired(now):
                    return IdentityResolution(session, False, "session_id")

        # Device fingerprint, then computer id
        if signals.device_fingerprint:
            session = await self.store.find_by_fingerprint(website_id, signals.device_fingerprint)
            if self._recent(session, now):
                return IdentityResolution(session, False, "fingerprint")

        if signals.computer_id:
            session = await self.store.find_by_computer_id(website_id, signals.computer_id)
            if self._recent(session, now):
                return IdentityResolution(session, False, "computer_id")

        # Raw IP
        session = await self.store.find_by_ip(website_id, signals.ip)
        if session is not None and not session.is_expired(now):
            return IdentityResolution(session, False, "ip")

        session_id = signals.session_id
        if not session_id or foreign_session_id:
            session_id = synthesize_session_id(signals, now)

        session = Session(
            session_id=session_id,
            website_id=website_id,
            ip=signals.ip,
            device_fingerprint=signals.device_fingerprint,
            computer_id=signals.computer_id,
            created_at=now,
            last_activity=now,
            expires_at=now + timedelta(seconds=self.session_ttl),
            visit_count=0,
        )
        await self.store.save(session)
        logger.debug("Created session %s for website %s", session_id, website_id)
        return IdentityResolution(session, True, "new")

    async def touch(
        self,
        session: Session,
        signals: Optional[IdentitySignals] = None,
        count_visit: bool = True,
    ) -> Session:
        """
        Extend a session after an accepted event.

        Also records signals the session did not have yet, so later events
        can match on them. Runs in the background; the caller never waits.
        """
        updated = session.model_copy(deep=True)
        updated.touch(self._clock(), self.session_ttl, count_visit=count_visit)
        if signals is not None:
            updated.ip = signals.ip
            updated.device_fingerprint = updated.device_fingerprint or signals.device_fingerprint
            updated.computer_id = updated.computer_id or signals.computer_id
        await self.store.save(updated)
        return updated

    def _recent(self, session: Optional[Session], now: datetime) -> bool:
        if session is None:
            return False
        return now - session.created_at <= self.fingerprint_window
