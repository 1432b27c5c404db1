"""
Dedup Gate

Suppresses repeat recordings of the same event from the same visitor on
the same website within a per-event-type window. A marker holding the
time of the last accepted event is kept in the cache's recent_visit
category with TTL equal to the window.

Best-effort only: two concurrent events can both pass before either
marker is visible.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Callable, Optional

from ..cache import CacheBackend, CacheCategory
from ..config import settings
from ..schemas import EventType


@dataclass(frozen=True)
class DedupDecision:
    accepted: bool
    last_visit: Optional[datetime] = None


def default_windows() -> dict[EventType, int]:
    """Dedup windows in seconds, from settings."""
    return {
        EventType.PAGE_VISIT: settings.dedup_page_visit_seconds,
        EventType.HEARTBEAT: settings.dedup_heartbeat_seconds,
        EventType.SESSION_END: settings.dedup_session_end_seconds,
    }


class DedupGate:
    """Per (website, session, event type) duplicate suppression."""

    def __init__(
        self,
        cache: CacheBackend,
        windows: Optional[dict[EventType, int]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.cache = cache
        self.windows = windows if windows is not None else default_windows()
        self._clock = clock

    def window_for(self, event_type: EventType) -> int:
        """Window for an event type; unlisted types share page_visit's."""
        if event_type in self.windows:
            return self.windows[event_type]
        return self.windows.get(EventType.PAGE_VISIT, settings.dedup_page_visit_seconds)

    @staticmethod
    def _key(website_id: str, session_id: str, event_type: EventType) -> str:
        return f"{website_id}:{session_id}:{event_type.value}"

    async def check(
        self,
        website_id: str,
        session_id: str,
        event_type: EventType,
    ) -> DedupDecision:
        window = self.window_for(event_type)
        if window <= 0:
            return DedupDecision(accepted=True)

        marker = await self.cache.get(
            CacheCategory.RECENT_VISIT, self._key(website_id, session_id, event_type)
        )
        if marker is None:
            return DedupDecision(accepted=True)

        last_visit = datetime.fromisoformat(marker)
        if self._clock() - last_visit < timedelta(seconds=window):
            return DedupDecision(accepted=False, last_visit=last_visit)
        return DedupDecision(accepted=True)

    async def record(
        self,
        website_id: str,
        session_id: str,
        event_type: EventType,
        at: Optional[datetime] = None,
    ) -> None:
        window = self.window_for(event_type)
        if window <= 0:
            return
        when = at or self._clock()
        await self.cache.set(
            CacheCategory.RECENT_VISIT,
            self._key(website_id, session_id, event_type),
            when.isoformat(),
            window,
        )

    async def admit(
        self,
        website_id: str,
        session_id: str,
        event_type: EventType,
    ) -> DedupDecision:
        """Check and, when accepted, record the marker."""
        decision = await self.check(website_id, session_id, event_type)
        if decision.accepted:
            await self.record(website_id, session_id, event_type)
        return decision
