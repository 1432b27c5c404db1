"""
Identity Resolver Tests

Tests for signal precedence, session expiry and fingerprint derivation.
"""

import re

import pytest

from visitguard.identity import derive_fingerprint
from visitguard.schemas import IdentitySignals, VisitEvent

from .conftest import CHROME_UA, OTHER_PUBLIC_IP, PUBLIC_IP


def _signals(**overrides) -> IdentitySignals:
    fields = {"website_id": "site_1", "ip": PUBLIC_IP}
    fields.update(overrides)
    return IdentitySignals(**fields)


class TestPrecedence:
    """Signals are tried from strongest to weakest."""

    @pytest.mark.asyncio
    async def test_new_visitor_gets_synthesized_id(self, identity_resolver):
        resolution = await identity_resolver.resolve(_signals())

        assert resolution.is_new_session is True
        assert resolution.source == "new"
        assert re.fullmatch(r"[0-9a-f]{32}", resolution.session.session_id)

    @pytest.mark.asyncio
    async def test_supplied_session_id_is_kept_for_new_session(self, identity_resolver):
        resolution = await identity_resolver.resolve(_signals(session_id="sess-abc"))

        assert resolution.session.session_id == "sess-abc"
        assert resolution.is_new_session is True

    @pytest.mark.asyncio
    async def test_session_id_match(self, identity_resolver, clock):
        first = await identity_resolver.resolve(_signals(session_id="sess-abc"))
        clock.advance(60)

        second = await identity_resolver.resolve(_signals(session_id="sess-abc", ip=OTHER_PUBLIC_IP))

        assert second.is_new_session is False
        assert second.source == "session_id"
        assert second.session.session_id == first.session.session_id

    @pytest.mark.asyncio
    async def test_fingerprint_match_ten_minutes_old(self, identity_resolver, clock):
        """Same fingerprint, no session id, 10 minutes later, different IP."""
        first = await identity_resolver.resolve(_signals(device_fingerprint="fp-1"))
        await identity_resolver.touch(first.session)
        clock.advance(600)

        second = await identity_resolver.resolve(
            _signals(device_fingerprint="fp-1", ip=OTHER_PUBLIC_IP)
        )

        assert second.source == "fingerprint"
        assert second.session.session_id == first.session.session_id

    @pytest.mark.asyncio
    async def test_fingerprint_outside_window_creates_new_session(self, identity_resolver, clock):
        first = await identity_resolver.resolve(_signals(device_fingerprint="fp-1"))
        session = first.session
        # Keep the session alive past the fingerprint window
        for _ in range(3):
            clock.advance(1500)
            session = await identity_resolver.touch(session)
        clock.advance(1)

        second = await identity_resolver.resolve(
            _signals(device_fingerprint="fp-1", ip=OTHER_PUBLIC_IP)
        )

        assert second.is_new_session is True

    @pytest.mark.asyncio
    async def test_computer_id_match(self, identity_resolver, clock):
        first = await identity_resolver.resolve(_signals(computer_id="cid-9"))
        clock.advance(120)

        second = await identity_resolver.resolve(_signals(computer_id="cid-9", ip=OTHER_PUBLIC_IP))

        assert second.source == "computer_id"
        assert second.session.session_id == first.session.session_id

    @pytest.mark.asyncio
    async def test_fingerprint_beats_ip(self, identity_resolver):
        by_ip = await identity_resolver.resolve(_signals(ip=PUBLIC_IP))
        by_fp = await identity_resolver.resolve(
            _signals(ip=OTHER_PUBLIC_IP, device_fingerprint="fp-2")
        )

        result = await identity_resolver.resolve(_signals(ip=PUBLIC_IP, device_fingerprint="fp-2"))

        assert result.source == "fingerprint"
        assert result.session.session_id == by_fp.session.session_id
        assert result.session.session_id != by_ip.session.session_id

    @pytest.mark.asyncio
    async def test_ip_match(self, identity_resolver, clock):
        first = await identity_resolver.resolve(_signals())
        clock.advance(300)

        second = await identity_resolver.resolve(_signals())

        assert second.source == "ip"
        assert second.session.session_id == first.session.session_id

    @pytest.mark.asyncio
    async def test_expired_session_is_not_reused(self, identity_resolver, clock):
        await identity_resolver.resolve(_signals(session_id="sess-old"))
        clock.advance(1801)

        resolution = await identity_resolver.resolve(_signals(session_id="sess-old"))

        assert resolution.is_new_session is True

    @pytest.mark.asyncio
    async def test_session_id_from_other_website_is_not_reused(self, identity_resolver):
        await identity_resolver.resolve(_signals(session_id="shared-id"))

        resolution = await identity_resolver.resolve(
            _signals(session_id="shared-id", website_id="site_9")
        )

        assert resolution.is_new_session is True
        assert resolution.session.session_id != "shared-id"
        assert resolution.session.website_id == "site_9"


class TestTouch:
    """Tests for session extension."""

    @pytest.mark.asyncio
    async def test_touch_extends_expiry_and_counts(self, identity_resolver, clock):
        resolution = await identity_resolver.resolve(_signals(session_id="s1"))
        clock.advance(100)

        touched = await identity_resolver.touch(resolution.session)

        assert touched.visit_count == 1
        assert touched.last_activity == clock.datetime()
        assert touched.last_activity >= touched.created_at
        assert (touched.expires_at - touched.last_activity).total_seconds() == 1800

    @pytest.mark.asyncio
    async def test_touch_without_counting(self, identity_resolver):
        resolution = await identity_resolver.resolve(_signals(session_id="s1"))

        touched = await identity_resolver.touch(resolution.session, count_visit=False)

        assert touched.visit_count == 0

    @pytest.mark.asyncio
    async def test_touch_indexes_new_signals(self, identity_resolver, clock):
        resolution = await identity_resolver.resolve(_signals(session_id="s1"))
        await identity_resolver.touch(
            resolution.session, _signals(session_id="s1", computer_id="cid-new")
        )
        clock.advance(30)

        found = await identity_resolver.resolve(_signals(computer_id="cid-new", ip=OTHER_PUBLIC_IP))

        assert found.session.session_id == "s1"


class TestFingerprintDerivation:
    """Tests for server-side fingerprints."""

    def test_derived_from_three_attributes(self):
        event = VisitEvent(screen_resolution="1920x1080", language="en-GB", timezone="Europe/London")

        fingerprint = derive_fingerprint(event)

        assert re.fullmatch(r"[0-9a-f]{32}", fingerprint)
        assert derive_fingerprint(event) == fingerprint

    def test_header_user_agent_counts(self):
        event = VisitEvent(screen_resolution="1920x1080", language="en-GB")

        assert derive_fingerprint(event, user_agent=CHROME_UA) is not None

    def test_too_few_attributes(self):
        event = VisitEvent(language="en-GB", timezone="Europe/London")

        assert derive_fingerprint(event) is None
