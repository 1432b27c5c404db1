"""
Race-with-deadline Tests

Tests for the combinator shared by the location and threat resolvers.
"""

import asyncio

import pytest

from visitguard.resolvers import Contender, race_with_deadline


def _after(delay: float, value=None, error: Exception | None = None):
    async def call():
        await asyncio.sleep(delay)
        if error is not None:
            raise error
        return value
    return call


class TestRaceWithDeadline:
    """Tests for race_with_deadline."""

    @pytest.mark.asyncio
    async def test_fastest_accepted_result_wins(self):
        winner = await race_with_deadline(
            [
                Contender("slow", _after(0.2, "slow"), timeout=1.0),
                Contender("fast", _after(0.01, "fast"), timeout=1.0),
            ],
            deadline=1.0,
        )

        assert winner.name == "fast"
        assert winner.result == "fast"

    @pytest.mark.asyncio
    async def test_rejected_results_do_not_win(self):
        """A fast but unacceptable answer lets a slower good one win."""
        winner = await race_with_deadline(
            [
                Contender("empty", _after(0.01, ""), timeout=1.0),
                Contender("good", _after(0.05, "London"), timeout=1.0),
            ],
            deadline=1.0,
            accept=bool,
        )

        assert winner.name == "good"

    @pytest.mark.asyncio
    async def test_errors_are_absorbed(self):
        winner = await race_with_deadline(
            [
                Contender("broken", _after(0.0, error=RuntimeError("boom")), timeout=1.0),
                Contender("ok", _after(0.02, "ok"), timeout=1.0),
            ],
            deadline=1.0,
        )

        assert winner.result == "ok"

    @pytest.mark.asyncio
    async def test_per_contender_timeout(self):
        """A contender exceeding its own timeout cannot win even within the deadline."""
        winner = await race_with_deadline(
            [Contender("sluggish", _after(0.3, "late"), timeout=0.05)],
            deadline=1.0,
        )

        assert winner is None

    @pytest.mark.asyncio
    async def test_deadline_bounds_total_time(self):
        loop = asyncio.get_running_loop()
        started = loop.time()

        winner = await race_with_deadline(
            [Contender("hung", _after(5.0, "never"), timeout=10.0)],
            deadline=0.1,
        )

        assert winner is None
        assert loop.time() - started < 1.0

    @pytest.mark.asyncio
    async def test_losers_are_cancelled(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.5)
            finished.append("slow")
            return "slow"

        winner = await race_with_deadline(
            [
                Contender("fast", _after(0.01, "fast"), timeout=1.0),
                Contender("slow", slow, timeout=1.0),
            ],
            deadline=1.0,
        )
        await asyncio.sleep(0.6)

        assert winner.name == "fast"
        assert finished == []

    @pytest.mark.asyncio
    async def test_no_contenders(self):
        assert await race_with_deadline([], deadline=1.0) is None
