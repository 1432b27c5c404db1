"""
Race-with-deadline combinator.

Starts every contender at once, each bounded by its own timeout, and
returns the first result the acceptance predicate approves. Losing
contenders are cancelled without being awaited, and the whole race gives
up when the overall deadline passes.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from ..errors import UpstreamTimeoutError
from ..metrics import metrics
from ..utils import get_logger

logger = get_logger("resolvers.race")

T = TypeVar("T")


@dataclass(frozen=True)
class Contender(Generic[T]):
    """One strategy entered into a race."""
    name: str
    call: Callable[[], Awaitable[Optional[T]]]
    timeout: float


@dataclass(frozen=True)
class RaceWinner(Generic[T]):
    name: str
    result: T


def _is_present(result: Any) -> bool:
    return result is not None


async def race_with_deadline(
    contenders: Sequence[Contender[T]],
    deadline: float,
    accept: Callable[[T], bool] = _is_present,
    resolver: str = "race",
) -> Optional[RaceWinner[T]]:
    """
    Run contenders concurrently and return the first accepted result.

    Args:
        contenders: Strategies to race, in preference order for ties
        deadline: Overall bound in seconds
        accept: Predicate a result must satisfy to win
        resolver: Label used for logs and metrics

    Returns:
        The winning contender and its result, or None when every contender
        failed, timed out, was rejected, or the deadline passed.
    """
    if not contenders:
        return None

    loop = asyncio.get_running_loop()
    order: dict[asyncio.Task, int] = {}
    for index, contender in enumerate(contenders):
        task = asyncio.create_task(
            _bounded(contender),
            name=f"{resolver}:{contender.name}",
        )
        order[task] = index

    pending = set(order)
    end = loop.time() + deadline

    try:
        while pending:
            remaining = end - loop.time()
            if remaining <= 0:
                break

            done, pending = await asyncio.wait(
                pending,
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )

            # Inspect every finished task so no exception goes unretrieved
            winner: Optional[RaceWinner[T]] = None
            for task in sorted(done, key=order.__getitem__):
                contender = contenders[order[task]]
                outcome = _outcome(task, accept)
                metrics.provider_outcomes.labels(resolver, contender.name, outcome).inc()

                if outcome in ("timeout", "error"):
                    logger.debug(
                        "%s provider %s failed: %s",
                        resolver, contender.name, task.exception(),
                    )
                elif outcome == "accepted" and winner is None:
                    winner = RaceWinner(contender.name, task.result())

            if winner is not None:
                return winner

        if pending:
            logger.debug("%s deadline of %.2fs reached", resolver, deadline)
        return None
    finally:
        for task in pending:
            task.cancel()


async def _bounded(contender: Contender[T]) -> Optional[T]:
    try:
        return await asyncio.wait_for(contender.call(), timeout=contender.timeout)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(contender.name, contender.timeout) from exc


def _outcome(task: asyncio.Task, accept: Callable[[Any], bool]) -> str:
    if task.cancelled():
        return "cancelled"
    exc = task.exception()
    if isinstance(exc, UpstreamTimeoutError):
        return "timeout"
    if exc is not None:
        return "error"
    return "accepted" if accept(task.result()) else "rejected"
