"""
Background task helpers.

Cache writes, session persistence, visit storage and notifications all run
after the response payload is ready and must never block the caller.
"""

import asyncio
from typing import Any, Coroutine

from .logger import get_logger

logger = get_logger("tasks")

# Strong references so pending tasks are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Run a coroutine in the background and log failures."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)

    def _log_exception(task_ref: asyncio.Task) -> None:
        _background_tasks.discard(task_ref)
        if task_ref.cancelled():
            return
        exc = task_ref.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", name, exc)

    task.add_done_callback(_log_exception)
    return task


async def drain_background_tasks(timeout: float = 5.0) -> None:
    """Wait for outstanding background tasks (shutdown and tests)."""
    if not _background_tasks:
        return
    await asyncio.wait(set(_background_tasks), timeout=timeout)
