"""Helpers for sharing one in-flight computation between many awaiters."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from gitlayer.errors import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InflightGroup(Generic[T]):
    """Keyed map of running tasks.

    The first caller for a key starts the work; later callers for the same key
    await the very same task until it completes. The entry is removed from a
    done-callback, so it goes away on success, failure and cancellation alike.
    """

    def __init__(self, name: str = "inflight"):
        self.name = name
        self._tasks: dict[str, asyncio.Task[T]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: str) -> bool:
        return key in self._tasks

    def get(self, key: str) -> Optional[asyncio.Task[T]]:
        return self._tasks.get(key)

    def start(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[asyncio.Task[T], bool]:
        """Get the task for ``key``, creating it if nothing is running.

        Returns:
            Tuple of (task, joined) where ``joined`` is True when the caller
            attached to a task that was already running.
        """
        task = self._tasks.get(key)
        if task is not None:
            return task, True

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._discard(k, t))
        return task, False

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task, _ = self.start(key, factory)
        # Shielded so one caller's cancellation never cancels the shared work
        return await asyncio.shield(task)

    def _discard(self, key: str, task: asyncio.Task[T]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            # Retrieved here so an unawaited failure doesn't log "never retrieved"
            logger.debug(f"{self.name}: {key} failed: {task.exception()!r}")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str = "operation",
) -> T:
    """Race ``awaitable`` against a timer.

    Losing the race raises :class:`CancellationError` to this caller only; the
    underlying task is shielded and keeps running for anyone else awaiting it.
    """
    if timeout is None:
        return await awaitable

    task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        raise CancellationError(operation, timeout) from None


def resolved(value: T) -> asyncio.Future[T]:
    """Return an already-completed future holding ``value``."""
    future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future
