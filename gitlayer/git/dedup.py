"""Collapse concurrent identical git invocations into one process."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Union

from gitlayer.git.invocation import CommandInvocation
from gitlayer.utils.inflight import InflightGroup

logger = logging.getLogger(__name__)

Output = Union[str, bytes]


class CommandDeduplicator:
    """Pending-command map keyed by :attr:`CommandInvocation.signature`.

    While a command is running, any structurally identical invocation (same
    correlation key, cwd and args) awaits the running one instead of
    spawning another process.
    """

    def __init__(self) -> None:
        self._pending: InflightGroup[Output] = InflightGroup("git")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, inv: CommandInvocation) -> bool:
        return inv.signature in self._pending

    async def run(
        self,
        inv: CommandInvocation,
        factory: Callable[[], Awaitable[Output]],
    ) -> tuple[Output, bool]:
        """Run ``factory`` unless an identical invocation is already running.

        Returns:
            Tuple of (output, waited) where ``waited`` is True if this caller
            joined an invocation that was already in flight.

        Raises:
            Whatever the shared invocation raised.
        """
        task, waited = self._pending.start(inv.signature, factory)
        if waited:
            logger.debug(f"{inv.command} • waiting...")

        return await asyncio.shield(task), waited
