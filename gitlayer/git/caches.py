"""Repository-level result caches and their invalidation rules."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Iterator, Optional, TypeVar

from gitlayer.git.models import Branch, Contributor, GitUser, MergeStatus, RebaseStatus, Remote, Stash, Tag
from gitlayer.git.repository import RepositoryChange, RepositoryChangeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_NAMES = ("branches", "contributors", "providers", "remotes", "stashes", "status", "tags")


class ResultCache(Generic[T]):
    """A named map of futures keyed by repository path (plus qualifier).

    The future is stored before it completes so concurrent lookups share the
    work. A failed future is evicted so the next lookup retries.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]], enabled: bool = True) -> T:
        if not enabled:
            return await loader()

        future = self._entries.get(key)
        if future is None:
            logger.debug(f"{self.name} cache miss: {key}")
            future = asyncio.ensure_future(loader())
            self._entries[key] = future
            future.add_done_callback(lambda f, k=key: self._evict_failed(k, f))
        else:
            logger.debug(f"{self.name} cache hit: {key}")
        return await asyncio.shield(future)

    def _evict_failed(self, key: str, future: asyncio.Future[T]) -> None:
        if future.cancelled() or future.exception() is not None:
            if self._entries.get(key) is future:
                del self._entries[key]

    def set(self, key: str, value: T) -> None:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        self._entries[key] = future

    def peek(self, key: str) -> Optional[T]:
        """The completed value for ``key``, without loading."""
        future = self._entries.get(key)
        if future is None or not future.done() or future.cancelled() or future.exception() is not None:
            return None
        return future.result()

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class RepositoryCaches:
    """The secondary caches held by the service for every repository."""

    def __init__(self) -> None:
        self.branches: ResultCache[list[Branch]] = ResultCache("branches")
        self.tags: ResultCache[list[Tag]] = ResultCache("tags")
        self.stashes: ResultCache[Optional[Stash]] = ResultCache("stashes")
        self.contributors: ResultCache[list[Contributor]] = ResultCache("contributors")
        self.merge_status: ResultCache[Optional[MergeStatus]] = ResultCache("merge-status")
        self.rebase_status: ResultCache[Optional[RebaseStatus]] = ResultCache("rebase-status")
        self.tracked: ResultCache[bool] = ResultCache("tracked")
        self.user: ResultCache[Optional[GitUser]] = ResultCache("user")
        self.remote_provider: ResultCache[Optional[Remote]] = ResultCache("remote-provider")

    def invalidate(self, event: RepositoryChangeEvent) -> None:
        """Drop whatever ``event`` may have made stale."""
        path = event.repository.path

        if event.changed(RepositoryChange.CONFIG):
            self.user.delete(path)

        if event.changed(RepositoryChange.HEADS, RepositoryChange.REMOTES):
            self.branches.delete(path)
            self.contributors.delete(path)
            self.contributors.delete(f"stats|{path}")

        if event.changed(RepositoryChange.REMOTES, RepositoryChange.REMOTE_PROVIDERS):
            self.remote_provider.clear()

        if event.changed(RepositoryChange.INDEX, RepositoryChange.UNKNOWN):
            self.tracked.clear()

        if event.changed(RepositoryChange.MERGE):
            self.merge_status.delete(path)

        if event.changed(RepositoryChange.REBASE):
            self.rebase_status.delete(path)

        if event.changed(RepositoryChange.STASH):
            self.stashes.delete(path)

        if event.changed(RepositoryChange.TAGS):
            self.tags.delete(path)

    def reset(self, *names: str) -> None:
        """Flush caches by name (see ``CACHE_NAMES``); everything when none given.

        ``remotes`` lives on the repositories themselves and is handled by
        the caller.
        """
        everything = not names
        if everything or "branches" in names:
            self.branches.clear()
        if everything or "contributors" in names:
            self.contributors.clear()
        if everything or "providers" in names:
            self.remote_provider.clear()
        if everything or "stashes" in names:
            self.stashes.clear()
        if everything or "status" in names:
            self.merge_status.clear()
            self.rebase_status.clear()
        if everything or "tags" in names:
            self.tags.clear()
        if everything:
            self.tracked.clear()
            self.user.clear()
