"""Per-document result caching.

Each tracked document owns a :class:`DocumentState` of cache slots keyed by
operation and revision (``blame``, ``blame:<sha>``, ``diff:<ref1>:<ref2>``,
``log:...``). A slot holds the *future* of the result, stored before the work
finishes, so concurrent requests for the same key share one computation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from gitlayer.errors import GitLayerError
from gitlayer.git.repository import RepositoryChange, RepositoryChangeEvent
from gitlayer.utils.inflight import resolved
from gitlayer.utils.paths import is_descendant, normalize_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    """A cached (possibly still running) result.

    An *empty* entry records that the computation failed: it resolves to
    None and keeps the failure message, and is distinct from a missing key.
    """

    future: "asyncio.Future[Any]"
    error_message: Optional[str] = None

    @classmethod
    def empty(cls, error_message: str = "") -> "CacheEntry":
        return cls(resolved(None), error_message)

    @property
    def is_empty(self) -> bool:
        return self.error_message is not None


class DocumentState:
    """Cache slots of one document."""

    def __init__(self, key: str):
        self.key = key
        self.blame_failed = False
        self._entries: dict[str, CacheEntry] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str, entry: Optional[CacheEntry] = None) -> None:
        """Remove ``key``; with ``entry`` given, only while that entry is still stored."""
        if entry is None or self._entries.get(key) is entry:
            self._entries.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._entries)

    def set_blame_failure(self) -> None:
        self.blame_failed = True


@dataclass
class TrackedDocument:
    """A file whose results are worth caching."""

    key: str
    repo_path: str
    state: Optional[DocumentState] = None
    closed: bool = False
    # Has unsaved edits
    dirty: bool = False

    def ensure_state(self) -> DocumentState:
        if self.state is None:
            self.state = DocumentState(self.key)
        return self.state

    def reset(self, reason: str = "") -> None:
        if self.state is not None:
            logger.debug(f"{self.key}: cache reset ({reason or 'manual'})")
        self.state = None


@dataclass
class DocumentTracker:
    """Owns the tracked documents."""

    caching_enabled: bool = True
    _documents: dict[str, TrackedDocument] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._documents)

    def get_or_add(self, path: str, repo_path: str) -> TrackedDocument:
        key = normalize_path(path)
        document = self._documents.get(key)
        if document is None or document.closed:
            document = TrackedDocument(key=key, repo_path=normalize_path(repo_path))
            self._documents[key] = document
        return document

    def get(self, path: str) -> Optional[TrackedDocument]:
        return self._documents.get(normalize_path(path))

    def close(self, path: str) -> None:
        document = self._documents.pop(normalize_path(path), None)
        if document is not None:
            document.closed = True
            document.reset("closed")

    def reset(self, repo_path: Optional[str] = None, reason: str = "") -> None:
        """Clear the state of every document (or those under ``repo_path``)."""
        for document in self._documents.values():
            if repo_path is None or is_descendant(document.repo_path, repo_path):
                document.reset(reason)

    def on_repository_changed(self, event: RepositoryChangeEvent) -> None:
        if event.changed(RepositoryChange.HEADS, RepositoryChange.INDEX, RepositoryChange.UNKNOWN):
            self.reset(event.repository.path, reason="repository changed")


async def get_or_compute(
    document: Optional[TrackedDocument],
    key: str,
    producer: Callable[[], Awaitable[Optional[T]]],
    *,
    trap: tuple[type[BaseException], ...] = (GitLayerError,),
    caching: bool = True,
    on_error: Optional[Callable[[DocumentState], None]] = None,
) -> Optional[T]:
    """Return the cached result for ``key`` or compute and cache it.

    A hit returns the stored future even while it is still running. On a
    miss the computation is stored before it is awaited. A failure listed in
    ``trap`` replaces the slot with an empty entry and yields None, so the
    failing command isn't retried until the document's state is reset. Any
    other failure is raised to every waiter and its slot is removed.

    Args:
        document: The document owning the cache, or None to skip caching.
        key: Cache slot key.
        producer: Coroutine factory computing the result.
        trap: Exception types turned into an empty entry.
        caching: When False, compute every time and store nothing.
        on_error: Called with the document state after a trapped failure.
    """
    if document is None or not caching:
        try:
            return await producer()
        except trap as e:
            logger.debug(f"{key}: {e}")
            return None

    state = document.ensure_state()
    entry = state.get(key)
    if entry is not None:
        logger.debug(f"{document.key}: cache hit '{key}'")
        return await asyncio.shield(entry.future)

    logger.debug(f"{document.key}: cache miss '{key}'")

    async def compute() -> Optional[T]:
        try:
            return await producer()
        except trap as e:
            # The document may have been reset while this ran
            if document.state is state:
                state.set(key, CacheEntry.empty(str(e)))
                if on_error is not None:
                    on_error(state)
            logger.warning(f"{document.key}: '{key}' failed: {e}")
            return None
        except Exception:
            # Untrapped failures aren't cached; the next lookup computes again
            state.delete(key, entry)
            raise

    task = asyncio.ensure_future(compute())
    entry = CacheEntry(task)
    state.set(key, entry)
    logger.debug(f"{document.key}: cache add '{key}'")
    return await asyncio.shield(task)
