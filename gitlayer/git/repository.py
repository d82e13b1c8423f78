"""Repository handles and their change events."""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TYPE_CHECKING

from gitlayer.utils.paths import normalize_path

if TYPE_CHECKING:
    from gitlayer.git.models import Branch, Remote

logger = logging.getLogger(__name__)


class RepositoryChange(str, Enum):
    """What changed in a repository."""

    CONFIG = "config"
    CLOSED = "closed"
    HEADS = "heads"
    INDEX = "index"
    MERGE = "merge"
    REBASE = "rebase"
    REMOTES = "remotes"
    REMOTE_PROVIDERS = "providers"
    STASH = "stash"
    TAGS = "tags"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RepositoryChangeEvent:
    repository: "Repository"
    changes: frozenset[RepositoryChange]

    def changed(self, *kinds: RepositoryChange) -> bool:
        """True if any of ``kinds`` is part of this event."""
        return any(kind in self.changes for kind in kinds)


def classify_dot_git_path(path: str) -> Optional[RepositoryChange]:
    """Map a path relative to ``.git`` onto the change it signals.

    Intended for file watchers: lock files and unknown paths return None.

    Example:
        >>> classify_dot_git_path("refs/heads/main")
        <RepositoryChange.HEADS: 'heads'>
    """
    path = normalize_path(path).lstrip("/")
    if path.startswith(".git/"):
        path = path[len(".git/"):]
    if not path or path.endswith(".lock"):
        return None

    if path == "config":
        return RepositoryChange.CONFIG
    if path == "index":
        return RepositoryChange.INDEX
    if path in ("HEAD", "ORIG_HEAD", "FETCH_HEAD") or path.startswith("refs/heads/"):
        return RepositoryChange.HEADS
    if path.startswith("refs/remotes/"):
        return RepositoryChange.REMOTES
    if path.startswith("refs/tags/"):
        return RepositoryChange.TAGS
    if path == "refs/stash" or path.startswith("logs/refs/stash"):
        return RepositoryChange.STASH
    if path == "MERGE_HEAD":
        return RepositoryChange.MERGE
    if path == "REBASE_HEAD" or path.startswith("rebase-merge") or path.startswith("rebase-apply"):
        return RepositoryChange.REBASE
    if path == "packed-refs":
        return RepositoryChange.UNKNOWN
    return None


@dataclass(frozen=True)
class WorkspaceFolder:
    """A root folder opened by the host."""

    path: str
    name: str = ""
    index: int = 0


Listener = Callable[[RepositoryChangeEvent], None]


class Repository:
    """One git work tree known to the service.

    Holds its own remotes and current-branch results; those are dropped when
    a change event says they may be stale.
    """

    def __init__(
        self,
        path: str,
        folder: Optional[WorkspaceFolder] = None,
        root: bool = False,
        suspended: bool = False,
        supports_change_events: bool = True,
    ):
        self.path = normalize_path(path)
        self.folder = folder
        self.root = root
        self.suspended = suspended
        self.supports_change_events = supports_change_events
        self.closed = False

        self._listeners: list[Listener] = []
        self._pending: Optional[RepositoryChangeEvent] = None
        self._remotes: Optional[asyncio.Future[list["Remote"]]] = None
        self._branch: Optional[asyncio.Future[Optional["Branch"]]] = None

    def __repr__(self) -> str:
        return f"Repository({self.path!r}, root={self.root}, closed={self.closed})"

    @property
    def id(self) -> str:
        return self.path

    @property
    def name(self) -> str:
        if self.folder is not None and self.root and self.folder.name:
            return self.folder.name
        return posixpath.basename(self.path) or self.path

    def on_did_change(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to change events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fire_change(self, *changes: RepositoryChange) -> None:
        if not changes:
            return

        event = RepositoryChangeEvent(self, frozenset(changes))
        if event.changed(RepositoryChange.HEADS, RepositoryChange.UNKNOWN):
            self.reset_caches("branch")
        if event.changed(RepositoryChange.REMOTES, RepositoryChange.REMOTE_PROVIDERS, RepositoryChange.CONFIG):
            self.reset_caches("remotes")

        if self.suspended and not event.changed(RepositoryChange.CLOSED):
            pending = self._pending.changes if self._pending is not None else frozenset()
            self._pending = RepositoryChangeEvent(self, pending | event.changes)
            logger.debug(f"{self.path}: suspended, queued {sorted(c.value for c in changes)}")
            return

        self._notify(event)

    def _notify(self, event: RepositoryChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def suspend(self) -> None:
        self.suspended = True

    def resume(self) -> None:
        """Deliver events again, firing whatever queued up while suspended as one event."""
        self.suspended = False
        pending, self._pending = self._pending, None
        if pending is not None and not self.closed:
            self._notify(pending)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._pending = None
        self.reset_caches()
        self.fire_change(RepositoryChange.CLOSED)

    def reset_caches(self, *names: str) -> None:
        """Drop cached results (``branch`` and/or ``remotes``; all if none given)."""
        if not names or "branch" in names:
            self._branch = None
        if not names or "remotes" in names:
            self._remotes = None

    async def get_remotes(self, loader: Callable[[], Awaitable[list["Remote"]]]) -> list["Remote"]:
        """Get the remotes, loading them once until the next remotes change."""
        if self._remotes is None:
            self._remotes = asyncio.ensure_future(loader())
        try:
            return await asyncio.shield(self._remotes)
        except Exception:
            self._remotes = None
            raise

    async def get_branch(self, loader: Callable[[], Awaitable[Optional["Branch"]]]) -> Optional["Branch"]:
        """Get the current branch, loading it once until HEAD moves."""
        if self._branch is None:
            self._branch = asyncio.ensure_future(loader())
        try:
            return await asyncio.shield(self._branch)
        except Exception:
            self._branch = None
            raise
