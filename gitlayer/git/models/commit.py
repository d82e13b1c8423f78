"""Commit and log records."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from gitlayer.git import revision

LOG = "log"
LOG_FILE = "log-file"
STASH = "stash"


@dataclass(frozen=True)
class Author:
    """An author and the number of lines (or commits) attributed to them."""

    name: str
    line_count: int = 0


@dataclass(frozen=True)
class FileChange:
    """A file touched by a commit or diff."""

    path: str
    status: str
    repo_path: str = ""
    original_path: Optional[str] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None

    @property
    def is_rename(self) -> bool:
        return self.status in ("R", "C") and self.original_path is not None


@dataclass(frozen=True)
class LogCommit:
    """One commit as seen by ``git log``."""

    repo_path: str
    sha: str
    author: str
    email: Optional[str]
    date: datetime
    committed_date: datetime
    message: str
    parents: tuple[str, ...] = ()
    file_name: Optional[str] = None
    original_file_name: Optional[str] = None
    files: tuple[FileChange, ...] = ()
    status: Optional[str] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None
    type: str = LOG

    @property
    def summary(self) -> str:
        return self.message.split("\n", 1)[0]

    @property
    def short_sha(self) -> str:
        return revision.shorten(self.sha)

    @property
    def previous_sha(self) -> str:
        return self.parents[0] if self.parents else f"{self.sha}^"

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def is_uncommitted(self) -> bool:
        return revision.is_uncommitted(self.sha)

    def with_files(self, files: tuple[FileChange, ...]) -> "LogCommit":
        return replace(self, files=files)


@dataclass(frozen=True)
class StashCommit(LogCommit):
    """A stash entry; ``stash_name`` is the ``stash@{n}`` selector."""

    stash_name: str = ""
    number: Optional[int] = None


MoreFn = Callable[[Any], Awaitable[Optional["Log"]]]
QueryFn = Callable[[Optional[int]], Awaitable[Optional["Log"]]]


@dataclass(frozen=True)
class Log:
    """An ordered page of commits.

    ``more`` is present only while ``has_more`` is True. It fetches the next
    page (a limit, or ``{"until": ref}``) and returns a merged log.
    """

    repo_path: str
    commits: dict[str, LogCommit]
    authors: dict[str, Author] = field(default_factory=dict)
    sha: Optional[str] = None
    count: int = 0
    limit: Optional[int] = None
    range: Optional[tuple[int, int]] = None
    has_more: bool = False
    query: Optional[QueryFn] = field(default=None, compare=False, repr=False)
    more: Optional[MoreFn] = field(default=None, compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.commits)

    @property
    def newest(self) -> Optional[LogCommit]:
        return next(iter(self.commits.values()), None)

    @property
    def oldest(self) -> Optional[LogCommit]:
        return next(reversed(self.commits.values()), None) if self.commits else None

    def with_paging(self, query: Optional[QueryFn], more: Optional[MoreFn]) -> "Log":
        return replace(self, query=query, more=more if self.has_more else None)
