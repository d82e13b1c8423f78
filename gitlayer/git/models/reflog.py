"""Reflog records, used for incoming activity."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional


@dataclass(frozen=True)
class ReflogRecord:
    """One reflog entry.

    ``previous_sha`` is the sha of the next older entry with a different sha,
    which is what the ref pointed at before this movement.
    """

    repo_path: str
    sha: str
    selector: str
    date: datetime
    command: str
    command_args: str = ""
    details: str = ""
    previous_sha: Optional[str] = None

    @property
    def head_ref(self) -> str:
        return self.selector.split("@{", 1)[0]


@dataclass(frozen=True)
class Reflog:
    repo_path: str
    records: tuple[ReflogRecord, ...]
    count: int
    total: int
    limit: Optional[int]
    has_more: bool
    more: Optional[Callable[[Any], Awaitable[Optional["Reflog"]]]] = field(
        default=None, compare=False, repr=False
    )

    def with_more(self, more: Optional[Callable[[Any], Awaitable[Optional["Reflog"]]]]) -> "Reflog":
        return replace(self, more=more if self.has_more else None)
