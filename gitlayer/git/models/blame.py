"""Blame records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from gitlayer.git import revision
from gitlayer.git.models.commit import Author


@dataclass(frozen=True)
class BlameLine:
    """Attribution of one line; ``line`` and ``original_line`` are 0-based."""

    sha: str
    line: int
    original_line: int
    previous_sha: Optional[str] = None


@dataclass(frozen=True)
class BlameCommit:
    """A commit that owns at least one line of a blamed file."""

    repo_path: str
    sha: str
    author: str
    email: Optional[str]
    date: datetime
    committer: str
    committer_email: Optional[str]
    committed_date: datetime
    message: str
    file_name: str
    lines: tuple[BlameLine, ...] = ()
    original_file_name: Optional[str] = None
    previous_sha: Optional[str] = None
    previous_file_name: Optional[str] = None
    boundary: bool = False

    @property
    def is_uncommitted(self) -> bool:
        return revision.is_uncommitted(self.sha)


@dataclass(frozen=True)
class Blame:
    """Blame for a whole file."""

    repo_path: str
    authors: dict[str, Author]
    commits: dict[str, BlameCommit]
    lines: tuple[BlameLine, ...]

    def line(self, index: int) -> Optional[BlameLine]:
        if 0 <= index < len(self.lines):
            return self.lines[index]
        return None


@dataclass(frozen=True)
class BlameLines:
    """Blame restricted to a range of lines (``all_lines`` keeps the whole file)."""

    repo_path: str
    authors: dict[str, Author]
    commits: dict[str, BlameCommit]
    lines: tuple[BlameLine, ...]
    all_lines: tuple[BlameLine, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class BlameForLine:
    """The commit and line record for a single line."""

    author: Author
    commit: BlameCommit
    line: BlameLine
