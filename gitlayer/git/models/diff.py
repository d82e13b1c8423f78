"""Diff records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

LineState = Literal["added", "removed", "unchanged"]


@dataclass(frozen=True)
class HunkPosition:
    """1-based, inclusive line span of one side of a hunk."""

    start: int
    end: int

    def contains(self, line: int) -> bool:
        return self.start <= line <= self.end


@dataclass(frozen=True)
class DiffHunkLine:
    """One line of a hunk with its position on each side (None if absent)."""

    text: str
    state: LineState
    previous_line: Optional[int]
    current_line: Optional[int]


@dataclass(frozen=True)
class DiffHunk:
    diff: str
    previous: HunkPosition
    current: HunkPosition
    lines: tuple[DiffHunkLine, ...]

    def line_for_current(self, line: int) -> Optional[DiffHunkLine]:
        for hunk_line in self.lines:
            if hunk_line.current_line == line:
                return hunk_line
        return None


@dataclass(frozen=True)
class Diff:
    hunks: tuple[DiffHunk, ...]
    diff: Optional[str] = None

    def hunk_for_line(self, line: int) -> Optional[DiffHunk]:
        for hunk in self.hunks:
            if hunk.current.contains(line):
                return hunk
        return None


@dataclass(frozen=True)
class DiffShortStat:
    files: int
    additions: int
    deletions: int
