"""Parse unified diffs, ``--name-status`` and ``--shortstat`` output."""

from __future__ import annotations

import re
from typing import Optional

from gitlayer.git.models import Diff, DiffHunk, DiffHunkLine, DiffShortStat, FileChange, HunkPosition
from gitlayer.git.parsers.common import parse_name_status_line, split_lines

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_SHORTSTAT_RE = re.compile(
    r"(?P<files>\d+) files? changed"
    r"(?:, (?P<additions>\d+) insertions?\(\+\))?"
    r"(?:, (?P<deletions>\d+) deletions?\(-\))?"
)


def _position(start: int, count: Optional[str]) -> HunkPosition:
    # A missing count means 1; a count of 0 means an empty span before `start`
    n = 1 if count is None else int(count)
    return HunkPosition(start=start, end=start + n - 1 if n else start)


def _hunk_lines(body: list[str], previous_start: int, current_start: int) -> tuple[DiffHunkLine, ...]:
    lines: list[DiffHunkLine] = []
    previous, current = previous_start, current_start
    for raw in body:
        if raw.startswith("\\"):
            # "\ No newline at end of file"
            continue
        marker, text = (raw[:1], raw[1:]) if raw else (" ", "")
        if marker == "+":
            lines.append(DiffHunkLine(text, "added", None, current))
            current += 1
        elif marker == "-":
            lines.append(DiffHunkLine(text, "removed", previous, None))
            previous += 1
        else:
            lines.append(DiffHunkLine(text, "unchanged", previous, current))
            previous += 1
            current += 1
    return tuple(lines)


def parse(data: str, include_contents: bool = False) -> Optional[Diff]:
    """Parse a unified diff into hunks.

    Returns:
        The diff, or None when ``data`` has no hunks.
    """
    if not data or not data.strip():
        return None

    hunks: list[DiffHunk] = []
    header: Optional[re.Match[str]] = None
    body: list[str] = []

    def flush() -> None:
        if header is None:
            return
        previous_start, previous_count, current_start, current_count = header.groups()
        # Trailing blank line is the record separator, not content
        while body and body[-1] == "":
            body.pop()
        hunks.append(
            DiffHunk(
                diff="\n".join(body),
                previous=_position(int(previous_start), previous_count),
                current=_position(int(current_start), current_count),
                lines=_hunk_lines(body, int(previous_start), int(current_start)),
            )
        )

    for line in split_lines(data):
        match = _HUNK_HEADER_RE.match(line)
        if match is not None:
            flush()
            header = match
            body = []
        elif header is not None:
            body.append(line)
    flush()

    if not hunks:
        return None
    return Diff(hunks=tuple(hunks), diff=data if include_contents else None)


def parse_name_status(data: str, repo_path: str = "") -> Optional[list[FileChange]]:
    """Parse ``--name-status`` output.

    Returns:
        One :class:`FileChange` per line, or None for empty input.
    """
    if not data or not data.strip():
        return None

    files: list[FileChange] = []
    for line in split_lines(data):
        if not line.strip():
            continue
        change = parse_name_status_line(line, repo_path)
        if change is not None:
            files.append(change)
    return files


def parse_shortstat(data: str) -> Optional[DiffShortStat]:
    """Parse ``N files changed, X insertions(+), Y deletions(-)``."""
    if not data or not data.strip():
        return None
    match = _SHORTSTAT_RE.search(data)
    if match is None:
        return None
    return DiffShortStat(
        files=int(match.group("files")),
        additions=int(match.group("additions") or 0),
        deletions=int(match.group("deletions") or 0),
    )
