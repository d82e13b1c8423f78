"""Parse ``git log --walk-reflogs`` output."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional, Sequence

from gitlayer.git.models import Reflog, ReflogRecord
from gitlayer.git.parsers.common import LB, RB, SP, from_iso, split_lines

DEFAULT_FORMAT = "%n".join(
    [
        f"{LB}r{RB}{SP}%H",
        f"{LB}d{RB}{SP}%gD",
        f"{LB}s{RB}{SP}%gs",
    ]
)

_SELECTOR_RE = re.compile(r"^(?P<selector>.+?)@\{(?P<date>.+)\}$")
_SUBJECT_RE = re.compile(r"^(?P<command>\w*)\s?(?P<args>.*?):\s(?P<details>.*)$")
_HEAD_RE = re.compile(r".*?/?HEAD$")


def parse(
    data: str,
    repo_path: str,
    commands: Sequence[str],
    limit: int,
    total_limit: int,
) -> Optional[Reflog]:
    """Parse reflog entries, keeping only those whose command is in ``commands``.

    Consecutive entries with the same sha collapse into one, preferring a
    branch selector over plain ``HEAD``. Each kept record learns the sha the
    ref pointed at before it moved from the next older entry.

    Args:
        data: Raw stdout (``--date=iso8601``).
        repo_path: Repository the reflog came from.
        commands: Reflog commands to keep (e.g. ``merge``, ``pull``).
        limit: Maximum records to keep (0 for no limit).
        total_limit: The ``-n`` git was given (0 for none).

    Returns:
        The reflog, or None for empty input.
    """
    if not data or not data.strip():
        return None

    raw: list[tuple[str, str, str, str]] = []
    sha = selector = date = None
    for line in split_lines(data):
        if line.startswith("<r>"):
            sha = line[4:].strip()
        elif line.startswith("<d>") and sha:
            match = _SELECTOR_RE.match(line[4:].strip())
            if match is not None:
                selector, date = match.group("selector"), match.group("date")
        elif line.startswith("<s>") and sha and selector and date:
            raw.append((sha, selector, date, line[4:]))
            sha = selector = date = None

    records: list[ReflogRecord] = []
    total = 0
    pending: Optional[int] = None

    for sha, selector, date, subject in raw:
        total += 1

        if records and pending is not None:
            previous = records[pending]
            if sha == previous.sha:
                if _HEAD_RE.match(previous.selector) and not _HEAD_RE.match(selector):
                    records[pending] = replace(previous, selector=selector)
                continue
            if previous.previous_sha is None:
                records[pending] = replace(previous, previous_sha=sha)
            pending = None

        match = _SUBJECT_RE.match(subject)
        if match is None:
            continue
        command = match.group("command")
        if command not in commands:
            continue
        if limit and len(records) == limit:
            break

        parsed_date = from_iso(date)
        if parsed_date is None:
            continue

        records.append(
            ReflogRecord(
                repo_path=repo_path,
                sha=sha,
                selector=selector,
                date=parsed_date,
                command=command,
                command_args=match.group("args").strip(),
                details=match.group("details"),
            )
        )
        pending = len(records) - 1

    count = len(records)
    return Reflog(
        repo_path=repo_path,
        records=tuple(records),
        count=count,
        total=total,
        limit=limit,
        has_more=(limit != 0 and count >= limit) or (total_limit != 0 and total >= total_limit),
    )
