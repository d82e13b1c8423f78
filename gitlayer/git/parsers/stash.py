"""Parse ``git stash list`` output."""

from __future__ import annotations

import re
from typing import Optional

from gitlayer.git.models import STASH, Stash, StashCommit
from gitlayer.git.parsers.common import LB, RB, SL, SP, from_timestamp
from gitlayer.git.parsers.log import parse_files, read_entries

DEFAULT_FORMAT = "%n".join(
    [
        f"{LB}{SL}f{RB}",
        f"{LB}r{RB}{SP}%H",
        f"{LB}d{RB}{SP}%at",
        f"{LB}c{RB}{SP}%ct",
        f"{LB}l{RB}{SP}%gd",
        f"{LB}s{RB}",
        "%B",
        f"{LB}{SL}s{RB}",
        f"{LB}f{RB}",
    ]
)

_NUMBER_RE = re.compile(r"\{(\d+)\}$")


def parse(data: str, repo_path: str) -> Optional[Stash]:
    """Parse stash entries, newest first.

    Returns:
        The stash, or None for empty input.
    """
    if not data or not data.strip():
        return None

    commits: dict[str, StashCommit] = {}
    for entry in read_entries(data):
        if entry.sha in commits:
            continue
        selector = entry.selector or ""
        match = _NUMBER_RE.search(selector)
        commits[entry.sha] = StashCommit(
            repo_path=repo_path,
            sha=entry.sha,
            author="",
            email=None,
            date=from_timestamp(entry.date),
            committed_date=from_timestamp(entry.committed),
            message=entry.message,
            files=tuple(parse_files(entry.file_lines, repo_path)),
            type=STASH,
            stash_name=selector,
            number=int(match.group(1)) if match else None,
        )

    return Stash(repo_path=repo_path, commits=commits)
