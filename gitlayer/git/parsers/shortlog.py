"""Parse contributor listings."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from gitlayer.git.models import Contributor, ContributorStats, GitUser
from gitlayer.git.parsers.common import split_lines

_SHORTLOG_RE = re.compile(r"^\s*(\d+)\t(.+?)(?: <(.*)>)?$")
_SHORTSTAT_RE = re.compile(
    r"(\d+) files? changed(?:, (\d+) insertions?\(\+\))?(?:, (\d+) deletions?\(-\))?"
)


def _is_current(name: str, email: Optional[str], current_user: Optional[GitUser]) -> bool:
    if current_user is None:
        return False
    if current_user.email and email:
        return current_user.email == email
    return bool(current_user.name) and current_user.name == name


def parse(data: str, repo_path: str, current_user: Optional[GitUser] = None) -> list[Contributor]:
    """Parse ``git shortlog -sne`` (``  <count>\\t<name> <email>``)."""
    contributors: list[Contributor] = []
    if not data:
        return contributors

    for line in split_lines(data):
        match = _SHORTLOG_RE.match(line)
        if match is None:
            continue
        count, name, email = match.groups()
        contributors.append(
            Contributor(
                repo_path=repo_path,
                name=name,
                email=email or None,
                count=int(count),
                current=_is_current(name, email, current_user),
            )
        )

    return contributors


def parse_from_log(
    data: str,
    repo_path: str,
    current_user: Optional[GitUser] = None,
) -> list[Contributor]:
    """Aggregate contributors from a ``SHORTLOG_FORMAT`` log.

    When the log ran with ``--shortstat`` each stat line is credited to the
    author of the commit above it. Result is sorted by commit count.
    """
    by_key: dict[str, Contributor] = {}
    if not data:
        return []

    name: Optional[str] = None
    email: Optional[str] = None
    key: Optional[str] = None

    for line in split_lines(data):
        if line.startswith("<r>"):
            name = email = key = None
        elif line.startswith("<a>"):
            name = line[4:]
        elif line.startswith("<e>"):
            email = line[4:] or None
            if name is None:
                continue
            key = f"{name}|{email or ''}"
            existing = by_key.get(key)
            if existing is None:
                by_key[key] = Contributor(
                    repo_path=repo_path,
                    name=name,
                    email=email,
                    count=1,
                    current=_is_current(name, email, current_user),
                )
            else:
                by_key[key] = replace(existing, count=existing.count + 1)
        elif key is not None:
            match = _SHORTSTAT_RE.search(line)
            if match is None:
                continue
            contributor = by_key[key]
            stats = contributor.stats or ContributorStats()
            by_key[key] = replace(
                contributor,
                stats=ContributorStats(
                    files=stats.files + int(match.group(1)),
                    additions=stats.additions + int(match.group(2) or 0),
                    deletions=stats.deletions + int(match.group(3) or 0),
                ),
            )

    return sorted(by_key.values(), key=lambda c: (-c.count, c.name.lower()))
