"""Parse ``git tag -l`` output."""

from __future__ import annotations

import re

from gitlayer.git.models import Tag
from gitlayer.git.parsers.common import from_iso, split_lines

_LB = "%3c"
_RB = "%3e"

DEFAULT_FORMAT = "".join(
    [
        f"{_LB}n{_RB}%(refname)",
        f"{_LB}*r{_RB}%(*objectname)",
        f"{_LB}r{_RB}%(objectname)",
        f"{_LB}d{_RB}%(creatordate:iso8601)",
        f"{_LB}ad{_RB}%(authordate:iso8601)",
        f"{_LB}s{_RB}%(subject)",
    ]
)

_TAG_RE = re.compile(r"^<n>(?P<ref>.+)<\*r>(?P<peeled>.*)<r>(?P<sha>.*)<d>(?P<date>.*)<ad>(?P<author_date>.*)<s>(?P<message>.*)$")


def parse(data: str, repo_path: str) -> list[Tag]:
    """Parse one tag per line.

    Annotated tags report the tagged commit as ``*objectname``; that is
    preferred over the tag object's own sha.
    """
    tags: list[Tag] = []
    if not data:
        return tags

    for line in split_lines(data):
        match = _TAG_RE.match(line.strip())
        if match is None:
            continue

        ref = match.group("ref")
        name = ref[len("refs/tags/"):] if ref.startswith("refs/tags/") else ref
        tags.append(
            Tag(
                repo_path=repo_path,
                name=name,
                sha=match.group("peeled") or match.group("sha"),
                message=match.group("message"),
                date=from_iso(match.group("date")),
                commit_date=from_iso(match.group("author_date")),
            )
        )

    return tags
