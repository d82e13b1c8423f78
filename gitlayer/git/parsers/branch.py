"""Parse ``git for-each-ref`` branch output."""

from __future__ import annotations

import re
from typing import Optional

from gitlayer.git.models import AheadBehind, Branch, BranchTracking
from gitlayer.git.parsers.common import from_iso, split_lines

# for-each-ref spells hex escapes without the "x"
_LB = "%3c"
_RB = "%3e"

DEFAULT_FORMAT = "".join(
    [
        f"{_LB}h{_RB}%(HEAD)",
        f"{_LB}n{_RB}%(refname)",
        f"{_LB}u{_RB}%(upstream:short)",
        f"{_LB}t{_RB}%(upstream:track)",
        f"{_LB}r{_RB}%(objectname)",
        f"{_LB}d{_RB}%(committerdate:iso8601)",
    ]
)

_BRANCH_RE = re.compile(
    r"^<h>(?P<current>.?)<n>(?P<ref>.+)<u>(?P<upstream>.*)<t>"
    r"(?P<track>\[(?:ahead (?P<ahead>\d+))?[,\s]*(?:behind (?P<behind>\d+))?\]|\[gone\])?"
    r"<r>(?P<sha>.*)<d>(?P<date>.*)$"
)


def parse(data: str, repo_path: str) -> list[Branch]:
    """Parse one branch per line, skipping symbolic ``<remote>/HEAD`` refs."""
    branches: list[Branch] = []
    if not data:
        return branches

    for line in split_lines(data):
        match = _BRANCH_RE.match(line.strip())
        if match is None:
            continue

        ref = match.group("ref")
        if ref.startswith("refs/remotes/"):
            name = ref[len("refs/remotes/"):]
            remote = True
            if name.endswith("/HEAD"):
                continue
        elif ref.startswith("refs/heads/"):
            name = ref[len("refs/heads/"):]
            remote = False
        else:
            continue

        upstream: Optional[BranchTracking] = None
        if match.group("upstream"):
            upstream = BranchTracking(
                name=match.group("upstream"),
                missing=match.group("track") == "[gone]",
            )

        branches.append(
            Branch(
                repo_path=repo_path,
                name=name,
                remote=remote,
                current=match.group("current") == "*",
                date=from_iso(match.group("date")),
                sha=match.group("sha") or None,
                upstream=upstream,
                state=AheadBehind(
                    ahead=int(match.group("ahead") or 0),
                    behind=int(match.group("behind") or 0),
                ),
            )
        )

    return branches
