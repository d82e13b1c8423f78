"""Parsers turning git's stdout into :mod:`gitlayer.git.models` records.

Each module exposes the ``--format`` string its command must be run with
next to the function that reads that output.
"""

from gitlayer.git.parsers import (
    blame,
    branch,
    diff,
    log,
    reflog,
    remote,
    shortlog,
    stash,
    status,
    tag,
    tree,
)

__all__ = [
    "blame",
    "branch",
    "diff",
    "log",
    "reflog",
    "remote",
    "shortlog",
    "stash",
    "status",
    "tag",
    "tree",
]
