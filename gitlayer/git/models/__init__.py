"""Immutable domain records produced by the output parsers."""

from gitlayer.git.models.blame import Blame, BlameCommit, BlameForLine, BlameLine, BlameLines
from gitlayer.git.models.commit import LOG, LOG_FILE, STASH, Author, FileChange, Log, LogCommit, StashCommit
from gitlayer.git.models.diff import Diff, DiffHunk, DiffHunkLine, DiffShortStat, HunkPosition
from gitlayer.git.models.misc import Contributor, ContributorStats, GitUser, Remote, TreeEntry
from gitlayer.git.models.reflog import Reflog, ReflogRecord
from gitlayer.git.models.refs import (
    AheadBehind,
    Branch,
    BranchTracking,
    MergeStatus,
    RebaseStatus,
    RebaseStep,
    Reference,
    Tag,
    sort_branches,
    sort_tags,
)
from gitlayer.git.models.stash import Stash
from gitlayer.git.models.status import Status, StatusFile

__all__ = [
    "LOG",
    "LOG_FILE",
    "STASH",
    "AheadBehind",
    "Author",
    "Blame",
    "BlameCommit",
    "BlameForLine",
    "BlameLine",
    "BlameLines",
    "Branch",
    "BranchTracking",
    "Contributor",
    "ContributorStats",
    "Diff",
    "DiffHunk",
    "DiffHunkLine",
    "DiffShortStat",
    "FileChange",
    "GitUser",
    "HunkPosition",
    "Log",
    "LogCommit",
    "MergeStatus",
    "RebaseStatus",
    "RebaseStep",
    "Reference",
    "Reflog",
    "ReflogRecord",
    "Remote",
    "Stash",
    "StashCommit",
    "Status",
    "StatusFile",
    "Tag",
    "TreeEntry",
    "sort_branches",
    "sort_tags",
]
