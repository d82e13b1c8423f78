"""Classification of git's human-readable diagnostics.

git reports most conditions only as stderr text, so these compiled pattern
tables are how failures are told apart. ``WARNINGS`` are expected conditions
that resolve to an empty result; ``ERRORS`` are matched by specific callers
that know how to recover from them.
"""

from __future__ import annotations

import re
from typing import Optional

WARNINGS: dict[str, re.Pattern[str]] = {
    "not_a_repository": re.compile(r"Not a git repository", re.IGNORECASE),
    "outside_repository": re.compile(r"is outside repository", re.IGNORECASE),
    "no_path": re.compile(r"no such path", re.IGNORECASE),
    "no_commits": re.compile(r"does not have any commits", re.IGNORECASE),
    "not_found": re.compile(r"Path '.*?' does not exist in", re.IGNORECASE),
    "found_but_not_in_revision": re.compile(r"Path '.*?' exists on disk, but not in", re.IGNORECASE),
    "head_not_a_branch": re.compile(r"HEAD does not point to a branch", re.IGNORECASE),
    "no_upstream": re.compile(r"no upstream configured for branch '(.*?)'", re.IGNORECASE),
    "unknown_revision": re.compile(
        r"ambiguous argument '.*?': unknown revision or path not in the working tree"
        r"|not stored as a remote-tracking branch",
        re.IGNORECASE,
    ),
    "must_run_in_work_tree": re.compile(r"this operation must be run in a work tree", re.IGNORECASE),
    "patch_with_conflicts": re.compile(r"Applied patch to '.*?' with conflicts", re.IGNORECASE),
    "no_remote_repository_specified": re.compile(r"No remote repository specified\.", re.IGNORECASE),
    "remote_connection_error": re.compile(r"Could not read from remote repository", re.IGNORECASE),
    "not_a_git_command": re.compile(r"'.+' is not a git command", re.IGNORECASE),
}

ERRORS: dict[str, re.Pattern[str]] = {
    "bad_revision": re.compile(r"bad revision '(.*?)'", re.IGNORECASE),
    "no_fast_forward": re.compile(r"\(non-fast-forward\)", re.IGNORECASE),
    "no_merge_base": re.compile(r"no merge base", re.IGNORECASE),
    "not_a_valid_object_name": re.compile(r"Not a valid object name", re.IGNORECASE),
    "invalid_line_count": re.compile(r"file .+? has only \d+ lines", re.IGNORECASE),
}

_NOT_A_SYMBOLIC_REF = re.compile(r"is not a symbolic ref")


def match_warning(message: str) -> Optional[str]:
    """Return the name of the first benign warning ``message`` matches."""
    if not message:
        return None
    for name, pattern in WARNINGS.items():
        if pattern.search(message):
            return name
    return None


def is_warning(message: str, name: str) -> bool:
    return bool(message) and WARNINGS[name].search(message) is not None


def is_error(message: str, name: str) -> bool:
    return bool(message) and ERRORS[name].search(message) is not None


def bad_revision(message: str) -> Optional[str]:
    """Return the ref named in a ``bad revision '<ref>'`` message."""
    if not message:
        return None
    match = ERRORS["bad_revision"].search(message)
    return match.group(1) if match else None


def is_not_a_symbolic_ref(message: str) -> bool:
    return bool(message) and _NOT_A_SYMBOLIC_REF.search(message) is not None


def clean_message(message: str) -> str:
    """Flatten a git error message for a single log line."""
    return re.sub(r"\r?\n|\r", " • ", message.strip().replace("fatal: ", ""))
