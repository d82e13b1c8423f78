"""Pieces shared by the output parsers and the format strings they expect."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from gitlayer.git.models import FileChange, GitUser

# Escapes understood by --format; they render as < > / and a space
LB = "%x3c"
RB = "%x3e"
SL = "%x2f"
SP = "%x20"

YOU = "You"

_NAME_STATUS_RE = re.compile(r"^([ACDMRTUXB])(\d*)\t([^\t]+)(?:\t(.+))?$")


def from_timestamp(value: str) -> datetime:
    """Parse unix seconds; anything unparseable becomes the epoch."""
    try:
        return datetime.fromtimestamp(int(value.strip()), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return datetime.fromtimestamp(0, tz=timezone.utc)


def from_iso(value: str) -> Optional[datetime]:
    """Parse git's ``iso8601`` date (``2021-03-04 10:11:12 +0100``)."""
    value = value.strip()
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def display_author(name: str, email: Optional[str], current_user: Optional[GitUser]) -> str:
    """Show the current user as "You"."""
    if current_user is None or not current_user.name:
        return name
    if name == current_user.name and (not current_user.email or current_user.email == email):
        return YOU
    return name


def parse_name_status_line(line: str, repo_path: str = "") -> Optional[FileChange]:
    """Parse ``M\\tpath`` or ``R100\\told\\tnew`` into a :class:`FileChange`."""
    match = _NAME_STATUS_RE.match(line.rstrip("\r"))
    if match is None:
        return None
    status, _, first, second = match.groups()
    if second is not None:
        return FileChange(path=second, status=status, repo_path=repo_path, original_path=first)
    return FileChange(path=first, status=status, repo_path=repo_path)


def split_lines(data: str) -> list[str]:
    return data.replace("\r\n", "\n").split("\n")
