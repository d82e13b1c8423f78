"""Helpers for recognizing and formatting git revisions."""

from __future__ import annotations

import re
from typing import Optional

DELETED_OR_MISSING = "0000000000000000000000000000000000000000-"
UNCOMMITTED = "0000000000000000000000000000000000000000"
UNCOMMITTED_STAGED = "0000000000000000000000000000000000000000:"

# Root tree of every sha1 repository; used as the "parent" of a first commit
ROOT_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

_SHA_RE = re.compile(r"(^[0-9a-f]{40}$)|(^[0]{40}(:|-)$)")
_SHA_LIKE_RE = re.compile(r"(^[0-9a-f]{40}([\^@~:]\S*)?$)|(^[0]{40}(:|-)$)")
_SHA_PARENT_RE = re.compile(r"(^[0-9A-Fa-f]{40})\^[0-3]?$")
_SHA_SHORTEN_RE = re.compile(r"^(.*?)([\^@~:].*)?$")
_UNCOMMITTED_RE = re.compile(r"^[0]{40}(?:[\^@~:]\S*)?:?$")
_UNCOMMITTED_STAGED_RE = re.compile(r"^[0]{40}([\^@~]\S*)?:$")
_RANGE_RE = re.compile(r"^(\S*?)(\.\.\.?)(\S*)\s*$")


def is_sha(ref: str) -> bool:
    return bool(_SHA_RE.match(ref))


def is_sha_like(ref: str) -> bool:
    return bool(_SHA_LIKE_RE.match(ref))


def is_sha_parent(ref: str) -> bool:
    return bool(_SHA_PARENT_RE.match(ref))


def is_uncommitted(ref: Optional[str], exact: bool = False) -> bool:
    if not ref:
        return False
    if exact:
        return ref == UNCOMMITTED
    return bool(_UNCOMMITTED_RE.match(ref))


def is_uncommitted_staged(ref: Optional[str], exact: bool = False) -> bool:
    if not ref:
        return False
    if exact:
        return ref == UNCOMMITTED_STAGED
    return bool(_UNCOMMITTED_STAGED_RE.match(ref))


def is_range(ref: Optional[str]) -> bool:
    return bool(ref) and bool(_RANGE_RE.match(ref)) and ".." in ref


def split_range(ref: str) -> Optional[tuple[str, str, str]]:
    """Split ``a..b`` / ``a...b`` into (left, notation, right)."""
    match = _RANGE_RE.match(ref)
    if match is None or ".." not in ref:
        return None
    return match.group(1), match.group(2), match.group(3)


def create_range(ref1: Optional[str], ref2: Optional[str], notation: str = "..") -> str:
    return f"{ref1 or ''}{notation}{ref2 or ''}"


def shorten(
    ref: Optional[str],
    *,
    length: int = 7,
    force: bool = False,
    working: str = "",
    uncommitted: str = "Working Tree",
    uncommitted_staged: str = "Index",
) -> str:
    """Abbreviate a sha-like ref for display; leave names untouched."""
    if not ref:
        return working
    if is_uncommitted(ref):
        return uncommitted_staged if is_uncommitted_staged(ref) else uncommitted
    if ref == "HEAD":
        return ref
    if not force and not is_sha_like(ref):
        return ref

    match = _SHA_SHORTEN_RE.match(ref)
    if match is None:
        return ref[:length]
    rev, suffix = match.group(1), match.group(2) or ""
    if len(rev) <= length:
        return ref
    return f"{rev[:length]}{suffix}"
