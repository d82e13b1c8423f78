"""Locate the git executable and determine its version."""

from __future__ import annotations

import logging
import re
import shutil
import time
from dataclasses import dataclass
from typing import Optional, Union

from gitlayer.errors import GitNotFoundError, RunError
from gitlayer.git.shell import IS_WINDOWS, ProcessRunner

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^git version (\d+(?:\.\d+)*)")


@dataclass(frozen=True)
class GitLocation:
    """A git executable and the version it reports."""

    path: str
    version: str

    @property
    def version_tuple(self) -> tuple[int, int, int]:
        return parse_version(self.version)


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``2.39.2`` (or ``2.39.2.windows.1``) into a comparable tuple.

    Missing or non-numeric components count as 0.
    """
    parts: list[int] = []
    for piece in version.strip().split(".")[:3]:
        match = re.match(r"\d+", piece)
        parts.append(int(match.group(0)) if match else 0)
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def compare_versions(current: str, required: str) -> int:
    """Return -1, 0 or 1 as ``current`` is older than, equal to or newer than ``required``."""
    a, b = parse_version(current), parse_version(required)
    return (a > b) - (a < b)


def version_supports(current: str, required: str) -> bool:
    return compare_versions(current, required) >= 0


async def _find_specific_git(runner: ProcessRunner, path: str) -> GitLocation:
    data = await runner.run(path, ["--version"], "utf8")
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    match = _VERSION_RE.match(data.strip())
    if match is None:
        raise RunError(f"Unexpected git --version output: {data.strip()!r}", command=f"{path} --version")

    # Resolve a bare name so logs show which git was actually picked
    if path == "git":
        resolved = shutil.which("git")
        if resolved:
            path = resolved

    return GitLocation(path=path, version=match.group(1))


async def find_git_path(
    paths: Optional[Union[str, list[str]]] = None,
    runner: Optional[ProcessRunner] = None,
) -> GitLocation:
    """Find a working git executable.

    Args:
        paths: Explicit candidate path(s) to try before searching PATH.
        runner: Process runner to use (a fresh one by default).

    Returns:
        The first candidate that reports a git version.

    Raises:
        GitNotFoundError: If no candidate works.
    """
    runner = runner or ProcessRunner()
    start = time.perf_counter()

    candidates: list[str] = []
    if isinstance(paths, str):
        candidates.append(paths)
    elif paths:
        candidates.extend(paths)

    candidates.append("git")
    if IS_WINDOWS:
        candidates.append("git.exe")

    for candidate in candidates:
        try:
            location = await _find_specific_git(runner, candidate)
        except RunError as e:
            logger.debug(f"git candidate {candidate} rejected: {e.message}")
            continue

        duration = (time.perf_counter() - start) * 1000
        where = "PATH" if candidate in ("git", "git.exe") else location.path
        logger.info(f"Git found: {location.version} @ {where} • {duration:.0f} ms")
        return location

    raise GitNotFoundError(candidates)
