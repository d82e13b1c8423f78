"""Parse ``git status --porcelain`` (v1 and v2) output."""

from __future__ import annotations

import re
from typing import Optional

from gitlayer.git.models import AheadBehind, Status, StatusFile
from gitlayer.git.parsers.common import split_lines

_V1_BRANCH_RE = re.compile(
    r"^## (?:(?:No commits yet|Initial commit) on (?P<initial>\S+)"
    r"|(?P<branch>.+?)(?:\.\.\.(?P<upstream>\S+))?(?: \[(?:ahead (?P<ahead>\d+))?(?:, )?(?:behind (?P<behind>\d+))?(?:gone)?\])?)$"
)
_AB_RE = re.compile(r"^\+(\d+) -(\d+)$")


def _column(value: str) -> Optional[str]:
    return None if value in (" ", ".") else value


def parse(data: str, repo_path: str, porcelain_version: int) -> Optional[Status]:
    """Parse status output produced with ``--branch``.

    Returns:
        The status, or None for empty input.
    """
    if not data or not data.strip():
        return None
    if porcelain_version >= 2:
        return _parse_v2(data, repo_path)
    return _parse_v1(data, repo_path)


def _parse_v1(data: str, repo_path: str) -> Status:
    branch = ""
    upstream: Optional[str] = None
    state = AheadBehind()
    detached = False
    files: list[StatusFile] = []

    for line in split_lines(data):
        if not line:
            continue
        if line.startswith("## "):
            match = _V1_BRANCH_RE.match(line)
            if match is None:
                continue
            if match.group("initial"):
                branch = match.group("initial")
                continue
            branch = match.group("branch")
            if branch.startswith("HEAD (no branch)"):
                branch = "HEAD"
                detached = True
            upstream = match.group("upstream")
            state = AheadBehind(int(match.group("ahead") or 0), int(match.group("behind") or 0))
            continue

        files.append(parse_v1_file(line, repo_path))

    return Status(
        repo_path=repo_path,
        branch=branch,
        upstream=upstream,
        state=state,
        files=tuple(files),
        detached=detached,
    )


def parse_v1_file(line: str, repo_path: str) -> StatusFile:
    x, y, path = line[0], line[1], line[3:]
    original: Optional[str] = None
    if " -> " in path:
        original, path = path.split(" -> ", 1)
    if x == "?" and y == "?":
        return StatusFile(repo_path, path, None, "?")
    return StatusFile(repo_path, path, _column(x), _column(y), original)


def _parse_v2(data: str, repo_path: str) -> Status:
    branch = ""
    sha: Optional[str] = None
    upstream: Optional[str] = None
    state = AheadBehind()
    detached = False
    files: list[StatusFile] = []

    for line in split_lines(data):
        if not line:
            continue
        if line.startswith("# "):
            key, _, value = line[2:].partition(" ")
            if key == "branch.oid":
                sha = None if value == "(initial)" else value
            elif key == "branch.head":
                if value == "(detached)":
                    branch = "HEAD"
                    detached = True
                else:
                    branch = value
            elif key == "branch.upstream":
                upstream = value
            elif key == "branch.ab":
                match = _AB_RE.match(value)
                if match is not None:
                    state = AheadBehind(int(match.group(1)), int(match.group(2)))
            continue

        parsed = parse_v2_file(line, repo_path)
        if parsed is not None:
            files.append(parsed)

    return Status(
        repo_path=repo_path,
        branch=branch,
        sha=sha,
        upstream=upstream,
        state=state,
        files=tuple(files),
        detached=detached,
    )


def parse_v2_file(line: str, repo_path: str) -> Optional[StatusFile]:
    kind = line[:1]
    if kind == "1":
        parts = line.split(" ", 8)
        if len(parts) < 9:
            return None
        xy = parts[1]
        return StatusFile(repo_path, parts[8], _column(xy[0]), _column(xy[1]))
    if kind == "2":
        parts = line.split(" ", 9)
        if len(parts) < 10:
            return None
        xy = parts[1]
        path, _, original = parts[9].partition("\t")
        return StatusFile(repo_path, path, _column(xy[0]), _column(xy[1]), original or None)
    if kind == "u":
        parts = line.split(" ", 10)
        if len(parts) < 11:
            return None
        xy = parts[1]
        return StatusFile(repo_path, parts[10], _column(xy[0]), _column(xy[1]))
    if kind == "?":
        return StatusFile(repo_path, line[2:], None, "?")
    # "!" (ignored) and anything unknown
    return None


def parse_files(data: str, repo_path: str, porcelain_version: int) -> list[StatusFile]:
    """Parse file entries only (``status`` run without ``--branch``)."""
    files: list[StatusFile] = []
    if not data:
        return files
    for line in split_lines(data):
        if not line or line.startswith("#"):
            continue
        parsed = parse_v2_file(line, repo_path) if porcelain_version >= 2 else parse_v1_file(line, repo_path)
        if parsed is not None:
            files.append(parsed)
    return files
