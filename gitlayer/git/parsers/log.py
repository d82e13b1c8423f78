"""Parse ``git log`` output written with the formats defined here."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from gitlayer.git.models import LOG, LOG_FILE, Author, FileChange, GitUser, Log, LogCommit
from gitlayer.git.parsers.common import (
    LB,
    RB,
    SL,
    SP,
    display_author,
    from_timestamp,
    parse_name_status_line,
    split_lines,
)

# Every record opens with </f> so the files of the previous record end there
DEFAULT_FORMAT = "%n".join(
    [
        f"{LB}{SL}f{RB}",
        f"{LB}r{RB}{SP}%H",
        f"{LB}a{RB}{SP}%aN",
        f"{LB}e{RB}{SP}%aE",
        f"{LB}d{RB}{SP}%at",
        f"{LB}c{RB}{SP}%ct",
        f"{LB}p{RB}{SP}%P",
        f"{LB}s{RB}",
        "%B",
        f"{LB}{SL}s{RB}",
        f"{LB}f{RB}",
    ]
)
SIMPLE_FORMAT = f"{LB}r{RB}{SP}%H"
REFS_FORMAT = f"{LB}r{RB}{SP}%H"
SHORTLOG_FORMAT = "%n".join(
    [
        f"{LB}r{RB}{SP}%H",
        f"{LB}a{RB}{SP}%aN",
        f"{LB}e{RB}{SP}%aE",
    ]
)

_NUMSTAT_RE = re.compile(r"^(\d+|-)\t(\d+|-)\t(.+)$")
_BRACE_RENAME_RE = re.compile(r"^(.*?)\{(.*?) => (.*?)\}(.*)$")
_SUMMARY_RE = re.compile(r"^(create|delete) mode \d+ (.+)$|^(rename|copy) (.+) \(\d+%\)$")
_DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")


@dataclass
class RawEntry:
    sha: str = ""
    author: str = ""
    email: Optional[str] = None
    date: str = "0"
    committed: str = "0"
    parents: tuple[str, ...] = ()
    message: str = ""
    selector: Optional[str] = None
    in_files: bool = False
    file_lines: list[str] = field(default_factory=list)


def _value(line: str) -> str:
    # "<x> value" -> "value"
    return line[4:] if len(line) > 3 else ""


def split_rename(raw: str) -> tuple[str, Optional[str]]:
    """Split numstat's ``a => b`` / ``dir/{a => b}/f`` path into (path, original)."""
    match = _BRACE_RENAME_RE.match(raw)
    if match is not None:
        prefix, old, new, suffix = match.groups()
        original = re.sub(r"/{2,}", "/", f"{prefix}{old}{suffix}").lstrip("/")
        path = re.sub(r"/{2,}", "/", f"{prefix}{new}{suffix}").lstrip("/")
        return path, original
    if " => " in raw:
        old, new = raw.split(" => ", 1)
        return new, old
    return raw, None


def read_entries(data: str) -> list[RawEntry]:
    entries: list[RawEntry] = []
    entry: Optional[RawEntry] = None

    lines = split_lines(data)
    i = 0
    while i < len(lines):
        line = lines[i]
        if line == "</f>":
            entry = RawEntry()
            entries.append(entry)
        elif entry is None:
            pass
        elif entry.in_files:
            if line.strip():
                entry.file_lines.append(line)
        elif line.startswith("<r>"):
            entry.sha = _value(line).strip()
        elif line.startswith("<a>"):
            entry.author = _value(line)
        elif line.startswith("<e>"):
            entry.email = _value(line) or None
        elif line.startswith("<d>"):
            entry.date = _value(line)
        elif line.startswith("<c>"):
            entry.committed = _value(line)
        elif line.startswith("<l>"):
            entry.selector = _value(line).strip()
        elif line.startswith("<p>"):
            entry.parents = tuple(_value(line).split())
        elif line == "<s>":
            message: list[str] = []
            i += 1
            while i < len(lines) and lines[i] != "</s>":
                message.append(lines[i])
                i += 1
            entry.message = "\n".join(message).strip()
        elif line == "<f>":
            entry.in_files = True
        i += 1

    return [e for e in entries if e.sha]


def parse_files(lines: list[str], repo_path: str = "") -> list[FileChange]:
    """Parse a record's file section.

    Handles ``--name-status``, ``--numstat --summary`` and the diff that
    ``-L`` emits in place of either.
    """
    files: dict[str, FileChange] = {}
    summary: dict[str, str] = {}
    in_diff = False

    for line in lines:
        if line.startswith("diff --git "):
            in_diff = True
            match = _DIFF_GIT_RE.match(line)
            if match is not None:
                old, new = match.groups()
                files.setdefault(
                    new,
                    FileChange(
                        path=new,
                        status="R" if old != new else "M",
                        repo_path=repo_path,
                        original_path=old if old != new else None,
                    ),
                )
            continue
        if in_diff:
            continue

        if line.startswith(" "):
            match = _SUMMARY_RE.match(line.strip())
            if match is not None:
                if match.group(1):
                    summary[match.group(2)] = "A" if match.group(1) == "create" else "D"
                else:
                    path, _ = split_rename(match.group(4))
                    summary[path] = "R" if match.group(3) == "rename" else "C"
            continue

        match = _NUMSTAT_RE.match(line)
        if match is not None:
            added, deleted, raw = match.groups()
            path, original = split_rename(raw)
            files[path] = FileChange(
                path=path,
                status="R" if original else "M",
                repo_path=repo_path,
                original_path=original,
                additions=int(added) if added != "-" else None,
                deletions=int(deleted) if deleted != "-" else None,
            )
            continue

        change = parse_name_status_line(line, repo_path)
        if change is not None:
            files.setdefault(change.path, change)

    for path, status in summary.items():
        change = files.get(path)
        if change is not None and change.status != status:
            files[path] = FileChange(
                path=change.path,
                status=status,
                repo_path=change.repo_path,
                original_path=change.original_path,
                additions=change.additions,
                deletions=change.deletions,
            )

    return list(files.values())


def parse(
    data: str,
    kind: str,
    repo_path: str,
    file_name: Optional[str] = None,
    sha: Optional[str] = None,
    current_user: Optional[GitUser] = None,
    limit: Optional[int] = None,
    reverse: bool = False,
    range: Optional[tuple[int, int]] = None,
) -> Optional[Log]:
    """Parse ``DEFAULT_FORMAT`` output into a :class:`Log`.

    Args:
        data: Raw stdout.
        kind: ``LOG`` for repository logs, ``LOG_FILE`` for single-file logs.
        repo_path: Repository the log came from.
        file_name: The file (relative to ``repo_path``) for file logs.
        sha: The ref the log was requested for.
        current_user: Used to show the user's own commits as "You".
        limit: Requested page size; git was asked for one more than this.
        reverse: git ran with ``--reverse`` and no ``-n``, so every entry is
            kept and the log never has more.
        range: Line range for ``-L`` logs.

    Returns:
        The parsed log, or None when there's nothing to parse.
    """
    if not data or not data.strip():
        return None

    commits: dict[str, LogCommit] = {}
    line_counts: dict[str, int] = {}
    has_more = False

    for entry in read_entries(data):
        files = parse_files(entry.file_lines, repo_path)

        existing = commits.get(entry.sha)
        if existing is not None:
            # -m repeats merge commits once per parent
            if kind == LOG and files:
                known = {f.path for f in existing.files}
                extra = tuple(f for f in files if f.path not in known)
                if extra:
                    commits[entry.sha] = existing.with_files(existing.files + extra)
            continue

        if limit and not reverse and len(commits) >= limit:
            has_more = True
            break

        author = display_author(entry.author, entry.email, current_user)

        if kind == LOG_FILE:
            change = _pick_file(files, file_name)
            commit = LogCommit(
                repo_path=repo_path,
                sha=entry.sha,
                author=author,
                email=entry.email,
                date=from_timestamp(entry.date),
                committed_date=from_timestamp(entry.committed),
                message=entry.message,
                parents=entry.parents,
                file_name=change.path if change else file_name,
                original_file_name=change.original_path if change else None,
                files=(change,) if change else (),
                status=change.status if change else None,
                additions=change.additions if change else None,
                deletions=change.deletions if change else None,
                type=LOG_FILE,
            )
        else:
            commit = LogCommit(
                repo_path=repo_path,
                sha=entry.sha,
                author=author,
                email=entry.email,
                date=from_timestamp(entry.date),
                committed_date=from_timestamp(entry.committed),
                message=entry.message,
                parents=entry.parents,
                files=tuple(files),
                type=LOG,
            )

        commits[entry.sha] = commit
        line_counts[author] = line_counts.get(author, 0) + (commit.additions or 0) + (commit.deletions or 0)

    if not commits:
        return None

    authors = {name: Author(name, count) for name, count in line_counts.items()}
    return Log(
        repo_path=repo_path,
        commits=commits,
        authors=authors,
        sha=sha,
        count=len(commits),
        limit=limit,
        range=range,
        has_more=has_more,
    )


def _pick_file(files: list[FileChange], file_name: Optional[str]) -> Optional[FileChange]:
    if not files:
        return None
    if file_name:
        for change in files:
            if change.path == file_name or change.original_path == file_name:
                return change
    return files[0]


def parse_refs_only(data: str) -> list[str]:
    """Return the shas of a ``REFS_FORMAT`` log, newest first, without duplicates."""
    refs: dict[str, None] = {}
    for line in split_lines(data or ""):
        if line.startswith("<r>"):
            ref = _value(line).strip()
            if ref:
                refs[ref] = None
    return list(refs)


def parse_last_ref_only(data: str) -> Optional[str]:
    refs = parse_refs_only(data)
    return refs[-1] if refs else None


def _simple_entries(data: str) -> list[tuple[str, list[FileChange]]]:
    entries: list[tuple[str, list[FileChange]]] = []
    for line in split_lines(data or ""):
        if line.startswith("<r>"):
            entries.append((_value(line).strip(), []))
        elif entries and line.strip():
            change = parse_name_status_line(line)
            if change is not None:
                entries[-1][1].append(change)
    return entries


def parse_simple(
    data: str,
    skip: int = 0,
    skip_ref: Optional[str] = None,
) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Return (sha, file, status) of the ``skip``-th ``SIMPLE_FORMAT`` entry.

    Entries whose sha is ``skip_ref`` don't count.
    """
    for sha, changes in _simple_entries(data):
        if sha == skip_ref:
            continue
        if skip > 0:
            skip -= 1
            continue
        if not changes:
            return sha, None, None
        return sha, changes[0].path, changes[0].status
    return None, None, None


def parse_simple_renamed(
    data: str,
    original_file_name: str,
) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Find what happened to ``original_file_name`` in a ``SIMPLE_FORMAT`` log.

    Returns (sha, file, status) of the first entry that renamed, copied or
    deleted it; ``file`` is the new name, or the deleted one.
    """
    for sha, changes in _simple_entries(data):
        for change in changes:
            if change.original_path == original_file_name:
                return sha, change.path, change.status
            if change.status == "D" and change.path == original_file_name:
                return sha, change.path, "D"
    return None, None, None
