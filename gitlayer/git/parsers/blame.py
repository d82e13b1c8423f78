"""Parse ``git blame --root --incremental`` output."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from gitlayer.git.models import Author, Blame, BlameCommit, BlameLine, GitUser
from gitlayer.git.parsers.common import YOU, display_author, from_timestamp, split_lines


@dataclass
class _Group:
    sha: str
    original_line: int
    line: int
    count: int
    author: Optional[str] = None
    email: Optional[str] = None
    author_time: str = "0"
    committer: Optional[str] = None
    committer_email: Optional[str] = None
    committer_time: str = "0"
    summary: Optional[str] = None
    previous_sha: Optional[str] = None
    previous_file_name: Optional[str] = None
    file_name: Optional[str] = None
    boundary: bool = False


@dataclass
class _CommitBuilder:
    commit: BlameCommit
    lines: list[BlameLine] = field(default_factory=list)


def _strip_mail(value: str) -> Optional[str]:
    value = value.strip()
    if value.startswith("<") and value.endswith(">"):
        value = value[1:-1]
    return value or None


def _read_groups(data: str) -> list[_Group]:
    groups: list[_Group] = []
    group: Optional[_Group] = None

    for line in split_lines(data):
        if not line:
            continue

        key, _, value = line.partition(" ")
        if group is None:
            parts = line.split(" ")
            if len(parts) != 4 or len(parts[0]) < 40:
                continue
            try:
                group = _Group(
                    sha=parts[0],
                    original_line=int(parts[1]),
                    line=int(parts[2]),
                    count=int(parts[3]),
                )
            except ValueError:
                group = None
            continue

        if key == "author":
            group.author = value
        elif key == "author-mail":
            group.email = _strip_mail(value)
        elif key == "author-time":
            group.author_time = value
        elif key == "committer":
            group.committer = value
        elif key == "committer-mail":
            group.committer_email = _strip_mail(value)
        elif key == "committer-time":
            group.committer_time = value
        elif key == "summary":
            group.summary = value
        elif key == "previous":
            previous_sha, _, previous_file = value.partition(" ")
            group.previous_sha = previous_sha
            group.previous_file_name = previous_file or None
        elif key == "boundary":
            group.boundary = True
        elif key == "filename":
            # filename always closes a group
            group.file_name = value
            groups.append(group)
            group = None

    return groups


def parse(
    data: str,
    repo_path: str,
    file_name: str,
    current_user: Optional[GitUser] = None,
) -> Optional[Blame]:
    """Parse incremental blame output.

    Commit details appear only on a commit's first group; later groups for
    the same sha carry just the header and filename. Lines come back ordered
    by their final line number.

    Returns:
        The blame, or None when there's nothing to parse.
    """
    if not data or not data.strip():
        return None

    builders: dict[str, _CommitBuilder] = {}
    line_counts: dict[str, int] = {}
    lines: dict[int, BlameLine] = {}

    for group in _read_groups(data):
        builder = builders.get(group.sha)
        if builder is None:
            name = group.author or ""
            author = display_author(name, group.email, current_user)
            if group.sha.strip("0") == "":
                # git reports uncommitted lines as "Not Committed Yet"
                author = YOU
            builder = _CommitBuilder(
                BlameCommit(
                    repo_path=repo_path,
                    sha=group.sha,
                    author=author,
                    email=group.email,
                    date=from_timestamp(group.author_time),
                    committer=group.committer or name,
                    committer_email=group.committer_email,
                    committed_date=from_timestamp(group.committer_time),
                    message=group.summary or "",
                    file_name=group.file_name or file_name,
                    original_file_name=group.file_name if group.file_name != file_name else None,
                    previous_sha=group.previous_sha,
                    previous_file_name=group.previous_file_name,
                    boundary=group.boundary,
                )
            )
            builders[group.sha] = builder

        author_name = builder.commit.author
        for i in range(group.count):
            blame_line = BlameLine(
                sha=group.sha,
                line=group.line - 1 + i,
                original_line=group.original_line - 1 + i,
                previous_sha=builder.commit.previous_sha,
            )
            builder.lines.append(blame_line)
            lines[blame_line.line] = blame_line
        line_counts[author_name] = line_counts.get(author_name, 0) + group.count

    if not builders:
        return None

    commits: dict[str, BlameCommit] = {}
    for sha, builder in builders.items():
        builder.lines.sort(key=lambda l: l.line)
        commits[sha] = replace(builder.commit, lines=tuple(builder.lines))

    authors = {
        name: Author(name, count)
        for name, count in sorted(line_counts.items(), key=lambda kv: kv[1], reverse=True)
    }

    return Blame(
        repo_path=repo_path,
        authors=authors,
        commits=commits,
        lines=tuple(lines[k] for k in sorted(lines)),
    )
