"""Argument construction for every git command gitlayer runs.

Each function here is pure: it takes the caller's parameters and returns a
:class:`CommandInvocation`. Anything that needs I/O to decide (version
probes, file existence, fetching stdin contents) is resolved by the
executor first and passed in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence

from gitlayer.git import revision
from gitlayer.git.invocation import CommandInvocation, ErrorHandling, invocation
from gitlayer.git.locator import version_supports
from gitlayer.git.parsers import branch as branch_parser
from gitlayer.git.parsers import log as log_parser
from gitlayer.git.parsers import reflog as reflog_parser
from gitlayer.git.parsers import stash as stash_parser
from gitlayer.git.parsers import tag as tag_parser
from gitlayer.git.shell import Encoding
from gitlayer.utils.paths import is_folder_glob, split_path

MAX_CLI_LENGTH = 30000

# Minimum git versions for optional features
PORCELAIN_V2_VERSION = "2.11"
FIND_RENAMES_VERSION = "2.18"
IGNORE_REVS_FILE_VERSION = "2.23"
STASH_PUSH_FILES_VERSION = "2.13.2"
PATHSPEC_FROM_FILE_VERSION = "2.30"

_SHOW_SIGNATURE_OFF = ("-c", "log.showSignature=false")

LogFormat = Literal["default", "refs", "shortlog", "shortlog+stats"]
LogFileFormat = Literal["default", "refs", "simple"]
Ordering = Optional[Literal["date", "author-date", "topo"]]


def renames_arg(similarity_threshold: Optional[int]) -> str:
    return f"-M{'' if similarity_threshold is None else f'{similarity_threshold}%'}"


def _ordering_arg(ordering: Ordering) -> Optional[str]:
    return f"--{ordering}-order" if ordering else None


def _filters_arg(filters: Optional[Sequence[str]]) -> Optional[str]:
    return f"--diff-filter={''.join(filters)}" if filters else None


def porcelain_version(git_version: str) -> int:
    return 2 if version_supports(git_version, PORCELAIN_V2_VERSION) else 1


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True)
class BlameOptions:
    args: tuple[str, ...] = ()
    ignore_whitespace: bool = False
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass(frozen=True)
class DiffOptions:
    encoding: Encoding = "utf8"
    filters: tuple[str, ...] = ()
    lines_of_context: Optional[int] = None
    renames: bool = True
    similarity_threshold: Optional[int] = None


@dataclass(frozen=True)
class LogOptions:
    all: bool = False
    authors: tuple[str, ...] = ()
    format: LogFormat = "default"
    limit: Optional[int] = None
    merges: bool = True
    ordering: Ordering = None
    reverse: bool = False
    similarity_threshold: Optional[int] = None
    since: Optional[str] = None


@dataclass(frozen=True)
class LogFileOptions:
    all: bool = False
    filters: tuple[str, ...] = ()
    first_parent: bool = False
    format: LogFileFormat = "default"
    limit: Optional[int] = None
    ordering: Ordering = None
    renames: bool = True
    reverse: bool = False
    since: Optional[str] = None
    skip: Optional[int] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None


@dataclass(frozen=True)
class ReflogOptions:
    all: bool = False
    branch: Optional[str] = None
    limit: Optional[int] = None
    ordering: Ordering = None
    skip: Optional[int] = None


@dataclass(frozen=True)
class StashPushOptions:
    message: Optional[str] = None
    include_untracked: bool = False
    keep_index: bool = False
    pathspecs: tuple[str, ...] = field(default_factory=tuple)
    stdin: bool = False


# =============================================================================
# Staging and patches
# =============================================================================


def add(repo_path: Optional[str], pathspec: str) -> CommandInvocation:
    return invocation("add", "-A", "--", pathspec, cwd=repo_path)


def apply(repo_path: Optional[str], patch: str, allow_conflicts: bool = False) -> CommandInvocation:
    return invocation("apply", "--whitespace=warn", "-3" if allow_conflicts else None, cwd=repo_path, stdin=patch)


def reset(repo_path: Optional[str], file_name: str) -> CommandInvocation:
    return invocation("reset", "-q", "--", file_name, cwd=repo_path)


def checkout(
    repo_path: str,
    ref: str,
    *,
    create_branch: Optional[str] = None,
    file_name: Optional[str] = None,
) -> CommandInvocation:
    if create_branch:
        return invocation("checkout", "-b", create_branch, ref, "--", cwd=repo_path)

    file = None
    if file_name:
        file, repo_path = split_path(file_name, repo_path)
    return invocation("checkout", ref, "--", file, cwd=repo_path)


# =============================================================================
# Blame
# =============================================================================


def find_ignore_revs_file(args: Sequence[str], repo_path: Optional[str]) -> Optional[tuple[int, str]]:
    """Locate ``--ignore-revs-file <file>`` in custom blame args.

    Returns:
        (index of the flag, absolute file path), or None if absent.
    """
    try:
        index = list(args).index("--ignore-revs-file")
    except ValueError:
        return None
    if index + 1 >= len(args):
        return None

    path = args[index + 1]
    if not os.path.isabs(path):
        path = os.path.join(repo_path or "", path)
    return index, path


def drop_ignore_revs_file(args: Sequence[str], index: int) -> tuple[str, ...]:
    """Remove the flag at ``index`` and its file argument."""
    return tuple(args[:index]) + tuple(args[index + 2:])


def _blame_args(options: BlameOptions) -> list[str]:
    args = ["blame", "--root", "--incremental"]
    if options.ignore_whitespace:
        args.append("-w")
    if options.start_line is not None and options.end_line is not None:
        args.append(f"-L{options.start_line},{options.end_line}")
    args.extend(options.args)
    return args


def blame(
    repo_path: Optional[str],
    file_name: str,
    ref: Optional[str] = None,
    options: BlameOptions = BlameOptions(),
    staged_contents: Optional[str] = None,
) -> CommandInvocation:
    """``blame --incremental`` of a file at ``ref``.

    ``options.args`` must already have had unsupported flags removed. For
    the staged revision pass the index contents as ``staged_contents``;
    they are blamed through ``--contents -``.
    """
    file, root = split_path(file_name, repo_path)
    args = _blame_args(options)

    stdin = None
    if ref:
        if revision.is_uncommitted_staged(ref):
            args.extend(["--contents", "-"])
            stdin = staged_contents or ""
        else:
            args.append(ref)

    return invocation(*args, "--", file, cwd=root, stdin=stdin)


def blame_contents(
    repo_path: Optional[str],
    file_name: str,
    contents: str,
    options: BlameOptions = BlameOptions(),
    correlation_key: Optional[str] = None,
) -> CommandInvocation:
    """``blame --incremental`` of unsaved ``contents`` piped through stdin."""
    file, root = split_path(file_name, repo_path)
    args = _blame_args(options)
    args.extend(["--contents", "-"])
    return invocation(*args, "--", file, cwd=root, stdin=contents, correlation_key=correlation_key)


# =============================================================================
# Branches, refs and config
# =============================================================================


def branch_contains_or_points_at(
    repo_path: str,
    ref: str,
    *,
    mode: Literal["contains", "points-at"] = "contains",
    name: Optional[str] = None,
    remotes: bool = False,
) -> CommandInvocation:
    return invocation(
        "branch",
        "-r" if remotes else None,
        f"--points-at={ref}" if mode == "points-at" else f"--contains={ref}",
        "--format=%(refname:short)",
        name,
        cwd=repo_path,
        configs=("-c", "color.branch=false"),
        errors=ErrorHandling.IGNORE,
    )


def for_each_ref_branches(repo_path: str, all: bool = False) -> CommandInvocation:
    return invocation(
        "for-each-ref",
        f"--format={branch_parser.DEFAULT_FORMAT}",
        "refs/heads",
        "refs/remotes" if all else None,
        cwd=repo_path,
    )


def tag(repo_path: str) -> CommandInvocation:
    return invocation("tag", "-l", f"--format={tag_parser.DEFAULT_FORMAT}", cwd=repo_path)


def show_ref_tags(repo_path: str) -> CommandInvocation:
    return invocation("show-ref", "--tags", cwd=repo_path, errors=ErrorHandling.IGNORE)


def symbolic_ref(repo_path: str, ref: str) -> CommandInvocation:
    return invocation("symbolic-ref", "--short", ref, cwd=repo_path)


def check_ignore(repo_path: str, files: Sequence[str]) -> CommandInvocation:
    return invocation(
        "check-ignore",
        "-z",
        "--stdin",
        cwd=repo_path,
        stdin="\0".join(files),
        errors=ErrorHandling.IGNORE,
    )


def check_mailmap(repo_path: str, author: str) -> CommandInvocation:
    return invocation("check-mailmap", author, cwd=repo_path, errors=ErrorHandling.IGNORE, local=True)


def check_ref_format(ref: str, repo_path: Optional[str] = None, branch: bool = True) -> CommandInvocation:
    return invocation(
        "check-ref-format",
        "--branch" if branch else "--normalize",
        ref,
        cwd=repo_path or "",
        errors=ErrorHandling.THROW,
        local=True,
    )


def config_get(key: str, repo_path: Optional[str] = None, local: bool = False) -> CommandInvocation:
    return invocation("config", "--get", key, cwd=repo_path or "", errors=ErrorHandling.IGNORE, local=local)


def config_get_regex(pattern: str, repo_path: Optional[str] = None, local: bool = False) -> CommandInvocation:
    return invocation(
        "config", "--get-regex", pattern, cwd=repo_path or "", errors=ErrorHandling.IGNORE, local=local
    )


def merge_base(repo_path: str, ref1: str, ref2: str, fork_point: bool = False) -> CommandInvocation:
    return invocation("merge-base", "--fork-point" if fork_point else None, ref1, ref2, cwd=repo_path)


def rebase_abort(repo_path: str) -> CommandInvocation:
    return invocation("rebase", "--abort", cwd=repo_path)


def rebase_continue(repo_path: str) -> CommandInvocation:
    return invocation("rebase", "--continue", cwd=repo_path)


def rev_list_count(repo_path: str, ref: str) -> CommandInvocation:
    return invocation("rev-list", "--count", ref, "--", cwd=repo_path, errors=ErrorHandling.IGNORE)


def rev_list_left_right(repo_path: str, refs: Sequence[str]) -> CommandInvocation:
    return invocation(
        "rev-list", "--left-right", "--count", *refs, "--", cwd=repo_path, errors=ErrorHandling.IGNORE
    )


def rev_parse_current_branch(repo_path: str) -> CommandInvocation:
    return invocation(
        "rev-parse",
        "--abbrev-ref",
        "--symbolic-full-name",
        "@",
        "@{u}",
        "--",
        cwd=repo_path,
        errors=ErrorHandling.THROW,
    )


def rev_parse_show_toplevel(cwd: str) -> CommandInvocation:
    return invocation("rev-parse", "--show-toplevel", cwd=cwd, errors=ErrorHandling.THROW)


def rev_parse_verify(repo_path: str, ref: str, file_name: Optional[str] = None) -> CommandInvocation:
    return invocation(
        "rev-parse",
        "--verify",
        f"{ref}:./{file_name}" if file_name else f"{ref}^{{commit}}",
        cwd=repo_path,
        errors=ErrorHandling.IGNORE,
    )


def shortlog(repo_path: str) -> CommandInvocation:
    return invocation("shortlog", "-sne", "--all", "--no-merges", "HEAD", cwd=repo_path)


# =============================================================================
# Remotes
# =============================================================================


def fetch(
    repo_path: str,
    *,
    all: bool = False,
    prune: bool = False,
    remote: Optional[str] = None,
    branch: Optional[str] = None,
    upstream: Optional[str] = None,
    pull: bool = False,
) -> CommandInvocation:
    args: list[str] = ["fetch"]
    if prune:
        args.append("--prune")

    if branch and remote:
        if upstream and pull:
            args.extend(["-u", remote, f"{upstream}:{branch}"])
        else:
            args.extend([remote, branch])
    elif remote:
        args.append(remote)
    elif all:
        args.append("--all")

    return invocation(*args, cwd=repo_path)


def ls_remote_head(repo_path: str, remote: str) -> CommandInvocation:
    return invocation("ls-remote", "--symref", remote, "HEAD", cwd=repo_path)


def remote(repo_path: str) -> CommandInvocation:
    return invocation("remote", "-v", cwd=repo_path)


def remote_get_url(repo_path: str, name: str) -> CommandInvocation:
    return invocation("remote", "get-url", name, cwd=repo_path)


# =============================================================================
# Diff
# =============================================================================


def diff(
    repo_path: str,
    file_name: str,
    ref1: Optional[str] = None,
    ref2: Optional[str] = None,
    options: DiffOptions = DiffOptions(),
) -> CommandInvocation:
    """Patch of one file between two refs (or the working tree / index).

    A ``<sha>^3^`` ref1 (parent of a stash's untracked-files commit) is
    replaced by the empty tree sha.
    """
    args = ["diff", "--no-ext-diff", "--minimal"]
    if options.lines_of_context is not None:
        args.append(f"-U{options.lines_of_context}")
    if options.renames:
        args.append(renames_arg(options.similarity_threshold))
    filters = _filters_arg(options.filters)
    if filters:
        args.append(filters)

    if ref1:
        if ref1.endswith("^3^"):
            ref1 = revision.ROOT_SHA
        args.append("--staged" if revision.is_uncommitted_staged(ref1) else ref1)
    if ref2:
        args.append("--staged" if revision.is_uncommitted_staged(ref2) else ref2)

    return invocation(
        *args,
        "--",
        file_name,
        cwd=repo_path,
        configs=("-c", "color.diff=false"),
        encoding=options.encoding,
        root_fallback_ref=ref1,
    )


def diff_contents(
    repo_path: str,
    file_name: str,
    contents: str,
    options: DiffOptions = DiffOptions(),
) -> CommandInvocation:
    """``--no-index`` diff of ``file_name`` against ``contents`` piped through stdin."""
    return invocation(
        "diff",
        renames_arg(options.similarity_threshold),
        "--no-ext-diff",
        "-U0",
        "--minimal",
        _filters_arg(options.filters),
        "--no-index",
        "--",
        file_name,
        "-",
        cwd=repo_path,
        configs=("-c", "color.diff=false"),
        encoding=options.encoding,
        stdin=contents,
    )


def diff_name_status(
    repo_path: str,
    ref1: Optional[str] = None,
    ref2: Optional[str] = None,
    *,
    filters: Sequence[str] = (),
    similarity_threshold: Optional[int] = None,
) -> CommandInvocation:
    return invocation(
        "diff",
        "--name-status",
        renames_arg(similarity_threshold),
        "--no-ext-diff",
        _filters_arg(filters),
        ref1 or None,
        ref2 or None,
        "--",
        cwd=repo_path,
        configs=("-c", "color.diff=false"),
    )


def diff_shortstat(repo_path: str, ref: Optional[str] = None) -> CommandInvocation:
    return invocation(
        "diff", "--shortstat", "--no-ext-diff", ref or None, "--", cwd=repo_path, configs=("-c", "color.diff=false")
    )


# =============================================================================
# Log
# =============================================================================


def _ref_args(ref: Optional[str], reverse: bool) -> list[str]:
    if not ref or revision.is_uncommitted_staged(ref):
        return []
    # --ancestry-path needs a range ending at HEAD to walk forward
    if reverse:
        return ["--reverse", "--ancestry-path", f"{ref}..HEAD"]
    return [ref]


def log(repo_path: str, ref: Optional[str], options: LogOptions = LogOptions()) -> CommandInvocation:
    if options.format == "refs":
        fmt = log_parser.REFS_FORMAT
    elif options.format in ("shortlog", "shortlog+stats"):
        fmt = log_parser.SHORTLOG_FORMAT
    else:
        fmt = log_parser.DEFAULT_FORMAT

    args = [
        "log",
        f"--format={fmt}",
        "--full-history",
        renames_arg(options.similarity_threshold),
        "-m",
    ]

    if options.format == "default":
        args.append("--name-status")
    elif options.format == "shortlog+stats":
        args.append("--shortstat")

    ordering = _ordering_arg(options.ordering)
    if ordering:
        args.append(ordering)
    if options.limit and not options.reverse:
        args.append(f"-n{options.limit + 1}")
    if options.since:
        args.append(f'--since="{options.since}"')
    if not options.merges:
        args.append("--first-parent")

    if options.authors:
        args.append("--use-mailmap")
        args.extend(f"--author={author}" for author in options.authors)
    elif options.format == "shortlog":
        args.append("--use-mailmap")

    if options.all:
        args.append("--all")

    args.extend(_ref_args(ref, options.reverse))

    return invocation(
        *args,
        "--",
        cwd=repo_path,
        configs=("-c", "diff.renameLimit=0", *_SHOW_SIGNATURE_OFF),
    )


def log_file(
    repo_path: Optional[str],
    file_name: str,
    ref: Optional[str],
    options: LogFileOptions = LogFileOptions(),
) -> CommandInvocation:
    """History of one file (or of a folder, for ``<folder>/*``).

    Rename following (``--follow``) is dropped when ``all`` or a line range
    is requested since git can't combine them. With a line range the
    pathspec is carried by ``-L`` and no ``--`` is emitted.
    """
    file, root = split_path(file_name, repo_path)

    fmt = log_parser.DEFAULT_FORMAT if options.format == "default" else log_parser.SIMPLE_FORMAT
    args = ["log", f"--format={fmt}"]

    ordering = _ordering_arg(options.ordering)
    if ordering:
        args.append(ordering)
    if options.limit and not options.reverse:
        args.append(f"-n{options.limit + 1}")
    if options.skip:
        args.append(f"--skip={options.skip}")
    if options.since:
        args.append(f'--since="{options.since}"')
    if options.all:
        args.append("--all")

    renames = options.renames and not (options.all or options.start_line is not None)
    args.append("--follow" if renames else "-m")
    if options.first_parent:
        args.append("--first-parent")
        # --first-parent implies -m from git 2.29 on
        if renames:
            args.append("-m")

    filters = _filters_arg(options.filters)
    if filters:
        args.append(filters)

    if options.format != "refs":
        if options.start_line is None:
            if options.format == "simple" or is_folder_glob(file):
                args.append("--name-status")
            else:
                args.extend(["--numstat", "--summary"])
        else:
            end_line = options.end_line if options.end_line is not None else options.start_line
            args.append(f"-L{options.start_line},{end_line}:{file}")

    args.extend(_ref_args(ref, options.reverse))

    if options.start_line is None:
        args.extend(["--", file])

    return invocation(*args, cwd=root, configs=_SHOW_SIGNATURE_OFF)


def log_file_recent(
    repo_path: str,
    file_name: str,
    *,
    ordering: Ordering = None,
    ref: Optional[str] = None,
    similarity_threshold: Optional[int] = None,
) -> CommandInvocation:
    return invocation(
        "log",
        renames_arg(similarity_threshold),
        "-n1",
        "--format=%H",
        _ordering_arg(ordering),
        ref or None,
        "--",
        file_name,
        cwd=repo_path,
        configs=_SHOW_SIGNATURE_OFF,
        errors=ErrorHandling.IGNORE,
    )


def log_find_object(
    repo_path: str,
    object_id: str,
    ref: str,
    ordering: Ordering = None,
    file_name: Optional[str] = None,
) -> CommandInvocation:
    return invocation(
        "log",
        "-n1",
        "--no-renames",
        "--format=%H",
        f"--find-object={object_id}",
        ref,
        _ordering_arg(ordering),
        "--" if file_name else None,
        file_name or None,
        cwd=repo_path,
        configs=_SHOW_SIGNATURE_OFF,
        errors=ErrorHandling.IGNORE,
    )


def log_recent(repo_path: str, ordering: Ordering = None) -> CommandInvocation:
    return invocation(
        "log",
        "-n1",
        "--format=%H",
        _ordering_arg(ordering),
        "--",
        cwd=repo_path,
        configs=_SHOW_SIGNATURE_OFF,
        errors=ErrorHandling.IGNORE,
    )


def log_recent_committer_date(repo_path: str, ordering: Ordering = None) -> CommandInvocation:
    return invocation(
        "log",
        "-n1",
        "--format=%ct",
        _ordering_arg(ordering),
        "--",
        cwd=repo_path,
        configs=_SHOW_SIGNATURE_OFF,
        errors=ErrorHandling.IGNORE,
    )


def log_search(
    repo_path: str,
    search_args: Sequence[str],
    *,
    limit: Optional[int] = None,
    ordering: Ordering = None,
    skip: Optional[int] = None,
    use_show: bool = False,
) -> CommandInvocation:
    args = [
        "show" if use_show else "log",
        "--name-status",
        f"--format={log_parser.DEFAULT_FORMAT}",
        "--use-mailmap",
    ]
    if not use_show:
        if limit:
            args.append(f"-n{limit + 1}")
        if skip:
            args.append(f"--skip={skip}")
        ordering_arg = _ordering_arg(ordering)
        if ordering_arg:
            args.append(ordering_arg)

    return invocation(
        *args,
        *search_args,
        cwd=repo_path,
        configs=() if use_show else _SHOW_SIGNATURE_OFF,
    )


def reflog(repo_path: str, options: ReflogOptions = ReflogOptions()) -> CommandInvocation:
    return invocation(
        "log",
        "--walk-reflogs",
        f"--format={reflog_parser.DEFAULT_FORMAT}",
        "--date=iso8601",
        _ordering_arg(options.ordering),
        "--all" if options.all else None,
        f"-n{options.limit}" if options.limit else None,
        f"--skip={options.skip}" if options.skip else None,
        options.branch or None,
        "--",
        cwd=repo_path,
        configs=_SHOW_SIGNATURE_OFF,
    )


# =============================================================================
# Trees and file contents
# =============================================================================


def ls_files(
    repo_path: str,
    file_name: str,
    *,
    ref: Optional[str] = None,
    untracked: bool = False,
) -> CommandInvocation:
    return invocation(
        "ls-files",
        f"--with-tree={ref}" if ref and not revision.is_uncommitted(ref) else None,
        "-o" if not ref and untracked else None,
        "--",
        file_name,
        cwd=repo_path,
        errors=ErrorHandling.IGNORE,
    )


def ls_tree(repo_path: str, ref: str, file_name: Optional[str] = None) -> CommandInvocation:
    if file_name:
        return invocation("ls-tree", "-l", ref, "--", file_name, cwd=repo_path, errors=ErrorHandling.IGNORE)
    return invocation("ls-tree", "-lrt", ref, "--", cwd=repo_path, errors=ErrorHandling.IGNORE)


def show(
    repo_path: Optional[str],
    file_name: str,
    ref: str,
    encoding: Encoding = "utf8",
) -> CommandInvocation:
    """Contents of a file at ``ref`` (``ref`` already mapped from staged to ``:``).

    Raises:
        ValueError: If ``ref`` is the working tree, which has no object.
    """
    if revision.is_uncommitted(ref):
        raise ValueError(f"ref={ref} is uncommitted")

    file, root = split_path(file_name, repo_path)
    spec = f"{ref}./{file}" if ref.endswith(":") else f"{ref}:./{file}"
    return invocation(
        "show",
        "--textconv",
        spec,
        "--",
        cwd=root,
        configs=_SHOW_SIGNATURE_OFF,
        encoding=encoding,
        errors=ErrorHandling.THROW,
    )


def show_diff(
    repo_path: str,
    file_name: str,
    ref: str,
    original_file_name: Optional[str] = None,
    similarity_threshold: Optional[int] = None,
) -> CommandInvocation:
    return invocation(
        "show",
        renames_arg(similarity_threshold),
        "--format=",
        "--minimal",
        "-U0",
        ref,
        "--",
        file_name,
        original_file_name or None,
        cwd=repo_path,
    )


def show_name_status(repo_path: str, file_name: str, ref: str) -> CommandInvocation:
    return invocation("show", "--name-status", "--format=", ref, "--", file_name, cwd=repo_path)


def show_stash_sha(repo_path: str, stash_name: str) -> CommandInvocation:
    return invocation(
        "show", "--format=%H", "--no-patch", stash_name, cwd=repo_path, errors=ErrorHandling.IGNORE
    )


# =============================================================================
# Stash
# =============================================================================


def stash_apply(repo_path: str, stash_name: str, delete_after: bool = False) -> CommandInvocation:
    return invocation("stash", "pop" if delete_after else "apply", stash_name, cwd=repo_path)


def stash_drop(repo_path: str, stash_name: str) -> CommandInvocation:
    return invocation("stash", "drop", stash_name, cwd=repo_path)


def stash_list(repo_path: str, similarity_threshold: Optional[int] = None) -> CommandInvocation:
    return invocation(
        "stash",
        "list",
        "--name-status",
        renames_arg(similarity_threshold),
        f"--format={stash_parser.DEFAULT_FORMAT}",
        cwd=repo_path,
    )


def stash_push(repo_path: str, options: StashPushOptions = StashPushOptions()) -> CommandInvocation:
    """``stash push``; with ``options.stdin`` the pathspecs go through stdin NUL separated."""
    args = ["stash", "push"]
    if options.include_untracked or options.pathspecs:
        args.append("-u")
    if options.keep_index:
        args.append("-k")
    if options.message:
        args.extend(["-m", options.message])

    if options.stdin and options.pathspecs:
        return invocation(
            *args,
            "--pathspec-from-file=-",
            "--pathspec-file-nul",
            cwd=repo_path,
            stdin="\0".join(options.pathspecs),
        )

    return invocation(*args, "--", *options.pathspecs, cwd=repo_path)


# =============================================================================
# Status
# =============================================================================


def _status_renames(git_version: str, similarity_threshold: Optional[int]) -> Optional[str]:
    if not version_supports(git_version, FIND_RENAMES_VERSION):
        return None
    return f"--find-renames{'' if similarity_threshold is None else f'={similarity_threshold}%'}"


def _porcelain_arg(porcelain: int) -> str:
    return f"--porcelain=v{porcelain}" if porcelain >= 2 else "--porcelain"


def status(
    repo_path: str,
    git_version: str,
    similarity_threshold: Optional[int] = None,
) -> CommandInvocation:
    return invocation(
        "status",
        _porcelain_arg(porcelain_version(git_version)),
        "--branch",
        "-u",
        _status_renames(git_version, similarity_threshold),
        "--",
        cwd=repo_path,
        configs=("-c", "color.status=false"),
        env={"GIT_OPTIONAL_LOCKS": "0"},
    )


def status_file(
    repo_path: str,
    file_name: str,
    git_version: str,
    similarity_threshold: Optional[int] = None,
) -> CommandInvocation:
    file, root = split_path(file_name, repo_path)
    return invocation(
        "status",
        _porcelain_arg(porcelain_version(git_version)),
        _status_renames(git_version, similarity_threshold),
        "--",
        file,
        cwd=root,
        configs=("-c", "color.status=false"),
        env={"GIT_OPTIONAL_LOCKS": "0"},
    )
