"""The git command executor.

:class:`Git` runs :class:`CommandInvocation` objects produced by
:mod:`gitlayer.git.builder`: it adds the global ``-c`` configs and the
process environment, collapses identical concurrent invocations, times and
logs every command, and applies the invocation's error handling mode.

On top of :meth:`Git.run` it exposes one coroutine per command. Those carry
the recovery logic that only makes sense for a particular command, e.g.
retrying a diff against the empty tree when a first commit has no parent.
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import replace
from typing import Optional, Sequence, Union

from gitlayer.errors import GitVersionError, RunError, StashMismatchError
from gitlayer.git import builder, diagnostics, revision
from gitlayer.git.builder import (
    BlameOptions,
    DiffOptions,
    LogFileOptions,
    LogOptions,
    Ordering,
    ReflogOptions,
    StashPushOptions,
)
from gitlayer.git.dedup import CommandDeduplicator
from gitlayer.git.invocation import CommandInvocation, ErrorHandling
from gitlayer.git.locator import GitLocation, version_supports
from gitlayer.git.shell import IS_WINDOWS, Encoding, ProcessRunner, fs_exists, read_text
from gitlayer.utils.paths import normalize_path

logger = logging.getLogger(__name__)

Output = Union[str, bytes]

_GLOBAL_CONFIGS = ("-c", "core.quotepath=false", "-c", "color.ui=false")
_ENV_OVERRIDES = {
    "GCM_INTERACTIVE": "NEVER",
    "GCM_PRESERVE_CREDS": "TRUE",
    "LC_ALL": "C",
}

_LS_REMOTE_HEAD_RE = re.compile(r"ref:\s(\S+)\s+HEAD", re.MULTILINE)
_BRANCH_REMOTE_RE = re.compile(r"^branch\..+\.remote\s(.+)$", re.MULTILINE)
_BRANCH_MERGE_RE = re.compile(r"^branch\..+\.merge\srefs/heads/(.+)$", re.MULTILINE)


def _empty(encoding: Encoding) -> Output:
    return b"" if encoding == "buffer" else ""


def _text(data: Output) -> str:
    return data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data


def _or_none(data: str) -> Optional[str]:
    return data.strip() if data else None


class Git:
    """Runs git commands for every repository."""

    def __init__(
        self,
        location: GitLocation,
        runner: Optional[ProcessRunner] = None,
        dedup: Optional[CommandDeduplicator] = None,
        guest: bool = False,
    ):
        """Initialize the executor.

        Args:
            location: The git executable and its version.
            runner: Process runner (a fresh one by default).
            dedup: Pending-command map (a fresh one by default).
            guest: Whether paths live in a guest namespace. Invocations marked
                ``local`` then run without a working directory.
        """
        self.location = location
        self.runner = runner or ProcessRunner()
        self.dedup = dedup or CommandDeduplicator()
        self.guest = guest
        self._ignore_revs_files: dict[str, bool] = {}

    @property
    def path(self) -> str:
        return self.location.path

    @property
    def version(self) -> str:
        return self.location.version

    def supports(self, required: str) -> bool:
        return version_supports(self.version, required)

    def ensure_version(self, required: str, feature: str) -> None:
        """Raise :class:`GitVersionError` unless git is at least ``required``."""
        if not self.supports(required):
            raise GitVersionError(feature, self.version, required)

    # =========================================================================
    # Execution
    # =========================================================================

    def build_args(self, inv: CommandInvocation) -> list[str]:
        args = [*_GLOBAL_CONFIGS, *inv.configs, *inv.args]
        if IS_WINDOWS:
            args = ["-c", "core.longpaths=true", *args]
        return args

    def build_env(self, inv: CommandInvocation) -> dict[str, str]:
        return {**os.environ, **dict(inv.env), **_ENV_OVERRIDES}

    async def run(self, inv: CommandInvocation) -> Output:
        """Run ``inv`` and apply its error handling mode.

        Returns:
            The command's stdout; ``""`` (or ``b""``) when a failure was
            absorbed by the error handling mode.

        Raises:
            RunError: For THROW, or for DEFAULT when the failure isn't a
                known benign condition.
        """
        if self.guest and inv.local:
            inv = replace(inv, cwd="")

        args = self.build_args(inv)
        env = self.build_env(inv)
        start = time.perf_counter()
        waited = self.dedup.is_pending(inv)
        failure: Optional[RunError] = None

        try:
            output, waited = await self.dedup.run(
                inv,
                lambda: self.runner.run(self.path, args, inv.encoding, cwd=inv.cwd or None, env=env, stdin=inv.stdin),
            )
            return output
        except RunError as e:
            failure = e
            if inv.errors is ErrorHandling.IGNORE:
                failure = None
                return _empty(inv.encoding)
            if inv.errors is ErrorHandling.THROW:
                raise

            result = self.handle_default_error(e, inv, start)
            failure = None
            return result
        finally:
            duration = f"{(time.perf_counter() - start) * 1000:.0f} ms{' (waited)' if waited else ''}"
            if failure is not None:
                logger.warning(f"[{inv.cwd or ''}] Git {diagnostics.clean_message(failure.message)} • {duration}")
            else:
                logger.debug(f"{inv.command} • {duration}")

    async def run_text(self, inv: CommandInvocation) -> str:
        return _text(await self.run(inv))

    def handle_default_error(
        self,
        error: RunError,
        inv: CommandInvocation,
        start: Optional[float] = None,
    ) -> Output:
        """Absorb benign failures; re-raise the rest.

        Known warnings resolve to an empty result. A bad revision ending in
        ``^3`` (the untracked-files parent of a stash, which some git
        versions can't resolve) is also treated as empty.
        """
        message = error.message
        if diagnostics.match_warning(message) is not None:
            duration = f" • {(time.perf_counter() - start) * 1000:.0f} ms" if start is not None else ""
            logger.warning(f"[{inv.cwd or ''}] Git {diagnostics.clean_message(message)}{duration}")
            return _empty(inv.encoding)

        ref = diagnostics.bad_revision(message)
        if ref is not None and ref.endswith("^3"):
            return _empty(inv.encoding)

        raise error

    # =========================================================================
    # Staging, patches and checkout
    # =========================================================================

    async def add(self, repo_path: Optional[str], pathspec: str) -> str:
        return await self.run_text(builder.add(repo_path, pathspec))

    async def apply(self, repo_path: Optional[str], patch: str, allow_conflicts: bool = False) -> str:
        return await self.run_text(builder.apply(repo_path, patch, allow_conflicts))

    async def reset(self, repo_path: Optional[str], file_name: str) -> str:
        return await self.run_text(builder.reset(repo_path, file_name))

    async def checkout(
        self,
        repo_path: str,
        ref: str,
        *,
        create_branch: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> str:
        return await self.run_text(builder.checkout(repo_path, ref, create_branch=create_branch, file_name=file_name))

    # =========================================================================
    # Blame
    # =========================================================================

    async def _supported_blame_args(self, repo_path: Optional[str], args: Sequence[str]) -> tuple[str, ...]:
        found = builder.find_ignore_revs_file(args, repo_path)
        if found is None:
            return tuple(args)

        index, path = found
        supported = self.supports(builder.IGNORE_REVS_FILE_VERSION)
        if supported:
            cached = self._ignore_revs_files.get(path)
            if cached is None:
                try:
                    cached = await fs_exists(path)
                except OSError:
                    cached = False
                self._ignore_revs_files[path] = cached
            supported = cached

        if not supported:
            return builder.drop_ignore_revs_file(args, index)
        return tuple(args)

    async def blame(
        self,
        repo_path: Optional[str],
        file_name: str,
        ref: Optional[str] = None,
        options: BlameOptions = BlameOptions(),
    ) -> str:
        options = replace(options, args=await self._supported_blame_args(repo_path, options.args))

        staged_contents = None
        if ref and revision.is_uncommitted_staged(ref):
            staged_contents = _text(await self.show(repo_path, file_name, ":") or "")

        return await self.run_text(builder.blame(repo_path, file_name, ref, options, staged_contents))

    async def blame_contents(
        self,
        repo_path: Optional[str],
        file_name: str,
        contents: str,
        options: BlameOptions = BlameOptions(),
        correlation_key: Optional[str] = None,
    ) -> str:
        return await self.run_text(builder.blame_contents(repo_path, file_name, contents, options, correlation_key))

    # =========================================================================
    # Branches, refs and config
    # =========================================================================

    async def branch_contains_or_points_at(
        self,
        repo_path: str,
        ref: str,
        *,
        mode: str = "contains",
        name: Optional[str] = None,
        remotes: bool = False,
    ) -> str:
        return await self.run_text(
            builder.branch_contains_or_points_at(
                repo_path,
                ref,
                mode="points-at" if mode == "points-at" else "contains",
                name=name,
                remotes=remotes,
            )
        )

    async def for_each_ref_branches(self, repo_path: str, all: bool = False) -> str:
        return await self.run_text(builder.for_each_ref_branches(repo_path, all))

    async def tag(self, repo_path: str) -> str:
        return await self.run_text(builder.tag(repo_path))

    async def show_ref_tags(self, repo_path: str) -> str:
        return await self.run_text(builder.show_ref_tags(repo_path))

    async def symbolic_ref(self, repo_path: str, ref: str) -> str:
        return await self.run_text(builder.symbolic_ref(repo_path, ref))

    async def check_ignore(self, repo_path: str, files: Sequence[str]) -> str:
        return await self.run_text(builder.check_ignore(repo_path, files))

    async def check_mailmap(self, repo_path: str, author: str) -> str:
        return await self.run_text(builder.check_mailmap(repo_path, author))

    async def check_ref_format(self, ref: str, repo_path: Optional[str] = None, branch: bool = True) -> bool:
        try:
            data = await self.run_text(builder.check_ref_format(ref, repo_path, branch))
        except RunError:
            return False
        return bool(data.strip())

    async def config_get(self, key: str, repo_path: Optional[str] = None, local: bool = False) -> Optional[str]:
        return _or_none(await self.run_text(builder.config_get(key, repo_path, local)))

    async def config_get_regex(
        self,
        pattern: str,
        repo_path: Optional[str] = None,
        local: bool = False,
    ) -> Optional[str]:
        return _or_none(await self.run_text(builder.config_get_regex(pattern, repo_path, local)))

    async def merge_base(self, repo_path: str, ref1: str, ref2: str, fork_point: bool = False) -> str:
        return await self.run_text(builder.merge_base(repo_path, ref1, ref2, fork_point))

    async def rebase_abort(self, repo_path: str) -> str:
        return await self.run_text(builder.rebase_abort(repo_path))

    async def rebase_continue(self, repo_path: str) -> str:
        return await self.run_text(builder.rebase_continue(repo_path))

    async def rev_list_count(self, repo_path: str, ref: str) -> Optional[int]:
        data = (await self.run_text(builder.rev_list_count(repo_path, ref))).strip()
        if not data:
            return None
        try:
            return int(data)
        except ValueError:
            return None

    async def rev_list_left_right(self, repo_path: str, refs: Sequence[str]) -> Optional[tuple[int, int]]:
        """Return (ahead, behind) counts for ``left...right``."""
        data = await self.run_text(builder.rev_list_left_right(repo_path, refs))
        if not data:
            return None
        parts = data.split("\t")
        if len(parts) != 2:
            return None
        try:
            return int(parts[0]), int(parts[1])
        except ValueError:
            return None

    async def rev_parse_current_branch(
        self,
        repo_path: str,
        ordering: Ordering = None,
    ) -> Optional[tuple[str, Optional[str]]]:
        """Resolve the current branch (and its upstream).

        Returns:
            ``(data, sha)`` where ``data`` is ``"<branch>"`` or
            ``"<branch>\\n<upstream>"`` and ``sha`` is only set for a
            detached HEAD. None if nothing could be determined.
        """
        try:
            data = await self.run_text(builder.rev_parse_current_branch(repo_path))
            return data, None
        except RunError as e:
            message = e.message
            if diagnostics.is_error(message, "bad_revision") or diagnostics.is_warning(message, "no_upstream"):
                if e.stdout:
                    return e.stdout, None
                return await self._guess_current_branch(repo_path), None

            if diagnostics.is_warning(message, "head_not_a_branch"):
                sha = await self.log_recent(repo_path, ordering)
                if sha is None:
                    return None
                return f"(HEAD detached at {revision.shorten(sha)})", sha

            self.handle_default_error(e, builder.rev_parse_current_branch(repo_path))
            return None

    async def _guess_current_branch(self, repo_path: str) -> str:
        try:
            data = await self.symbolic_ref(repo_path, "HEAD")
            if data:
                return data.strip()
        except RunError:
            pass

        try:
            data = await self.symbolic_ref(repo_path, "refs/remotes/origin/HEAD")
            if data:
                return data.strip()[len("origin/"):]
        except RunError as e:
            if diagnostics.is_not_a_symbolic_ref(e.stderr):
                try:
                    data = await self.ls_remote_head(repo_path, "origin")
                    match = _LS_REMOTE_HEAD_RE.search(data or "")
                    if match is not None:
                        return match.group(1)[len("refs/heads/"):]
                except RunError:
                    pass

        default_branch = await self.config_get("init.defaultBranch", repo_path, local=True) or "main"
        branch_config = await self.config_get_regex(f"branch\\.{default_branch}\\.+", repo_path, local=True)

        remote = remote_branch = None
        if branch_config:
            match = _BRANCH_REMOTE_RE.search(branch_config)
            if match is not None:
                remote = match.group(1)
            match = _BRANCH_MERGE_RE.search(branch_config)
            if match is not None:
                remote_branch = match.group(1)

        if remote and remote_branch:
            return f"{default_branch}\n{remote}/{remote_branch}"
        return default_branch

    async def rev_parse_show_toplevel(self, cwd: str) -> Optional[str]:
        """Find the work tree root containing ``cwd``.

        If ``cwd`` doesn't exist (or is inside ``.git``) the nearest existing
        parent is tried instead. Trailing spaces are kept since they can be
        part of a directory name.
        """
        try:
            data = await self.run_text(builder.rev_parse_show_toplevel(cwd))
        except RunError as e:
            in_dot_git = diagnostics.is_warning(e.stderr, "must_run_in_work_tree")
            if in_dot_git or e.code == "ENOENT":
                exists = False if in_dot_git else await fs_exists(cwd)
                if not exists:
                    while True:
                        parent = os.path.dirname(cwd)
                        if parent == cwd or not parent:
                            return None
                        cwd = parent
                        if await fs_exists(cwd):
                            break
                    return await self.rev_parse_show_toplevel(cwd)
            return None

        if not data:
            return None
        return normalize_path(re.sub(r"[\r\n]+$", "", data.lstrip()))

    async def rev_parse_verify(self, repo_path: str, ref: str, file_name: Optional[str] = None) -> Optional[str]:
        return _or_none(await self.run_text(builder.rev_parse_verify(repo_path, ref, file_name)))

    async def shortlog(self, repo_path: str) -> str:
        return await self.run_text(builder.shortlog(repo_path))

    # =========================================================================
    # Remotes
    # =========================================================================

    async def fetch(
        self,
        repo_path: str,
        *,
        all: bool = False,
        prune: bool = False,
        remote: Optional[str] = None,
        branch: Optional[str] = None,
        upstream: Optional[str] = None,
        pull: bool = False,
    ) -> None:
        inv = builder.fetch(
            repo_path, all=all, prune=prune, remote=remote, branch=branch, upstream=upstream, pull=pull
        )
        if branch and remote and upstream and pull:
            try:
                await self.run(inv)
            except RunError as e:
                if diagnostics.is_error(e.message, "no_fast_forward"):
                    logger.error(f"Unable to pull the '{branch}' branch, as it can't be fast-forwarded.")
                    return
                raise
            return

        await self.run(inv)

    async def ls_remote_head(self, repo_path: str, remote: str) -> str:
        return await self.run_text(builder.ls_remote_head(repo_path, remote))

    async def remote(self, repo_path: str) -> str:
        return await self.run_text(builder.remote(repo_path))

    async def remote_get_url(self, repo_path: str, name: str) -> str:
        return await self.run_text(builder.remote_get_url(repo_path, name))

    # =========================================================================
    # Diff
    # =========================================================================

    async def diff(
        self,
        repo_path: str,
        file_name: str,
        ref1: Optional[str] = None,
        ref2: Optional[str] = None,
        options: DiffOptions = DiffOptions(),
    ) -> str:
        inv = builder.diff(repo_path, file_name, ref1, ref2, options)
        try:
            return await self.run_text(inv)
        except RunError as e:
            ref = diagnostics.bad_revision(e.message)
            # A missing parent means ref1 was the first commit; diff against the empty tree
            if ref is not None and ref == inv.root_fallback_ref and ref.endswith("^"):
                return await self.diff(repo_path, file_name, revision.ROOT_SHA, ref2, options)
            raise

    async def diff_contents(
        self,
        repo_path: str,
        file_name: str,
        ref: str,
        contents: str,
        options: DiffOptions = DiffOptions(),
    ) -> str:
        """Diff ``file_name`` against unsaved ``contents``.

        ``diff --no-index`` exits 1 whenever there are differences, so a
        failure that still produced stdout is the result.
        """
        try:
            return await self.run_text(builder.diff_contents(repo_path, file_name, contents, options))
        except RunError as e:
            if e.stdout:
                return e.stdout

            bad_ref = diagnostics.bad_revision(e.message)
            if bad_ref is not None and bad_ref == ref and bad_ref.endswith("^"):
                return await self.diff_contents(repo_path, file_name, revision.ROOT_SHA, contents, options)
            raise

    async def diff_name_status(
        self,
        repo_path: str,
        ref1: Optional[str] = None,
        ref2: Optional[str] = None,
        *,
        filters: Sequence[str] = (),
        similarity_threshold: Optional[int] = None,
    ) -> str:
        return await self.run_text(
            builder.diff_name_status(
                repo_path, ref1, ref2, filters=filters, similarity_threshold=similarity_threshold
            )
        )

    async def diff_shortstat(self, repo_path: str, ref: Optional[str] = None) -> Optional[str]:
        try:
            return await self.run_text(builder.diff_shortstat(repo_path, ref))
        except RunError as e:
            if diagnostics.is_error(e.message, "no_merge_base"):
                return None
            raise

    # =========================================================================
    # Log
    # =========================================================================

    async def log(self, repo_path: str, ref: Optional[str], options: LogOptions = LogOptions()) -> str:
        return await self.run_text(builder.log(repo_path, ref, options))

    async def log_file(
        self,
        repo_path: Optional[str],
        file_name: str,
        ref: Optional[str],
        options: LogFileOptions = LogFileOptions(),
    ) -> str:
        return await self.run_text(builder.log_file(repo_path, file_name, ref, options))

    async def log_file_recent(
        self,
        repo_path: str,
        file_name: str,
        *,
        ordering: Ordering = None,
        ref: Optional[str] = None,
        similarity_threshold: Optional[int] = None,
    ) -> Optional[str]:
        return _or_none(
            await self.run_text(
                builder.log_file_recent(
                    repo_path, file_name, ordering=ordering, ref=ref, similarity_threshold=similarity_threshold
                )
            )
        )

    async def log_find_object(
        self,
        repo_path: str,
        object_id: str,
        ref: str,
        ordering: Ordering = None,
        file_name: Optional[str] = None,
    ) -> Optional[str]:
        return _or_none(
            await self.run_text(builder.log_find_object(repo_path, object_id, ref, ordering, file_name))
        )

    async def log_recent(self, repo_path: str, ordering: Ordering = None) -> Optional[str]:
        return _or_none(await self.run_text(builder.log_recent(repo_path, ordering)))

    async def log_recent_committer_date(self, repo_path: str, ordering: Ordering = None) -> Optional[str]:
        return _or_none(await self.run_text(builder.log_recent_committer_date(repo_path, ordering)))

    async def log_search(
        self,
        repo_path: str,
        search_args: Sequence[str],
        *,
        limit: Optional[int] = None,
        ordering: Ordering = None,
        skip: Optional[int] = None,
        use_show: bool = False,
    ) -> str:
        return await self.run_text(
            builder.log_search(repo_path, search_args, limit=limit, ordering=ordering, skip=skip, use_show=use_show)
        )

    async def reflog(self, repo_path: str, options: ReflogOptions = ReflogOptions()) -> str:
        return await self.run_text(builder.reflog(repo_path, options))

    # =========================================================================
    # Trees and file contents
    # =========================================================================

    async def ls_files(
        self,
        repo_path: str,
        file_name: str,
        *,
        ref: Optional[str] = None,
        untracked: bool = False,
    ) -> Optional[str]:
        return _or_none(await self.run_text(builder.ls_files(repo_path, file_name, ref=ref, untracked=untracked)))

    async def ls_tree(self, repo_path: str, ref: str, file_name: Optional[str] = None) -> Optional[str]:
        return _or_none(await self.run_text(builder.ls_tree(repo_path, ref, file_name)))

    async def show(
        self,
        repo_path: Optional[str],
        file_name: str,
        ref: str,
        encoding: Encoding = "utf8",
    ) -> Optional[Output]:
        """Contents of ``file_name`` at ``ref``; None if it doesn't exist there.

        The staged revision reads from the index, falling back to ``HEAD``
        when the index has no entry.
        """
        if revision.is_uncommitted_staged(ref):
            ref = ":"

        inv = builder.show(repo_path, file_name, ref, encoding)
        try:
            return await self.run(inv)
        except RunError as e:
            message = e.message
            if ref == ":" and diagnostics.is_error(message, "bad_revision"):
                return await self.show(repo_path, file_name, "HEAD:", encoding)

            if (
                diagnostics.is_error(message, "bad_revision")
                or diagnostics.is_warning(message, "not_found")
                or diagnostics.is_warning(message, "found_but_not_in_revision")
            ):
                return None

            return self.handle_default_error(e, inv)

    async def show_diff(
        self,
        repo_path: str,
        file_name: str,
        ref: str,
        original_file_name: Optional[str] = None,
        similarity_threshold: Optional[int] = None,
    ) -> str:
        return await self.run_text(
            builder.show_diff(repo_path, file_name, ref, original_file_name, similarity_threshold)
        )

    async def show_name_status(self, repo_path: str, file_name: str, ref: str) -> str:
        return await self.run_text(builder.show_name_status(repo_path, file_name, ref))

    async def read_dot_git_file(
        self,
        repo_path: str,
        parts: Sequence[str],
        *,
        numeric: bool = False,
        trim: bool = True,
    ) -> Optional[Union[str, int]]:
        """Read a file under the repository's ``.git`` directory.

        Returns:
            The (trimmed) contents, the parsed integer when ``numeric``, or
            None if the file can't be read or isn't a number.
        """
        contents = await read_text(os.path.join(repo_path, ".git", *parts))
        if contents is None:
            return None
        if trim:
            contents = contents.strip()
        if numeric:
            try:
                return int(contents)
            except ValueError:
                return None
        return contents

    # =========================================================================
    # Stash
    # =========================================================================

    async def stash_apply(self, repo_path: str, stash_name: str, delete_after: bool = False) -> Optional[str]:
        if not stash_name:
            return None
        return await self.run_text(builder.stash_apply(repo_path, stash_name, delete_after))

    async def stash_delete(self, repo_path: str, stash_name: str, ref: Optional[str] = None) -> Optional[str]:
        """Drop ``stash_name``, first checking it still points at ``ref``.

        Raises:
            StashMismatchError: If the stash list shifted and the name now
                refers to a different commit.
        """
        if not stash_name:
            return None

        if ref:
            actual = (await self.run_text(builder.show_stash_sha(repo_path, stash_name))).strip()
            if actual != ref:
                raise StashMismatchError(stash_name, ref, actual or None)

        return await self.run_text(builder.stash_drop(repo_path, stash_name))

    async def stash_list(self, repo_path: str, similarity_threshold: Optional[int] = None) -> str:
        return await self.run_text(builder.stash_list(repo_path, similarity_threshold))

    async def stash_push(self, repo_path: str, options: StashPushOptions = StashPushOptions()) -> None:
        await self.run(builder.stash_push(repo_path, options))

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def porcelain_version(self) -> int:
        return builder.porcelain_version(self.version)

    async def status(self, repo_path: str, similarity_threshold: Optional[int] = None) -> str:
        return await self.run_text(builder.status(repo_path, self.version, similarity_threshold))

    async def status_file(
        self,
        repo_path: str,
        file_name: str,
        similarity_threshold: Optional[int] = None,
    ) -> str:
        return await self.run_text(builder.status_file(repo_path, file_name, self.version, similarity_threshold))
