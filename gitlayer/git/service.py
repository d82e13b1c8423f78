"""The git service.

:class:`GitService` is the one object callers talk to. It owns the git
executor, the repository registry and every cache, and exposes one
coroutine per question a caller can ask about a repository: blame, diffs,
logs, branches, status, remotes and so on.

Most answers are cached. Per-file results live on tracked documents (see
:mod:`gitlayer.git.documents`); per-repository results live in
:class:`~gitlayer.git.caches.RepositoryCaches`. Both are dropped by the
repository change events the registry forwards.
"""

from __future__ import annotations

import asyncio
import getpass
import hashlib
import logging
import os
import posixpath
import re
import socket
import sys
from dataclasses import replace
from fnmatch import fnmatch
from typing import Any, Awaitable, Callable, Literal, Optional, Sequence, TypeVar, Union

from gitlayer.config import get_settings
from gitlayer.config.settings import Settings
from gitlayer.errors import CancellationError, GitLayerError, RunError
from gitlayer.git import revision
from gitlayer.git.builder import (
    MAX_CLI_LENGTH,
    PATHSPEC_FROM_FILE_VERSION,
    STASH_PUSH_FILES_VERSION,
    BlameOptions,
    DiffOptions,
    LogFileOptions,
    LogOptions,
    Ordering,
    ReflogOptions,
    StashPushOptions,
)
from gitlayer.git.caches import ResultCache, RepositoryCaches
from gitlayer.git.commands import Git
from gitlayer.git.diagnostics import is_error
from gitlayer.git.documents import DocumentState, DocumentTracker, TrackedDocument, get_or_compute
from gitlayer.git.locator import compare_versions, find_git_path
from gitlayer.git.models import (
    LOG,
    LOG_FILE,
    Author,
    Blame,
    BlameForLine,
    BlameLines,
    Branch,
    BranchTracking,
    Contributor,
    Diff,
    DiffHunkLine,
    DiffShortStat,
    FileChange,
    GitUser,
    Log,
    LogCommit,
    MergeStatus,
    RebaseStatus,
    RebaseStep,
    Reference,
    Reflog,
    Remote,
    Stash,
    Status,
    StatusFile,
    Tag,
    TreeEntry,
    sort_branches,
    sort_tags,
)
from gitlayer.git.parsers import blame as blame_parser
from gitlayer.git.parsers import branch as branch_parser
from gitlayer.git.parsers import diff as diff_parser
from gitlayer.git.parsers import log as log_parser
from gitlayer.git.parsers import reflog as reflog_parser
from gitlayer.git.parsers import remote as remote_parser
from gitlayer.git.parsers import shortlog as shortlog_parser
from gitlayer.git.parsers import stash as stash_parser
from gitlayer.git.parsers import status as status_parser
from gitlayer.git.parsers import tag as tag_parser
from gitlayer.git.parsers import tree as tree_parser
from gitlayer.git.parsers.common import from_timestamp
from gitlayer.git.registry import RepositoryRegistry
from gitlayer.git.remotes import PullRequest, PullRequestApi, PullRequestState, RemoteProviderFactory, RichRemoteProvider
from gitlayer.git.repository import Repository, RepositoryChange, RepositoryChangeEvent, WorkspaceFolder
from gitlayer.git.search import SearchPattern, build_search_args
from gitlayer.git.shell import IS_WINDOWS, Encoding, ProcessRunner, fs_exists
from gitlayer.utils.inflight import with_timeout
from gitlayer.utils.paths import is_descendant, is_folder_glob, normalize_path, split_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Likelihood that a branch name is the repository's default branch
DEFAULT_BRANCH_WEIGHTS = {
    "master": 100,
    "main": 15,
    "default": 10,
    "develop": 5,
    "development": 1,
}

# Which remote most likely hosts the pull requests
REMOTE_WEIGHTS = {
    "upstream": 15,
    "origin": 10,
}
BRANCH_REMOTE_WEIGHT = 100

INCOMING_COMMANDS = ("merge", "pull")

_USER_CONFIG_RE = re.compile(r"^user\.(name|email) (.*)$", re.MULTILINE)
_MAPPED_AUTHOR_RE = re.compile(r"(.+)\s<(.+)>")
_REMOTE_HEAD_RE = re.compile(r"ref:\s(\S+)\s+HEAD")
_CHECKOUT_OVERWRITE_RE = re.compile(r"overwritten by checkout", re.IGNORECASE)
_REBASING_BRANCH_PREFIX = "(no branch, rebasing"

BranchesAndTags = Literal["all", "branches", "tags"]
FileRange = tuple[int, int]


def _sha1(contents: str) -> str:
    return hashlib.sha1(contents.encode("utf-8")).hexdigest()


def _merge_authors(a: dict[str, Author], b: dict[str, Author]) -> dict[str, Author]:
    authors = dict(a)
    for name, author in b.items():
        existing = authors.get(name)
        authors[name] = (
            author if existing is None else replace(existing, line_count=existing.line_count + author.line_count)
        )
    return authors


class GitService:
    """Answers questions about the repositories of a workspace.

    Call :meth:`initialize` once before use and :meth:`shutdown` when done.

    Example:
        >>> service = GitService()
        >>> await service.initialize([WorkspaceFolder("/src/project", "project")])
        >>> blame = await service.get_blame_for_file("/src/project/app.py")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        runner: Optional[ProcessRunner] = None,
        git: Optional[Git] = None,
        provider_apis: Optional[dict[str, PullRequestApi]] = None,
    ):
        """Create the service.

        Args:
            settings: Settings to use (the global settings by default).
            runner: Process runner handed to the git executor.
            git: An already configured executor; skips locating git.
            provider_apis: Pull request clients keyed by provider id
                (``github``, ``gitlab``).
        """
        self.settings = settings or get_settings()
        self.runner = runner or ProcessRunner()
        self._git = git

        session = self.settings.session
        self.registry = RepositoryRegistry(guest=session.guest, guest_prefix=session.guest_prefix)
        self.documents = DocumentTracker(caching_enabled=self.settings.caching_enabled)
        self.caches = RepositoryCaches()
        self.provider_factory = RemoteProviderFactory(self.settings.remotes, provider_apis)

        self._suspended = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self, folders: Sequence[WorkspaceFolder] = ()) -> None:
        """Locate git (unless an executor was given) and discover repositories.

        Raises:
            GitNotFoundError: If no working git executable was found.
        """
        if self._git is None:
            location = await find_git_path(self.settings.git.path, self.runner)
            self._git = Git(location, self.runner, guest=self.settings.session.guest)
        logger.info(f"Using git {self._git.version} from {self._git.path}")

        if self._unsubscribe is None:
            self._unsubscribe = self.registry.on_did_change_repository(self._on_any_repository_changed)

        if folders:
            await self.on_workspace_folders_changed(folders, initializing=True)

    async def shutdown(self) -> None:
        """Close every repository and drop every cache."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.registry.clear()
        self.caches.reset()
        self.documents.reset(reason="shutdown")

    @property
    def git(self) -> Git:
        if self._git is None:
            raise GitLayerError("GitService is not initialized", code="NOT_INITIALIZED")
        return self._git

    @property
    def use_caching(self) -> bool:
        return self.settings.caching_enabled

    def _on_any_repository_changed(self, event: RepositoryChangeEvent) -> None:
        self.caches.invalidate(event)
        self.documents.on_repository_changed(event)

        if event.changed(RepositoryChange.CLOSED):
            self.registry.fire_repositories_changed()

    def set_focused(self, focused: bool) -> None:
        """Queue change events of every repository while unfocused; resuming fires them."""
        self._suspended = not focused
        for repository in self.registry.values():
            if focused:
                repository.resume()
            else:
                repository.suspend()

    async def _cached(
        self,
        cache: ResultCache[T],
        key: str,
        repo_path: str,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Load through ``cache``, keeping the result only while it can be invalidated."""
        result = await cache.get_or_load(key, loader, enabled=self.use_caching)

        repository = self.registry.get(repo_path)
        if repository is None or not repository.supports_change_events:
            cache.delete(key)
        return result

    def reset_caches(self, *names: str) -> None:
        """Flush caches by name (``branches``, ``contributors``, ``providers``,
        ``remotes``, ``stashes``, ``status``, ``tags``); everything when none given."""
        self.caches.reset(*names)

        if not names or "remotes" in names:
            for repository in self.registry.values():
                repository.reset_caches("remotes")
        if not names:
            self.documents.reset(reason="caches reset")

    # =========================================================================
    # Repositories
    # =========================================================================

    async def on_workspace_folders_changed(
        self,
        added: Sequence[WorkspaceFolder] = (),
        removed: Sequence[WorkspaceFolder] = (),
        initializing: bool = False,
    ) -> None:
        for folder in added:
            for repository in await self.repository_search(folder):
                if self._suspended:
                    repository.suspend()
                self.registry.add(repository, notify=False)

        for folder in removed:
            path = normalize_path(folder.path)
            stale = self.registry.find_all_under(path)
            exact = self.registry.get(path)
            if exact is not None:
                stale.append(exact)
            for repository in stale:
                self.registry.remove(repository.path, notify=False)

        if not initializing:
            self.registry.fire_repositories_changed()

    async def repository_search(self, folder: WorkspaceFolder) -> list[Repository]:
        """Find the repository at ``folder`` and those nested below it.

        Nested ``.git`` directories are looked for down to
        ``advanced.repository_search_depth`` levels, skipping folders that
        match ``advanced.search_exclude``.
        """
        depth = self.settings.advanced.repository_search_depth

        logger.debug(f"Searching for repositories (depth={depth}) in '{folder.path}'")

        repositories: list[Repository] = []
        root_path = await self._get_repo_path_core(folder.path, is_directory=True)
        if root_path is not None:
            logger.debug(f"Repository found in '{root_path}'")
            repositories.append(Repository(root_path, folder, root=True))

        if depth <= 0:
            return repositories

        excludes = {pattern[3:] if pattern.startswith("**/") else pattern for pattern in self.settings.advanced.search_exclude}
        try:
            found = await asyncio.to_thread(_find_dot_git_dirs, folder.path, depth, excludes)
        except FileNotFoundError:
            return repositories
        except OSError as e:
            logger.error(f"Repository search failed in '{folder.path}': {e}")
            return repositories

        for dot_git in found:
            path = posixpath.dirname(normalize_path(dot_git))
            if root_path is not None and path == root_path:
                continue

            repo_path = await self._get_repo_path_core(path, is_directory=True)
            if repo_path is None or repo_path == root_path:
                continue
            logger.debug(f"Repository found in '{repo_path}'")
            repositories.append(Repository(repo_path, folder, root=False))

        return repositories

    async def get_repo_path(self, file_path: Optional[str] = None, is_directory: Optional[bool] = None) -> Optional[str]:
        """Root of the repository owning ``file_path``.

        An unknown repository found on the way is registered (and announced).
        With no path, the only registered repository is used.
        """
        if file_path is None:
            return self.get_highlander_repo_path()

        repository = self.registry.find(file_path)
        if repository is not None:
            return repository.path

        repo_path = await self._get_repo_path_core(file_path, is_directory)
        if repo_path is None:
            return None

        if self.registry.get(repo_path) is not None:
            return repo_path

        owner = self.registry.find(repo_path)
        folder = owner.folder if owner is not None and owner.folder is not None else WorkspaceFolder(
            repo_path, posixpath.basename(repo_path), index=self.registry.count()
        )
        logger.debug(f"Repository found in '{repo_path}'")
        repository = Repository(repo_path, folder, root=False, suspended=self._suspended)
        self.registry.add(repository)
        return repo_path

    async def _get_repo_path_core(self, path: str, is_directory: Optional[bool] = None) -> Optional[str]:
        if is_directory is None:
            is_directory = await asyncio.to_thread(os.path.isdir, path)
        cwd = path if is_directory else os.path.dirname(path)

        try:
            toplevel = await self.git.rev_parse_show_toplevel(cwd)
        except GitLayerError as e:
            logger.error(f"Unable to find repository for '{path}': {e}")
            return None
        if toplevel is None:
            return None

        if IS_WINDOWS:
            return await asyncio.to_thread(_map_unc_to_drive, toplevel)
        return await asyncio.to_thread(_preserve_symlinked_path, toplevel, cwd)

    def get_repository(self, path: str) -> Optional[Repository]:
        """The registered repository owning ``path``, if any."""
        return self.registry.get(path) or self.registry.find(path)

    async def get_repository_for_file(self, file_name: str, ref: Optional[str] = None) -> Optional[Repository]:
        """Like :meth:`get_repository`, but only if the file is tracked there."""
        repository = self.registry.get(file_name)
        if repository is not None:
            return repository

        repository = self.registry.find(file_name)
        if repository is None:
            return None
        if not await self.is_tracked(file_name, repository.path, ref=ref, skip_cache_update=True):
            return None
        return repository

    def get_repositories(self, predicate: Optional[Callable[[Repository], bool]] = None) -> list[Repository]:
        repositories = self.registry.values()
        if predicate is None:
            return repositories
        return [repository for repository in repositories if predicate(repository)]

    def get_ordered_repositories(self) -> list[Repository]:
        """Open repositories, workspace roots first, then by folder and name."""
        return sorted(
            (repository for repository in self.registry.values() if not repository.closed),
            key=lambda r: (not r.root, r.folder.index if r.folder is not None else sys.maxsize, r.name.lower()),
        )

    def get_highlander_repo_path(self) -> Optional[str]:
        repository = self.registry.highlander()
        return repository.path if repository is not None else None

    def get_repository_count(self) -> int:
        return self.registry.count()

    async def is_tracked(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
        skip_cache_update: bool = False,
    ) -> bool:
        """Whether git knows ``file_name`` (at ``ref``, or its parent commit)."""
        if ref == revision.DELETED_OR_MISSING:
            return False

        file, root = split_path(file_name, repo_path)
        key = posixpath.join(root, file) if root else file
        if ref:
            key = f"{key}:{ref}"

        return await self.caches.tracked.get_or_load(
            key,
            lambda: self._is_tracked_core(file, root, ref),
            enabled=not skip_cache_update,
        )

    async def _is_tracked_core(self, file_name: str, repo_path: str, ref: Optional[str]) -> bool:
        try:
            tracked = bool(await self.git.ls_files(repo_path, file_name))
            if not tracked and ref and not revision.is_uncommitted(ref):
                tracked = bool(await self.git.ls_files(repo_path, file_name, ref=ref))
                # Deleted in ref, so look in its parent
                if not tracked:
                    tracked = bool(await self.git.ls_files(repo_path, file_name, ref=f"{ref}^"))
            return tracked
        except GitLayerError as e:
            logger.error(f"is_tracked failed for '{file_name}': {e}")
            return False

    def _document(self, file_name: str, repo_path: Optional[str]) -> tuple[TrackedDocument, str, str]:
        file, root = split_path(file_name, repo_path)
        return self.documents.get_or_add(posixpath.join(root, file), root), file, root

    # =========================================================================
    # Blame
    # =========================================================================

    def _blame_options(self, start_line: Optional[int] = None, end_line: Optional[int] = None) -> BlameOptions:
        return BlameOptions(
            args=tuple(self.settings.advanced.blame.custom_arguments or ()),
            ignore_whitespace=self.settings.blame.ignore_whitespace,
            start_line=start_line,
            end_line=end_line,
        )

    async def get_blame_for_file(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> Optional[Blame]:
        document, file, root = self._document(file_name, repo_path)
        key = f"blame:{ref}" if ref else "blame"

        async def produce() -> Optional[Blame]:
            if not await self.is_tracked(file, root, ref=ref):
                logger.debug(f"Skipping blame; '{file_name}' is not tracked")
                return None

            data = await self.git.blame(root, file, ref, self._blame_options())
            return blame_parser.parse(data, root, file, await self.get_current_user(root))

        return await get_or_compute(
            document, key, produce, caching=self.use_caching, on_error=DocumentState.set_blame_failure
        )

    async def get_blame_for_file_contents(
        self,
        file_name: str,
        contents: str,
        repo_path: Optional[str] = None,
    ) -> Optional[Blame]:
        """Blame unsaved ``contents`` of ``file_name``."""
        document, file, root = self._document(file_name, repo_path)
        key = f"blame:{_sha1(contents)}"

        async def produce() -> Optional[Blame]:
            if not await self.is_tracked(file, root):
                return None

            data = await self.git.blame_contents(root, file, contents, self._blame_options(), correlation_key=f":{key}")
            return blame_parser.parse(data, root, file, await self.get_current_user(root))

        return await get_or_compute(
            document, key, produce, caching=self.use_caching, on_error=DocumentState.set_blame_failure
        )

    def _blame_for_line_from(self, blame: Optional[Blame], line: int) -> Optional[BlameForLine]:
        if blame is None:
            return None

        blame_line = blame.line(line)
        # An appended last line has no blame yet; use the one above it
        if blame_line is None and len(blame.lines) == line:
            blame_line = blame.line(line - 1)
        if blame_line is None:
            return None

        commit = blame.commits[blame_line.sha]
        author = replace(blame.authors[commit.author], line_count=len(commit.lines))
        return BlameForLine(author=author, commit=commit, line=blame_line)

    def _single_line_blame(self, data: str, repo_path: str, file_name: str, user: Optional[GitUser]) -> Optional[BlameForLine]:
        blame = blame_parser.parse(data, repo_path, file_name, user)
        if blame is None or not blame.lines:
            return None

        commit = next(iter(blame.commits.values()))
        return BlameForLine(author=next(iter(blame.authors.values())), commit=commit, line=blame.lines[0])

    async def get_blame_for_line(
        self,
        file_name: str,
        line: int,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
        skip_cache: bool = False,
    ) -> Optional[BlameForLine]:
        """Blame of one (0-based) line.

        With caching the whole file is blamed once and the line is picked out
        of it; otherwise git is asked for just that line.
        """
        if not skip_cache and self.use_caching:
            blame = await self.get_blame_for_file(file_name, repo_path, ref)
            return self._blame_for_line_from(blame, line)

        file, root = split_path(file_name, repo_path)
        try:
            data = await self.git.blame(root, file, ref, self._blame_options(line + 1, line + 1))
            return self._single_line_blame(data, root, file, await self.get_current_user(root))
        except GitLayerError as e:
            logger.debug(f"Blame for line {line} of '{file_name}' failed: {e}")
            return None

    async def get_blame_for_line_contents(
        self,
        file_name: str,
        line: int,
        contents: str,
        repo_path: Optional[str] = None,
        skip_cache: bool = False,
    ) -> Optional[BlameForLine]:
        if not skip_cache and self.use_caching:
            blame = await self.get_blame_for_file_contents(file_name, contents, repo_path)
            return self._blame_for_line_from(blame, line)

        file, root = split_path(file_name, repo_path)
        try:
            data = await self.git.blame_contents(root, file, contents, self._blame_options(line + 1, line + 1))
            return self._single_line_blame(data, root, file, await self.get_current_user(root))
        except GitLayerError as e:
            logger.debug(f"Blame for line {line} of '{file_name}' failed: {e}")
            return None

    async def get_blame_for_range(
        self,
        file_name: str,
        range: FileRange,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> Optional[BlameLines]:
        blame = await self.get_blame_for_file(file_name, repo_path, ref)
        if blame is None:
            return None
        return self.get_blame_for_range_sync(blame, range)

    def get_blame_for_range_sync(self, blame: Blame, range: FileRange) -> Optional[BlameLines]:
        """Restrict ``blame`` to the 0-based, inclusive line ``range``.

        Authors are recounted over the range and ordered by line count.
        """
        if not blame.lines:
            return BlameLines(blame.repo_path, blame.authors, blame.commits, blame.lines, all_lines=blame.lines)

        start, end = range
        if start == 0 and end == len(blame.lines) - 1:
            return BlameLines(blame.repo_path, blame.authors, blame.commits, blame.lines, all_lines=blame.lines)

        lines = blame.lines[start:end + 1]
        shas = {line.sha for line in lines}

        counts: dict[str, int] = {}
        commits = {}
        for sha, commit in blame.commits.items():
            if sha not in shas:
                continue

            in_range = tuple(line for line in commit.lines if start <= line.line <= end)
            commits[sha] = replace(commit, lines=in_range)
            counts[commit.author] = counts.get(commit.author, 0) + len(in_range)

        authors = {
            name: Author(name, count)
            for name, count in sorted(counts.items(), key=lambda item: item[1], reverse=True)
        }
        return BlameLines(blame.repo_path, authors, commits, lines, all_lines=blame.lines)

    # =========================================================================
    # Diff
    # =========================================================================

    def _diff_options(self, encoding: Encoding = "utf8") -> DiffOptions:
        return DiffOptions(
            encoding=encoding,
            filters=("M",),
            lines_of_context=0,
            renames=True,
            similarity_threshold=self.settings.advanced.similarity_threshold,
        )

    async def get_diff_for_file(
        self,
        file_name: str,
        ref1: Optional[str] = None,
        ref2: Optional[str] = None,
        repo_path: Optional[str] = None,
    ) -> Optional[Diff]:
        """Modifications of ``file_name`` between two revisions.

        With no refs the working tree is compared with the index.
        """
        document, file, root = self._document(file_name, repo_path)

        key = "diff"
        if ref1:
            key += f":{ref1}"
        if ref2:
            key += f":{ref2}"

        async def produce() -> Optional[Diff]:
            data = await self.git.diff(root, file, ref1, ref2, self._diff_options())
            return diff_parser.parse(data)

        return await get_or_compute(document, key, produce, caching=self.use_caching)

    async def get_diff_for_file_contents(
        self,
        file_name: str,
        ref: str,
        contents: str,
        repo_path: Optional[str] = None,
    ) -> Optional[Diff]:
        """Modifications of unsaved ``contents`` relative to ``ref``."""
        document, file, root = self._document(file_name, repo_path)
        key = f"diff:{_sha1(contents)}"

        async def produce() -> Optional[Diff]:
            data = await self.git.diff_contents(root, file, ref, contents, self._diff_options())
            return diff_parser.parse(data)

        return await get_or_compute(document, key, produce, caching=self.use_caching)

    async def get_diff_for_line(
        self,
        file_name: str,
        line: int,
        ref1: Optional[str] = None,
        ref2: Optional[str] = None,
        repo_path: Optional[str] = None,
    ) -> Optional[DiffHunkLine]:
        """The changed line at 0-based ``line``, if a hunk covers it."""
        diff = await self.get_diff_for_file(file_name, ref1, ref2, repo_path)
        if diff is None:
            return None

        hunk = diff.hunk_for_line(line + 1)
        if hunk is None:
            return None
        return hunk.line_for_current(line + 1)

    async def get_diff_status(
        self,
        repo_path: str,
        ref1: Optional[str] = None,
        ref2: Optional[str] = None,
        filters: Sequence[str] = (),
        similarity_threshold: Optional[int] = None,
    ) -> Optional[list[FileChange]]:
        if similarity_threshold is None:
            similarity_threshold = self.settings.advanced.similarity_threshold
        try:
            data = await self.git.diff_name_status(
                repo_path, ref1, ref2, filters=filters, similarity_threshold=similarity_threshold
            )
        except GitLayerError as e:
            logger.debug(f"Diff status failed: {e}")
            return None
        return diff_parser.parse_name_status(data, repo_path)

    async def get_file_status_for_commit(
        self,
        repo_path: str,
        file_name: str,
        ref: str,
    ) -> Optional[FileChange]:
        if ref in (revision.DELETED_OR_MISSING, revision.UNCOMMITTED):
            return None

        file, root = split_path(file_name, repo_path)
        data = await self.git.show_name_status(root, file, ref)
        files = diff_parser.parse_name_status(data, root)
        return files[0] if files else None

    async def get_changed_files_count(self, repo_path: str, ref: Optional[str] = None) -> Optional[DiffShortStat]:
        data = await self.git.diff_shortstat(repo_path, ref)
        if not data:
            return None
        return diff_parser.parse_shortstat(data)

    async def apply_changes_to_file(
        self,
        file_name: str,
        ref1: str,
        ref2: Optional[str] = None,
        repo_path: Optional[str] = None,
        allow_conflicts: bool = False,
    ) -> None:
        """Apply the changes ``ref1``..``ref2`` of one file to the working tree.

        Raises:
            RunError: If the patch doesn't apply (even with a 3-way merge
                when ``allow_conflicts``).
        """
        file, root = split_path(file_name, repo_path)
        if not ref2:
            ref1, ref2 = f"{ref1}^", ref1

        patch = await self.git.diff(root, file, ref1, ref2, DiffOptions())
        try:
            await self.git.apply(root, patch)
        except RunError as e:
            if not allow_conflicts or "patch does not apply" not in e.message:
                raise
            await self.git.apply(root, patch, allow_conflicts=True)

    # =========================================================================
    # Log
    # =========================================================================

    @property
    def _ordering(self) -> Ordering:
        return self.settings.advanced.commit_ordering

    def _limit(self, limit: Optional[int]) -> int:
        return self.settings.advanced.max_list_items if limit is None else limit

    async def get_log(
        self,
        repo_path: str,
        ref: Optional[str] = None,
        *,
        all: bool = False,
        authors: Sequence[str] = (),
        limit: Optional[int] = None,
        merges: bool = True,
        ordering: Ordering = None,
        reverse: bool = False,
        since: Optional[str] = None,
    ) -> Optional[Log]:
        """A page of commits of the repository (reachable from ``ref``).

        The returned log can re-run itself with another page size
        (``query``) and, while it has more, fetch the next page (``more``).
        """
        limit = self._limit(limit)
        ordering = ordering or self._ordering
        options = dict(all=all, authors=tuple(authors), merges=merges, ordering=ordering, reverse=reverse, since=since)

        try:
            data = await self.git.log(
                repo_path,
                ref,
                LogOptions(
                    limit=limit,
                    similarity_threshold=self.settings.advanced.similarity_threshold,
                    **options,
                ),
            )
            log = log_parser.parse(
                data,
                LOG,
                repo_path,
                sha=ref,
                current_user=await self.get_current_user(repo_path),
                limit=limit,
                reverse=reverse,
            )
        except GitLayerError as e:
            logger.debug(f"Log failed for '{repo_path}': {e}")
            return None

        if log is None:
            return None

        async def query(new_limit: Optional[int]) -> Optional[Log]:
            return await self.get_log(repo_path, ref, limit=new_limit, **options)

        return log.with_paging(query, self._log_more(log, ref, options))

    def _log_more(self, log: Log, ref: Optional[str], options: dict[str, Any]) -> Callable[[Any], Awaitable[Optional[Log]]]:
        async def more(more_limit: Any = None) -> Optional[Log]:
            until = more_limit.get("until") if isinstance(more_limit, dict) else None
            if until and until in log.commits:
                return log

            more_limit = None if until else more_limit
            if more_limit is None:
                more_limit = self.settings.advanced.max_search_items

            if log.sha and revision.is_range(log.sha):
                more_log = await self.get_log(log.repo_path, ref, limit=(log.limit or 0) + more_limit, **options)
                if more_log is None:
                    return replace(log, has_more=False, more=None)
                return more_log

            oldest = log.oldest
            if oldest is None:
                return replace(log, has_more=False, more=None)
            more_ref = f"{until}^..{oldest.sha}^" if until else f"{oldest.sha}^"

            more_log = await self.get_log(log.repo_path, more_ref, limit=0 if until else more_limit, **options)
            if more_log is None:
                return replace(log, has_more=False, more=None)

            commits = {**log.commits, **more_log.commits}
            merged = replace(
                log,
                commits=commits,
                authors=_merge_authors(log.authors, more_log.authors),
                count=len(commits),
                limit=None if until else (log.limit or 0) + more_limit,
                has_more=True if until else more_log.has_more,
            )
            return merged.with_paging(log.query, self._log_more(merged, ref, options))

        return more

    async def get_log_refs_only(
        self,
        repo_path: str,
        ref: Optional[str] = None,
        *,
        authors: Sequence[str] = (),
        limit: Optional[int] = None,
        merges: bool = True,
        ordering: Ordering = None,
        reverse: bool = False,
        since: Optional[str] = None,
    ) -> Optional[set[str]]:
        try:
            data = await self.git.log(
                repo_path,
                ref,
                LogOptions(
                    authors=tuple(authors),
                    format="refs",
                    limit=self._limit(limit),
                    merges=merges,
                    ordering=ordering or self._ordering,
                    reverse=reverse,
                    since=since,
                ),
            )
        except GitLayerError as e:
            logger.debug(f"Log failed for '{repo_path}': {e}")
            return None
        return set(log_parser.parse_refs_only(data))

    async def get_log_for_search(
        self,
        repo_path: str,
        search: SearchPattern,
        *,
        limit: Optional[int] = None,
        ordering: Ordering = None,
        skip: Optional[int] = None,
    ) -> Optional[Log]:
        """Commits matching a search pattern (see :mod:`gitlayer.git.search`)."""
        if limit is None:
            limit = self.settings.advanced.max_search_items
        ordering = ordering or self._ordering

        args, use_show = build_search_args(search, self.settings.advanced.similarity_threshold)
        try:
            data = await self.git.log_search(
                repo_path, args, limit=limit, ordering=ordering, skip=skip, use_show=use_show
            )
            log = log_parser.parse(
                data, LOG, repo_path, current_user=await self.get_current_user(repo_path), limit=limit
            )
        except GitLayerError as e:
            logger.debug(f"Search failed for '{repo_path}': {e}")
            return None

        if log is None:
            return None

        async def query(new_limit: Optional[int]) -> Optional[Log]:
            return await self.get_log_for_search(repo_path, search, limit=new_limit, ordering=ordering)

        return log.with_paging(query, self._search_more(log, search, ordering))

    def _search_more(self, log: Log, search: SearchPattern, ordering: Ordering) -> Callable[[Any], Awaitable[Optional[Log]]]:
        async def more(more_limit: Any = None) -> Optional[Log]:
            if not isinstance(more_limit, int):
                more_limit = self.settings.advanced.max_search_items

            more_log = await self.get_log_for_search(
                log.repo_path, search, limit=more_limit, ordering=ordering, skip=log.count
            )
            if more_log is None:
                return replace(log, has_more=False, more=None)

            commits = {**log.commits, **more_log.commits}
            merged = replace(
                log,
                commits=commits,
                authors=_merge_authors(log.authors, more_log.authors),
                count=len(commits),
                limit=(log.limit or 0) + more_limit,
                has_more=more_log.has_more,
            )
            return merged.with_paging(log.query, self._search_more(merged, search, ordering))

        return more

    async def get_log_for_file(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        *,
        all: Optional[bool] = None,
        limit: Optional[int] = None,
        ordering: Ordering = None,
        range: Optional[FileRange] = None,
        ref: Optional[str] = None,
        renames: Optional[bool] = None,
        reverse: bool = False,
        since: Optional[str] = None,
        skip: Optional[int] = None,
    ) -> Optional[Log]:
        """History of one file, or of a folder given as ``<folder>/*``.

        A cached history with no limit answers narrower requests without
        running git again. Line-range histories are never cached.

        Raises:
            ValueError: If ``file_name`` is the repository root itself.
        """
        if repo_path is not None and normalize_path(repo_path) == normalize_path(file_name):
            raise ValueError(f"File name cannot match the repository path; file_name={file_name}")

        advanced = self.settings.advanced
        all = advanced.file_history_show_all_branches if all is None else all
        renames = advanced.file_history_follows_renames if renames is None else renames
        limit = self._limit(limit)
        ordering = ordering or self._ordering

        document, file, root = self._document(file_name, repo_path)

        key = "log"
        if ref:
            key += f":{ref}"
        if all:
            key += ":all"
        if limit:
            key += f":n{limit}"
        if renames:
            key += ":follow"
        if reverse:
            key += ":reverse"
        if since:
            key += f":since={since}"
        if skip:
            key += f":skip{skip}"

        if range is None and self.use_caching:
            partial = await self._log_for_file_from_cache(
                document,
                key,
                ref,
                limit,
                renames,
                reverse,
                lambda new_limit: self.get_log_for_file(
                    file, root, all=all, limit=new_limit, ordering=ordering, ref=ref, renames=renames, reverse=reverse
                ),
            )
            if partial is not None:
                return partial

        async def produce() -> Optional[Log]:
            if not await self.is_tracked(file, root, ref=ref):
                logger.debug(f"Skipping log; '{file_name}' is not tracked")
                return None

            line_range = range
            if line_range is not None and line_range[0] > line_range[1]:
                line_range = (line_range[1], line_range[0])

            data = await self.git.log_file(
                root,
                file,
                ref,
                LogFileOptions(
                    all=all,
                    first_parent=renames,
                    limit=limit,
                    ordering=ordering,
                    renames=renames,
                    reverse=reverse,
                    since=since,
                    skip=skip,
                    start_line=line_range[0] + 1 if line_range else None,
                    end_line=line_range[1] + 1 if line_range else None,
                ),
            )
            log = log_parser.parse(
                data,
                LOG if is_folder_glob(file) else LOG_FILE,
                root,
                file,
                ref,
                await self.get_current_user(root),
                limit,
                reverse,
                line_range,
            )
            if log is None:
                return None

            options = dict(all=all, ordering=ordering, range=line_range, ref=ref, renames=renames, reverse=reverse, since=since)

            async def query(new_limit: Optional[int]) -> Optional[Log]:
                return await self.get_log_for_file(file, root, limit=new_limit, **options)

            return log.with_paging(query, self._file_log_more(log, file, options))

        return await get_or_compute(
            document if range is None else None,
            key,
            produce,
            caching=self.use_caching,
        )

    async def _log_for_file_from_cache(
        self,
        document: TrackedDocument,
        key: str,
        ref: Optional[str],
        limit: int,
        renames: bool,
        reverse: bool,
        query: Callable[[Optional[int]], Awaitable[Optional[Log]]],
    ) -> Optional[Log]:
        state = document.state
        if state is None or key in state:
            return None

        full_key = "log"
        if renames:
            full_key += ":follow"
        if reverse:
            full_key += ":reverse"

        entry = state.get(full_key)
        if entry is None or full_key == key:
            return None

        if ref is None:
            logger.debug(f"{document.key}: cache hit ~'{key}'")
            return await asyncio.shield(entry.future)

        log: Optional[Log] = await asyncio.shield(entry.future)
        if log is None or log.has_more or ref not in log.commits:
            return None

        logger.debug(f"{document.key}: cache hit ~'{key}'")

        # Take the commits from ref on, up to limit
        commits: dict[str, LogCommit] = {}
        found = False
        for sha, commit in log.commits.items():
            if not found:
                if sha != ref:
                    continue
                found = True
            if limit and len(commits) >= limit:
                break
            commits[sha] = commit

        return replace(
            log,
            commits=commits,
            count=len(commits),
            limit=limit or None,
            has_more=False,
            query=query,
            more=None,
        )

    def _file_log_more(self, log: Log, file_name: str, options: dict[str, Any]) -> Callable[[Any], Awaitable[Optional[Log]]]:
        async def more(more_limit: Any = None) -> Optional[Log]:
            until = more_limit.get("until") if isinstance(more_limit, dict) else None
            if until and until in log.commits:
                return log

            more_limit = None if until else more_limit
            if more_limit is None:
                more_limit = self.settings.advanced.max_search_items

            oldest = log.oldest
            if oldest is None:
                return replace(log, has_more=False, more=None)

            next_options = dict(options)
            next_file = file_name
            skip: Optional[int] = None
            if options["all"]:
                # --all can't walk from a single ref
                skip = log.count
            else:
                next_options["ref"] = f"{until}^..{oldest.sha}^" if until else f"{oldest.sha}^"
                if options["renames"] and oldest.original_file_name:
                    next_file = oldest.original_file_name

            more_log = await self.get_log_for_file(
                next_file,
                log.repo_path,
                limit=0 if until else more_limit,
                skip=skip,
                **next_options,
            )
            if more_log is None:
                return replace(log, has_more=False, more=None)

            commits = {**log.commits, **more_log.commits}
            merged = replace(
                log,
                commits=commits,
                authors=_merge_authors(log.authors, more_log.authors),
                count=len(commits),
                limit=None if until else (log.limit or 0) + more_limit,
                has_more=True if until else more_log.has_more,
            )
            return merged.with_paging(log.query, self._file_log_more(merged, next_file, options))

        return more

    async def get_commit(self, repo_path: str, ref: str) -> Optional[LogCommit]:
        log = await self.get_log(repo_path, ref, limit=2)
        if log is None:
            return None
        return log.commits.get(ref) or log.newest

    async def get_commit_for_file(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
        *,
        first_if_not_found: bool = False,
        range: Optional[FileRange] = None,
        reverse: bool = False,
    ) -> Optional[LogCommit]:
        """The commit of ``file_name``'s history that is ``ref`` (or its newest)."""
        log = await self.get_log_for_file(
            file_name, repo_path, limit=2, range=range, ref=ref, reverse=reverse
        )
        if log is None:
            return None

        commit = log.commits.get(ref) if ref else None
        if commit is None and ref and not first_if_not_found:
            # A sha that isn't in the file's history will never be found
            if revision.is_sha(ref) or revision.is_uncommitted(ref):
                return None
        return commit or log.newest

    async def get_oldest_unpushed_ref_for_file(self, file_name: str, repo_path: Optional[str] = None) -> Optional[str]:
        file, root = split_path(file_name, repo_path)
        try:
            data = await self.git.log_file(
                root,
                file,
                "@{push}..",
                LogFileOptions(format="refs", ordering=self._ordering, renames=True),
            )
        except GitLayerError as e:
            logger.debug(f"No unpushed commits for '{file_name}': {e}")
            return None
        return log_parser.parse_last_ref_only(data)

    async def get_previous_revision_for_file(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
        *,
        skip: int = 0,
        line: Optional[int] = None,
        first_parent: bool = False,
    ) -> Optional[tuple[str, str]]:
        """The (sha, file) that changed ``file_name`` before ``ref``.

        ``skip`` steps further back; renames are followed so ``file`` is the
        name the file had in that commit. With a 0-based ``line`` only the
        history of that line counts. Without a ``ref`` (or for uncommitted
        changes) the newest commit is the previous revision.

        Returns:
            None when git lists nothing; ``DELETED_OR_MISSING`` as sha when
            ``ref`` is the oldest commit of the file.
        """
        if ref == revision.DELETED_OR_MISSING:
            return None
        if revision.is_uncommitted(ref, exact=True):
            ref = None

        file, root = split_path(file_name, repo_path)
        try:
            data = await self.git.log_file(
                root,
                file,
                ref,
                LogFileOptions(
                    first_parent=first_parent,
                    format="simple",
                    limit=skip + 2,
                    ordering=self._ordering,
                    start_line=line + 1 if line is not None else None,
                ),
            )
        except GitLayerError as e:
            # Past the end of a file the line has no history; fall back to the file's
            if line is None or not is_error(str(e), "invalid_line_count") or not (
                ref is None or revision.is_uncommitted_staged(ref)
            ):
                raise

            if ref is None:
                status = await self.get_status_for_file(root, file)
                if status is not None and status.index_status:
                    return revision.UNCOMMITTED_STAGED, file

            recent = await self.git.log_file_recent(root, file, ordering=self._ordering)
            return (recent.strip() if recent else revision.DELETED_OR_MISSING), file

        if not data:
            return None

        previous, found, _ = log_parser.parse_simple(data, skip, ref)
        # Asking for ``ref`` and getting it back means there's nothing older
        if ref is not None and previous == ref:
            return None
        return previous or revision.DELETED_OR_MISSING, found or file

    async def get_next_revision_for_file(
        self,
        file_name: str,
        repo_path: Optional[str] = None,
        ref: Optional[str] = None,
        *,
        skip: int = 0,
    ) -> Optional[tuple[str, str]]:
        """The (sha, file) of the commit after ``ref`` that changed ``file_name``.

        When that commit deleted the file and it was really a rename or copy,
        the new name is returned. Working tree and staged refs have no next
        commit.
        """
        if not ref or revision.is_uncommitted_staged(ref):
            return None

        filters: tuple[str, ...] = ()
        if ref == revision.DELETED_OR_MISSING:
            # Moving on from a missing file means finding where it was added
            ref = None
            filters = ("A",)

        file, root = split_path(file_name, repo_path)
        data = await self.git.log_file(
            root,
            file,
            ref,
            LogFileOptions(
                filters=filters,
                format="simple",
                limit=skip + 1,
                ordering=self._ordering,
                reverse=True,
            ),
        )
        if not data:
            return None

        next_ref, found, status = log_parser.parse_simple(data, skip)
        if next_ref is None:
            return None
        if status != "D":
            return next_ref, found or file

        renames = await self.git.log_file(
            root,
            ".",
            next_ref,
            LogFileOptions(filters=("R", "C"), format="simple", limit=1, ordering=self._ordering, renames=False),
        )
        renamed_ref, renamed, _ = log_parser.parse_simple_renamed(renames, found or file)
        return renamed_ref or next_ref, renamed or found or file

    async def get_working_file_name(self, file_name: str, repo_path: Optional[str] = None) -> Optional[str]:
        """The name ``file_name`` has in the working tree, following renames.

        Returns:
            The path relative to the repository, or None when the file was
            deleted or isn't on disk.
        """
        file, root = split_path(file_name, repo_path)

        while True:
            data = await self.git.ls_files(root, file)
            if data:
                file = data.split("\n", 1)[0].strip()
                break

            recent = await self.git.log_file_recent(
                root,
                file,
                ordering=self._ordering,
                similarity_threshold=self.settings.advanced.similarity_threshold,
            )
            if not recent:
                return None

            # Did that commit move the file somewhere else?
            data = await self.git.log_file(
                root,
                ".",
                recent.strip(),
                LogFileOptions(filters=("R", "C", "D"), format="simple", limit=1, ordering=self._ordering, renames=False),
            )
            if not data:
                break

            found_ref, found, status = log_parser.parse_simple_renamed(data, file)
            if status == "D" and found is not None:
                return None
            if found_ref is None or found is None:
                break
            file = found

        return file if await fs_exists(posixpath.join(root, file)) else None

    # =========================================================================
    # Branches and tags
    # =========================================================================

    async def get_branch(self, repo_path: Optional[str]) -> Optional[Branch]:
        """The current branch (a synthesized one while detached)."""
        if not repo_path:
            return None

        repository = self.registry.get(repo_path)
        if repository is not None and self.use_caching:
            return await repository.get_branch(lambda: self._get_branch_core(repo_path))
        return await self._get_branch_core(repo_path)

    async def _get_branch_core(self, repo_path: str) -> Optional[Branch]:
        branches = await self.get_branches(repo_path, filter=lambda b: b.current)
        if branches:
            return branches[0]

        result = await self.git.rev_parse_current_branch(repo_path, self._ordering)
        if result is None:
            return None
        return await self._synthesize_current_branch(repo_path, *result)

    async def _synthesize_current_branch(self, repo_path: str, data: str, sha: Optional[str]) -> Branch:
        name, _, upstream = data.partition("\n")
        detached = Branch.is_detached(name)

        rebase = await self.get_rebase_status(repo_path) if detached else None
        committed = await self.git.log_recent_committer_date(repo_path, self._ordering)

        return Branch(
            repo_path=repo_path,
            name=rebase.incoming.name if rebase is not None and rebase.incoming.name else name,
            remote=False,
            current=True,
            date=from_timestamp(committed.strip()) if committed else None,
            sha=sha,
            upstream=BranchTracking(upstream) if upstream else None,
            detached=detached,
            rebasing=rebase is not None,
        )

    async def get_branches(
        self,
        repo_path: Optional[str],
        *,
        filter: Optional[Callable[[Branch], bool]] = None,
        sort: bool = False,
    ) -> list[Branch]:
        if not repo_path:
            return []

        async def load() -> list[Branch]:
            try:
                data = await self.git.for_each_ref_branches(repo_path, all=True)
                if not data:
                    # A repository without commits still has a current branch
                    current = await self.git.rev_parse_current_branch(repo_path, self._ordering)
                    if current is None:
                        return []
                    return [await self._synthesize_current_branch(repo_path, *current)]
                return branch_parser.parse(data, repo_path)
            except GitLayerError as e:
                logger.error(f"Unable to list branches of '{repo_path}': {e}")
                self.caches.branches.delete(repo_path)
                return []

        branches = await self._cached(self.caches.branches, repo_path, repo_path, load)
        if filter is not None:
            branches = [branch for branch in branches if filter(branch)]
        if sort:
            branches = sort_branches(branches)
        return branches

    async def get_branch_ahead_range(self, branch: Branch) -> Optional[str]:
        """The ``<base>..<branch>`` range of commits only on ``branch``.

        Without an upstream the base is guessed from the other local
        branches: ``master`` over ``main`` over ``default`` and so on.
        """
        if branch.state.ahead > 0 and branch.upstream is not None:
            return revision.create_range(branch.upstream.name, branch.ref)

        if branch.upstream is None:
            branches = await self.get_branches(branch.repo_path, filter=lambda b: not b.remote)
            weight = 0
            best: Optional[Branch] = None
            for candidate in branches:
                candidate_weight = DEFAULT_BRANCH_WEIGHTS.get(candidate.name_without_remote(), 0)
                if candidate_weight > weight:
                    best = candidate
                    weight = candidate_weight
                if weight == max(DEFAULT_BRANCH_WEIGHTS.values()):
                    break

            if best is not None and best.name != branch.name:
                return revision.create_range(best.ref, branch.ref)

        return None

    async def get_branches_and_or_tags(
        self,
        repo_path: Optional[str],
        *,
        include: BranchesAndTags = "all",
        filter_branches: Optional[Callable[[Branch], bool]] = None,
        filter_tags: Optional[Callable[[Tag], bool]] = None,
        sort: bool = False,
    ) -> list[Union[Branch, Tag]]:
        """Local branches, then tags, then remote branches."""
        branches: list[Branch] = []
        tags: list[Tag] = []
        if include in ("all", "branches"):
            branches = await self.get_branches(repo_path, filter=filter_branches, sort=sort)
        if include in ("all", "tags"):
            tags = await self.get_tags(repo_path, filter=filter_tags, sort=sort)

        return [
            *(branch for branch in branches if not branch.remote),
            *tags,
            *(branch for branch in branches if branch.remote),
        ]

    async def get_commit_branches(
        self,
        repo_path: str,
        ref: str,
        *,
        mode: Literal["contains", "points-at"] = "contains",
        remotes: bool = False,
    ) -> list[str]:
        data = await self.git.branch_contains_or_points_at(repo_path, ref, mode=mode, remotes=remotes)
        if not data:
            return []
        return [line.strip() for line in data.splitlines() if line.strip()]

    async def branch_contains_commit(self, repo_path: str, name: str, ref: str) -> bool:
        data = await self.git.branch_contains_or_points_at(repo_path, ref, name=name)
        return bool(data and data.strip())

    async def get_default_branch_name(self, repo_path: Optional[str], remote: Optional[str] = None) -> Optional[str]:
        """The default branch, locally (``refs/remotes/origin/HEAD``) or as the remote reports it."""
        if not repo_path:
            return None

        if not remote:
            try:
                data = await self.git.symbolic_ref(repo_path, "refs/remotes/origin/HEAD")
                if data:
                    return data.strip()
            except GitLayerError as e:
                logger.debug(f"No local default branch for '{repo_path}': {e}")

        try:
            data = await self.git.ls_remote_head(repo_path, remote or "origin")
        except GitLayerError as e:
            logger.debug(f"No remote default branch for '{repo_path}': {e}")
            return None
        if not data:
            return None

        match = _REMOTE_HEAD_RE.search(data)
        if match is None:
            return None
        return f"{remote or 'origin'}/{match.group(1)[len('refs/heads/'):]}"

    async def get_tags(
        self,
        repo_path: Optional[str],
        *,
        filter: Optional[Callable[[Tag], bool]] = None,
        sort: bool = False,
    ) -> list[Tag]:
        if not repo_path:
            return []

        async def load() -> list[Tag]:
            try:
                return tag_parser.parse(await self.git.tag(repo_path), repo_path)
            except GitLayerError as e:
                logger.error(f"Unable to list tags of '{repo_path}': {e}")
                self.caches.tags.delete(repo_path)
                return []

        tags = await self._cached(self.caches.tags, repo_path, repo_path, load)
        if filter is not None:
            tags = [tag for tag in tags if filter(tag)]
        if sort:
            tags = sort_tags(tags)
        return tags

    # =========================================================================
    # Stash
    # =========================================================================

    async def get_stash(self, repo_path: Optional[str]) -> Optional[Stash]:
        if not repo_path:
            return None

        async def load() -> Optional[Stash]:
            data = await self.git.stash_list(repo_path, self.settings.advanced.similarity_threshold)
            return stash_parser.parse(data, repo_path)

        return await self._cached(self.caches.stashes, repo_path, repo_path, load)

    async def stash_apply(self, repo_path: str, stash_name: str, delete_after: bool = False) -> None:
        await self.git.stash_apply(repo_path, stash_name, delete_after)

    async def stash_delete(self, repo_path: str, stash_name: str, ref: Optional[str] = None) -> None:
        """Drop a stash.

        Raises:
            StashMismatchError: If ``stash_name`` no longer points at ``ref``.
        """
        await self.git.stash_delete(repo_path, stash_name, ref)

    async def stash_save(
        self,
        repo_path: str,
        message: Optional[str] = None,
        files: Optional[Sequence[str]] = None,
        *,
        include_untracked: bool = False,
        keep_index: bool = False,
    ) -> None:
        """Stash the working tree (or only ``files``).

        Raises:
            GitVersionError: If git is too old to stash individual files, or
                to pass this many of them.
        """
        pathspecs: tuple[str, ...] = ()
        stdin = False
        if files:
            self.git.ensure_version(STASH_PUSH_FILES_VERSION, "Stashing individual files")

            pathspecs = tuple(f"./{split_path(file, repo_path)[0]}" for file in files)
            stdin = self.git.supports(PATHSPEC_FROM_FILE_VERSION)
            if not stdin and sum(len(p) + 1 for p in pathspecs) > MAX_CLI_LENGTH:
                self.git.ensure_version(
                    PATHSPEC_FROM_FILE_VERSION, f"Stashing so many files ({len(pathspecs)}) at once"
                )

        await self.git.stash_push(
            repo_path,
            StashPushOptions(
                message=message,
                include_untracked=include_untracked,
                keep_index=keep_index,
                pathspecs=pathspecs,
                stdin=stdin,
            ),
        )

    # =========================================================================
    # Merge and rebase state
    # =========================================================================

    async def get_merge_status(self, repo_path: str) -> Optional[MergeStatus]:
        """The merge in progress, if any."""

        async def load() -> Optional[MergeStatus]:
            merge = await self.git.rev_parse_verify(repo_path, "MERGE_HEAD")
            if merge is None:
                return None

            branch, merge_base, possible = await asyncio.gather(
                self.get_branch(repo_path),
                self.get_merge_base(repo_path, "MERGE_HEAD", "HEAD"),
                self.get_commit_branches(repo_path, "MERGE_HEAD", mode="points-at"),
            )
            if branch is None:
                return None

            return MergeStatus(
                repo_path=repo_path,
                head=Reference(repo_path, merge, "revision"),
                current=Reference.from_branch(branch),
                merge_base=merge_base,
                incoming=(
                    Reference(repo_path, possible[0], "branch", possible[0], remote=False)
                    if len(possible) == 1
                    else None
                ),
            )

        return await self._cached(self.caches.merge_status, repo_path, repo_path, load)

    async def get_rebase_status(self, repo_path: str) -> Optional[RebaseStatus]:
        """The interactive/merge rebase in progress, if any."""

        async def load() -> Optional[RebaseStatus]:
            rebase = await self.git.rev_parse_verify(repo_path, "REBASE_HEAD")
            if rebase is None:
                return None

            read = self.git.read_dot_git_file
            head_name, onto, step, message, total = await asyncio.gather(
                read(repo_path, ["rebase-merge", "head-name"]),
                read(repo_path, ["rebase-merge", "onto"]),
                read(repo_path, ["rebase-merge", "msgnum"], numeric=True),
                read(repo_path, ["rebase-merge", "message"], trim=True),
                read(repo_path, ["rebase-merge", "end"], numeric=True),
            )
            if message is None:
                message = await read(repo_path, ["rebase-merge", "message-squashed"], trim=True)
            if head_name is None or onto is None:
                return None

            name = str(head_name)
            if name.startswith("refs/heads/"):
                name = name[len("refs/heads/"):]

            onto_sha = str(onto)
            merge_base, possible = await asyncio.gather(
                self.get_merge_base(repo_path, rebase, "HEAD"),
                self.get_commit_branches(repo_path, onto_sha, mode="points-at"),
            )
            onto_name = next((b for b in possible if not b.startswith(_REBASING_BRANCH_PREFIX)), None)

            return RebaseStatus(
                repo_path=repo_path,
                head=Reference(repo_path, rebase, "revision"),
                onto=Reference(repo_path, onto_sha, "revision"),
                incoming=Reference(repo_path, name, "branch", name, remote=False),
                step=RebaseStep(
                    number=int(step) if isinstance(step, int) else 0,
                    commit=Reference(repo_path, rebase, "revision", message=str(message) if message else None),
                ),
                total_steps=int(total) if isinstance(total, int) else 0,
                merge_base=merge_base,
                current=(
                    Reference(repo_path, onto_name, "branch", onto_name, remote=False)
                    if onto_name is not None
                    else None
                ),
            )

        return await self._cached(self.caches.rebase_status, repo_path, repo_path, load)

    async def rebase_abort(self, repo_path: str) -> None:
        try:
            await self.git.rebase_abort(repo_path)
        except GitLayerError as e:
            logger.error(f"Unable to abort rebase in '{repo_path}': {e}")

    async def rebase_continue(self, repo_path: str) -> None:
        try:
            await self.git.rebase_continue(repo_path)
        except GitLayerError as e:
            logger.error(f"Unable to continue rebase in '{repo_path}': {e}")

    # =========================================================================
    # Status
    # =========================================================================

    async def get_status_for_file(self, repo_path: str, file_name: str) -> Optional[StatusFile]:
        files = await self.get_status_for_files(repo_path, file_name)
        return files[0] if files else None

    async def get_status_for_files(self, repo_path: str, path: str) -> list[StatusFile]:
        file, root = split_path(path, repo_path)
        data = await self.git.status_file(root, file, self.settings.advanced.similarity_threshold)
        status = status_parser.parse(data, root, self.git.porcelain_version)
        return list(status.files) if status is not None else []

    async def get_status_for_repo(self, repo_path: Optional[str]) -> Optional[Status]:
        if not repo_path:
            return None

        data = await self.git.status(repo_path, self.settings.advanced.similarity_threshold)
        status = status_parser.parse(data, repo_path, self.git.porcelain_version)
        if status is None:
            return None

        if status.detached:
            rebase = await self.get_rebase_status(repo_path)
            if rebase is not None and rebase.incoming.name:
                status = replace(status, branch=rebase.incoming.name)
        return status

    # =========================================================================
    # People
    # =========================================================================

    async def get_contributors(
        self,
        repo_path: Optional[str],
        *,
        all: bool = False,
        ref: Optional[str] = None,
        stats: bool = False,
    ) -> list[Contributor]:
        """Everyone who committed, ordered by commit count."""
        if not repo_path:
            return []

        key = f"stats|{repo_path}" if stats else repo_path

        async def load() -> list[Contributor]:
            try:
                data = await self.git.log(
                    repo_path,
                    ref,
                    LogOptions(all=all, format="shortlog+stats" if stats else "shortlog"),
                )
            except GitLayerError as e:
                logger.error(f"Unable to list contributors of '{repo_path}': {e}")
                self.caches.contributors.delete(key)
                return []
            return shortlog_parser.parse_from_log(data, repo_path, await self.get_current_user(repo_path))

        return await self._cached(self.caches.contributors, key, repo_path, load)

    async def get_current_user(self, repo_path: str) -> Optional[GitUser]:
        """The configured git user, mapped through ``.mailmap``."""

        async def load() -> Optional[GitUser]:
            data = await self.git.config_get_regex(r"^user\.", repo_path, local=True)
            if data:
                values = {key: value for key, value in _USER_CONFIG_RE.findall(data)}
                name, email = values.get("name"), values.get("email")
            else:
                env = os.environ
                name = env.get("GIT_AUTHOR_NAME") or env.get("GIT_COMMITTER_NAME") or _login_name()
                email = (
                    env.get("GIT_AUTHOR_EMAIL")
                    or env.get("GIT_COMMITTER_EMAIL")
                    or env.get("EMAIL")
                    or (f"{name}@{socket.gethostname()}" if name else None)
                )

            if name is None:
                return None

            author = f"{name} <{email}>"
            mapped = (await self.git.check_mailmap(repo_path, author)).strip()
            if mapped and mapped != author:
                match = _MAPPED_AUTHOR_RE.match(mapped)
                if match is not None:
                    name, email = match.group(1), match.group(2)

            return GitUser(name=name, email=email)

        return await self.caches.user.get_or_load(repo_path, load)

    # =========================================================================
    # Reflog
    # =========================================================================

    async def get_incoming_activity(
        self,
        repo_path: str,
        *,
        all: bool = False,
        branch: Optional[str] = None,
        limit: Optional[int] = None,
        ordering: Ordering = None,
        skip: Optional[int] = None,
    ) -> Optional[Reflog]:
        """Recent merges and pulls, newest first."""
        limit = self._limit(limit)
        ordering = ordering or self._ordering

        try:
            data = await self.git.reflog(
                repo_path, ReflogOptions(all=all, branch=branch, limit=limit * 100, ordering=ordering, skip=skip)
            )
        except GitLayerError as e:
            logger.debug(f"Reflog failed for '{repo_path}': {e}")
            return None

        reflog = reflog_parser.parse(data, repo_path, INCOMING_COMMANDS, limit, limit * 100)
        if reflog is None:
            return None
        return reflog.with_more(self._reflog_more(reflog, all, branch, ordering))

    def _reflog_more(
        self,
        reflog: Reflog,
        all: bool,
        branch: Optional[str],
        ordering: Ordering,
    ) -> Callable[[Any], Awaitable[Optional[Reflog]]]:
        async def more(more_limit: Optional[int] = None) -> Optional[Reflog]:
            if more_limit is None:
                more_limit = self.settings.advanced.max_search_items

            more_reflog = await self.get_incoming_activity(
                reflog.repo_path, all=all, branch=branch, limit=more_limit, ordering=ordering, skip=reflog.total
            )
            if more_reflog is None:
                return replace(reflog, has_more=False, more=None)

            merged = Reflog(
                repo_path=reflog.repo_path,
                records=reflog.records + more_reflog.records,
                count=reflog.count + more_reflog.count,
                total=reflog.total + more_reflog.total,
                limit=(reflog.limit or 0) + more_limit,
                has_more=more_reflog.has_more,
            )
            return merged.with_more(self._reflog_more(merged, all, branch, ordering))

        return more

    # =========================================================================
    # Remotes
    # =========================================================================

    async def get_remotes(self, repo_path: Optional[str]) -> list[Remote]:
        """Remotes whose host is a known provider."""
        if not repo_path:
            return []

        repository = self.registry.get(repo_path)
        if repository is not None and self.use_caching:
            remotes = await repository.get_remotes(lambda: self._get_remotes_core(repo_path))
        else:
            remotes = await self._get_remotes_core(repo_path)
        return [remote for remote in remotes if remote.provider is not None]

    async def _get_remotes_core(self, repo_path: str) -> list[Remote]:
        try:
            data = await self.git.remote(repo_path)
        except GitLayerError as e:
            logger.error(f"Unable to list remotes of '{repo_path}': {e}")
            return []
        return remote_parser.parse(data, repo_path, self.provider_factory)

    async def get_rich_remote_provider(
        self,
        remotes_or_repo_path: Union[str, Sequence[Remote], None],
        *,
        include_disconnected: bool = False,
    ) -> Optional[Remote]:
        """The remote most likely to host the repository's pull requests.

        A remote marked default wins outright; otherwise the remote of the
        current branch's upstream beats ``upstream``, which beats ``origin``.
        Unless ``include_disconnected``, a provider whose service isn't
        connected doesn't count.
        """
        if not remotes_or_repo_path:
            return None

        if isinstance(remotes_or_repo_path, str):
            repo_path = remotes_or_repo_path
            remotes: Sequence[Remote] = await self.get_remotes(repo_path)
        else:
            remotes = remotes_or_repo_path
            repo_path = remotes[0].repo_path

        key = f"disconnected|{repo_path}" if include_disconnected else repo_path
        return await self.caches.remote_provider.get_or_load(
            key,
            lambda: self._get_rich_remote_provider_core(repo_path, remotes, include_disconnected),
            enabled=self.use_caching,
        )

    async def _get_rich_remote_provider_core(
        self,
        repo_path: str,
        remotes: Sequence[Remote],
        include_disconnected: bool,
    ) -> Optional[Remote]:
        rich = [remote for remote in remotes if remote.has_rich_provider]
        if not rich:
            return None

        if len(rich) == 1:
            best: Optional[Remote] = rich[0]
        else:
            weights = dict(REMOTE_WEIGHTS)
            branch = await self.get_branch(repo_path)
            if branch is not None and branch.remote_name:
                weights[branch.remote_name] = BRANCH_REMOTE_WEIGHT

            best = None
            weight = -1
            for remote in rich:
                if remote.default:
                    best = remote
                    break

                remote_weight = weights.get(remote.name, 0)
                if remote_weight > weight:
                    best = remote
                    weight = remote_weight

        if best is None or include_disconnected:
            return best

        provider = self._rich_provider_of(best)
        if provider is None:
            return None
        connected = provider.maybe_connected
        if connected is None:
            connected = await provider.is_connected()
        return best if connected else None

    def _rich_provider_of(self, remote_or_provider: Union[Remote, RichRemoteProvider, None]) -> Optional[RichRemoteProvider]:
        if isinstance(remote_or_provider, Remote):
            provider = remote_or_provider.provider
            return provider if isinstance(provider, RichRemoteProvider) else None
        return remote_or_provider

    async def _call_provider(self, operation: str, coro: Awaitable[Optional[T]], timeout: Optional[float]) -> Optional[T]:
        try:
            if timeout is not None and timeout > 0:
                return await with_timeout(coro, timeout, operation)
            return await coro
        except CancellationError:
            raise
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            return None

    async def get_pull_request_for_branch(
        self,
        branch: str,
        remote_or_provider: Union[Remote, RichRemoteProvider, None],
        *,
        include: Optional[Sequence[PullRequestState]] = None,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[PullRequest]:
        """The pull request opened from ``branch``.

        Raises:
            CancellationError: If the provider didn't answer within ``timeout`` seconds.
        """
        provider = self._rich_provider_of(remote_or_provider)
        if provider is None:
            return None
        return await self._call_provider(
            "get_pull_request_for_branch", provider.get_pull_request_for_branch(branch, include, limit), timeout
        )

    async def get_pull_request_for_commit(
        self,
        ref: str,
        remote_or_provider: Union[Remote, RichRemoteProvider, None],
        *,
        timeout: Optional[float] = None,
    ) -> Optional[PullRequest]:
        """The pull request that introduced commit ``ref``.

        Raises:
            CancellationError: If the provider didn't answer within ``timeout`` seconds.
        """
        if revision.is_uncommitted(ref):
            return None

        provider = self._rich_provider_of(remote_or_provider)
        if provider is None:
            return None
        return await self._call_provider(
            "get_pull_request_for_commit", provider.get_pull_request_for_commit(ref), timeout
        )

    # =========================================================================
    # Trees, contents and references
    # =========================================================================

    async def get_tree_for_revision(self, repo_path: str, ref: str) -> list[TreeEntry]:
        if not repo_path:
            return []
        data = await self.git.ls_tree(repo_path, ref)
        return tree_parser.parse(data or "", ref)

    async def get_tree_file_for_revision(self, repo_path: str, file_name: str, ref: str) -> Optional[TreeEntry]:
        if not repo_path:
            return None
        file, root = split_path(file_name, repo_path)
        data = await self.git.ls_tree(root, ref, file)
        entries = tree_parser.parse(data or "", ref)
        return entries[0] if entries else None

    async def get_versioned_file_buffer(self, repo_path: str, file_name: str, ref: str) -> Optional[bytes]:
        """Raw contents of ``file_name`` at ``ref`` (``:`` for the index)."""
        file, root = split_path(file_name, repo_path)
        data = await self.git.show(root, file, ref, encoding="buffer")
        if data is None:
            return None
        return data if isinstance(data, bytes) else data.encode("utf-8")

    async def get_commit_count(self, repo_path: str, ref: str) -> Optional[int]:
        return await self.git.rev_list_count(repo_path, ref)

    async def get_ahead_behind_commit_count(self, repo_path: str, refs: Sequence[str]) -> Optional[tuple[int, int]]:
        """``(ahead, behind)`` of the first ref relative to the second."""
        return await self.git.rev_list_left_right(repo_path, refs)

    async def get_merge_base(
        self,
        repo_path: str,
        ref1: str,
        ref2: str,
        fork_point: bool = False,
    ) -> Optional[str]:
        try:
            data = await self.git.merge_base(repo_path, ref1, ref2, fork_point)
        except GitLayerError as e:
            logger.error(f"Unable to find merge base of {ref1} and {ref2}: {e}")
            return None
        return data.split("\n", 1)[0].strip() or None

    async def get_config(self, key: str, repo_path: Optional[str] = None) -> Optional[str]:
        return await self.git.config_get(key, repo_path)

    async def resolve_reference(
        self,
        repo_path: str,
        ref: str,
        file_name: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> str:
        """Turn ``ref`` into a full sha.

        With a ``file_name`` the result is the commit that last changed the
        file at ``ref`` (``DELETED_OR_MISSING`` when the file isn't there).
        If finding it outlasts ``timeout`` seconds, ``ref`` is returned as is.
        """
        if not ref or ref == revision.DELETED_OR_MISSING:
            return ref

        if file_name is None:
            if revision.is_sha(ref) or not revision.is_sha_like(ref) or ref.endswith("^3"):
                return ref
            return await self.git.rev_parse_verify(repo_path, ref) or ref

        file, root = split_path(file_name, repo_path)
        blob = await self.git.rev_parse_verify(root, ref, file)
        if blob is None:
            return revision.DELETED_OR_MISSING

        try:
            found = await with_timeout(
                self.git.log_find_object(root, blob, ref, self._ordering, file),
                timeout,
                "resolve_reference",
            )
        except CancellationError:
            return ref
        return found.strip() if found else ref

    async def validate_reference(self, repo_path: str, ref: str) -> bool:
        if not ref:
            return False
        if ref == revision.DELETED_OR_MISSING or revision.is_uncommitted(ref):
            return True
        return await self.git.rev_parse_verify(repo_path, ref) is not None

    async def validate_branch_or_tag_name(self, ref: str, repo_path: Optional[str] = None) -> bool:
        return await self.git.check_ref_format(ref, repo_path)

    async def exclude_ignored_paths(self, repo_path: str, paths: Sequence[str]) -> list[str]:
        """Drop the paths git ignores."""
        if not paths:
            return []

        data = await self.git.check_ignore(repo_path, paths)
        ignored = {path for path in data.split("\0") if path}
        if not ignored:
            return list(paths)
        return [path for path in paths if path not in ignored]

    # =========================================================================
    # Working tree actions
    # =========================================================================

    async def stage_file(self, repo_path: str, file_name: str) -> None:
        file, root = split_path(file_name, repo_path)
        await self.git.add(root, file)

    async def unstage_file(self, repo_path: str, file_name: str) -> None:
        file, root = split_path(file_name, repo_path)
        await self.git.reset(root, file)

    async def checkout(
        self,
        repo_path: str,
        ref: str,
        *,
        create_branch: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> None:
        """Check out ``ref`` (or just ``file_name`` at ``ref``).

        Local changes that would be overwritten abort the checkout with an
        error log instead of an exception.
        """
        try:
            await self.git.checkout(repo_path, ref, create_branch=create_branch, file_name=file_name)
        except RunError as e:
            if _CHECKOUT_OVERWRITE_RE.search(e.message):
                logger.error(f"Unable to checkout '{ref}'; local changes would be overwritten")
                return
            raise

    async def fetch(
        self,
        repo_path: str,
        *,
        all: bool = False,
        prune: bool = False,
        remote: Optional[str] = None,
        branch: Optional[Branch] = None,
        pull: bool = False,
    ) -> None:
        """Fetch ``remote`` (or everything), or update one ``branch`` from its upstream."""
        if branch is not None:
            if not branch.remote and branch.upstream is None:
                return

            upstream = branch.upstream.name.split("/", 1)[-1] if branch.upstream is not None else None
            await self.git.fetch(
                repo_path,
                remote=branch.remote_name,
                branch=branch.name_without_remote(),
                upstream=upstream,
                pull=pull,
                prune=prune,
            )
            return

        await self.git.fetch(repo_path, all=all, prune=prune, remote=remote)

    # =========================================================================
    # Version
    # =========================================================================

    def compare_git_version(self, version: str) -> int:
        """-1, 0 or 1 as the installed git is older than, equal to or newer than ``version``."""
        return compare_versions(self.git.version, version)

    def ensure_git_version(self, version: str, feature: str) -> None:
        self.git.ensure_version(version, feature)


def _login_name() -> Optional[str]:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None


def _find_dot_git_dirs(root: str, depth: int, excludes: set[str]) -> list[str]:
    """``.git`` directories below ``root``, at most ``depth`` levels down."""
    found: list[str] = []
    depth -= 1

    with os.scandir(root) as entries:
        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError:
                continue

            if entry.name == ".git":
                found.append(entry.path)
            elif depth >= 0 and not any(fnmatch(entry.name, pattern) for pattern in excludes):
                try:
                    found.extend(_find_dot_git_dirs(entry.path, depth, excludes))
                except PermissionError as e:
                    logger.debug(f"Skipping '{entry.path}': {e}")

    return found


def _preserve_symlinked_path(toplevel: str, cwd: str) -> str:
    """Keep the caller's (symlinked) spelling of ``toplevel``.

    git reports the resolved path; when ``cwd`` reaches the repository
    through a symlink, map the toplevel back onto the caller's path.
    """
    try:
        real_cwd = normalize_path(os.path.realpath(cwd))
    except OSError:
        return toplevel

    cwd = normalize_path(cwd)
    if real_cwd == cwd or not is_descendant(real_cwd, toplevel):
        return toplevel

    # Walk up from cwd as many levels as the real cwd is below the toplevel
    levels = real_cwd[len(toplevel):].count("/")
    path = cwd
    for _ in range(levels):
        path = posixpath.dirname(path)

    if normalize_path(os.path.realpath(path)) == toplevel:
        return path
    return toplevel


def _map_unc_to_drive(toplevel: str) -> str:
    """Map a ``//server/share/...`` toplevel back onto its network drive letter."""
    if not toplevel.startswith("//"):
        return toplevel

    for letter in "ABCDEFGHIJKLMNOPQRSTUVWXYZ":
        drive = f"{letter}:/"
        try:
            if not os.path.exists(drive):
                continue
            real = normalize_path(os.path.realpath(drive))
        except OSError:
            continue
        if real.startswith("//") and is_descendant(toplevel, real):
            return normalize_path(f"{letter.lower()}:/{toplevel[len(real):].lstrip('/')}")
    return toplevel
