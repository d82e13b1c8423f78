"""Working tree status records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from gitlayer.git.models.refs import AheadBehind

_CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


@dataclass(frozen=True)
class StatusFile:
    """One entry of ``git status``.

    ``index_status`` / ``working_tree_status`` hold the porcelain X and Y
    letters, or None where the column was unmodified.
    """

    repo_path: str
    path: str
    index_status: Optional[str] = None
    working_tree_status: Optional[str] = None
    original_path: Optional[str] = None

    @property
    def conflicted(self) -> bool:
        return f"{self.index_status or '.'}{self.working_tree_status or '.'}" in _CONFLICT_CODES

    @property
    def staged(self) -> bool:
        return self.index_status is not None and self.index_status != "?"

    @property
    def status(self) -> str:
        if self.conflicted:
            return "U"
        return self.index_status or self.working_tree_status or "?"


@dataclass(frozen=True)
class Status:
    repo_path: str
    branch: str
    sha: Optional[str] = None
    upstream: Optional[str] = None
    state: AheadBehind = field(default_factory=AheadBehind)
    files: tuple[StatusFile, ...] = ()
    detached: bool = False

    @property
    def is_clean(self) -> bool:
        return not self.files

    def summary(self) -> str:
        """Get a summary string of the status."""
        parts = [f"On branch {self.branch}"]

        if self.upstream and (self.state.ahead or self.state.behind):
            tracking = []
            if self.state.ahead:
                tracking.append(f"ahead {self.state.ahead}")
            if self.state.behind:
                tracking.append(f"behind {self.state.behind}")
            parts.append(f"Your branch is {' and '.join(tracking)} of '{self.upstream}'")

        if self.is_clean:
            parts.append("Nothing to commit, working tree clean")
        else:
            staged = sum(1 for f in self.files if f.staged)
            untracked = sum(1 for f in self.files if f.status == "?")
            conflicted = sum(1 for f in self.files if f.conflicted)
            if staged:
                parts.append(f"Staged: {staged} file(s)")
            if untracked:
                parts.append(f"Untracked: {untracked} file(s)")
            if conflicted:
                parts.append(f"Conflicts: {conflicted} file(s)")

        return "\n".join(parts)
