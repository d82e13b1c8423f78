"""Branches, tags and plain references."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

RefType = Literal["branch", "tag", "revision", "stash"]


@dataclass(frozen=True)
class Reference:
    """A named or unnamed pointer at a revision."""

    repo_path: str
    ref: str
    ref_type: RefType = "revision"
    name: Optional[str] = None
    remote: bool = False
    message: Optional[str] = None

    @classmethod
    def from_branch(cls, branch: "Branch") -> "Reference":
        return cls(branch.repo_path, branch.ref, "branch", branch.name, branch.remote)


@dataclass(frozen=True)
class BranchTracking:
    """Upstream of a branch; ``missing`` when the upstream ref is gone."""

    name: str
    missing: bool = False


@dataclass(frozen=True)
class AheadBehind:
    ahead: int = 0
    behind: int = 0


@dataclass(frozen=True)
class Branch:
    repo_path: str
    name: str
    remote: bool = False
    current: bool = False
    date: Optional[datetime] = None
    sha: Optional[str] = None
    upstream: Optional[BranchTracking] = None
    state: AheadBehind = field(default_factory=AheadBehind)
    detached: bool = False
    rebasing: bool = False

    ref_type: RefType = field(default="branch", init=False)

    @staticmethod
    def is_detached(name: str) -> bool:
        return name == "HEAD" or (name.startswith("(") and name.endswith(")"))

    @property
    def ref(self) -> str:
        return self.sha if self.detached and self.sha else self.name

    @property
    def remote_name(self) -> Optional[str]:
        if self.remote:
            return self.name.split("/", 1)[0]
        if self.upstream is not None:
            return self.upstream.name.split("/", 1)[0]
        return None

    def name_without_remote(self) -> str:
        if self.remote:
            return self.name.split("/", 1)[-1]
        return self.name


def sort_branches(branches: list[Branch]) -> list[Branch]:
    """Current first, then local before remote, then by name."""
    return sorted(
        branches,
        key=lambda b: (not b.current, b.remote, b.name.lower()),
    )


@dataclass(frozen=True)
class Tag:
    repo_path: str
    name: str
    sha: str
    message: str = ""
    date: Optional[datetime] = None
    commit_date: Optional[datetime] = None

    ref_type: RefType = field(default="tag", init=False)

    @property
    def ref(self) -> str:
        return self.name


def sort_tags(tags: list[Tag]) -> list[Tag]:
    """Newest first; undated tags last, ordered by name."""
    return sorted(
        tags,
        key=lambda t: (t.date is None, -(t.date.timestamp()) if t.date else 0.0, t.name.lower()),
    )


@dataclass(frozen=True)
class MergeStatus:
    repo_path: str
    head: Reference
    current: Reference
    merge_base: Optional[str] = None
    incoming: Optional[Reference] = None

    type: str = field(default="merge", init=False)


@dataclass(frozen=True)
class RebaseStep:
    number: int
    commit: Reference


@dataclass(frozen=True)
class RebaseStatus:
    repo_path: str
    head: Reference
    onto: Reference
    incoming: Reference
    step: RebaseStep
    total_steps: int
    merge_base: Optional[str] = None
    current: Optional[Reference] = None

    type: str = field(default="rebase", init=False)
