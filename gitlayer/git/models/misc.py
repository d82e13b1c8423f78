"""Tree entries, remotes and people."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from gitlayer.git.remotes import RemoteProvider


@dataclass(frozen=True)
class TreeEntry:
    """One ``ls-tree -l`` line; ``size`` is None for trees and submodules."""

    commit: str
    path: str
    sha: str
    size: Optional[int]
    type: Literal["blob", "tree", "commit"]
    mode: str = ""


RemoteType = Literal["fetch", "push"]


@dataclass(frozen=True)
class Remote:
    repo_path: str
    name: str
    url: str
    scheme: str
    domain: str
    path: str
    types: tuple[RemoteType, ...] = ()
    provider: Optional["RemoteProvider"] = field(default=None, compare=False)
    default: bool = False

    @property
    def has_rich_provider(self) -> bool:
        from gitlayer.git.remotes import RichRemoteProvider

        return isinstance(self.provider, RichRemoteProvider)


@dataclass(frozen=True)
class ContributorStats:
    files: int = 0
    additions: int = 0
    deletions: int = 0


@dataclass(frozen=True)
class Contributor:
    repo_path: str
    name: str
    email: Optional[str]
    count: int
    stats: Optional[ContributorStats] = None
    current: bool = False


@dataclass(frozen=True)
class GitUser:
    name: Optional[str]
    email: Optional[str]
