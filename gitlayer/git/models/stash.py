"""Stash records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gitlayer.git.models.commit import StashCommit


@dataclass(frozen=True)
class Stash:
    repo_path: str
    commits: dict[str, StashCommit]

    def __len__(self) -> int:
        return len(self.commits)

    def find(self, stash_name: str) -> Optional[StashCommit]:
        for commit in self.commits.values():
            if commit.stash_name == stash_name:
                return commit
        return None
