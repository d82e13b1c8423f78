"""Git integration for gitlayer.

This package runs git commands, parses their output into immutable
records and caches the results per document and per repository.
"""

from gitlayer.git.commands import Git
from gitlayer.git.locator import GitLocation, find_git_path
from gitlayer.git.registry import RepositoryRegistry
from gitlayer.git.repository import (
    Repository,
    RepositoryChange,
    RepositoryChangeEvent,
    WorkspaceFolder,
)
from gitlayer.git.search import SearchPattern
from gitlayer.git.service import GitService
from gitlayer.git.shell import ProcessRunner

__all__ = [
    # Main class
    "GitService",
    # Execution
    "Git",
    "GitLocation",
    "ProcessRunner",
    "find_git_path",
    # Repositories
    "Repository",
    "RepositoryChange",
    "RepositoryChangeEvent",
    "RepositoryRegistry",
    "WorkspaceFolder",
    # Queries
    "SearchPattern",
]
