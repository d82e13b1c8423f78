"""Which repository owns a path.

Repositories are kept in a path prefix tree so the owner of any file is its
longest registered ancestor. Nested repositories therefore win over the
repository that contains them.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, Iterator, Optional, TypeVar

from gitlayer.git.repository import Listener, Repository, RepositoryChangeEvent
from gitlayer.git.shell import IS_WINDOWS
from gitlayer.utils.paths import normalize_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Node(Generic[T]):
    __slots__ = ("children", "value", "has_value")

    def __init__(self) -> None:
        self.children: dict[str, _Node[T]] = {}
        self.value: Optional[T] = None
        self.has_value = False


class PathTrie(Generic[T]):
    """Map of normalized paths to values, walked one path segment at a time."""

    def __init__(self, ignore_case: bool = IS_WINDOWS):
        self.ignore_case = ignore_case
        self._root: _Node[T] = _Node()
        self._count = 0

    def _segments(self, path: str) -> list[str]:
        path = normalize_path(path)
        if self.ignore_case:
            path = path.lower()
        segments = [s for s in path.split("/") if s]
        # Keep absolute and relative paths apart
        return ["/", *segments] if path.startswith("/") else segments

    def _find(self, path: str) -> Optional[_Node[T]]:
        node = self._root
        for segment in self._segments(path):
            node = node.children.get(segment)
            if node is None:
                return None
        return node

    def get(self, path: str) -> Optional[T]:
        node = self._find(path)
        return node.value if node is not None and node.has_value else None

    def has(self, path: str) -> bool:
        node = self._find(path)
        return node is not None and node.has_value

    def set(self, path: str, value: T) -> None:
        node = self._root
        for segment in self._segments(path):
            node = node.children.setdefault(segment, _Node())
        if not node.has_value:
            self._count += 1
        node.value = value
        node.has_value = True

    def delete(self, path: str) -> bool:
        """Remove ``path``; False if it wasn't there."""
        trail: list[tuple[_Node[T], str]] = []
        node = self._root
        for segment in self._segments(path):
            child = node.children.get(segment)
            if child is None:
                return False
            trail.append((node, segment))
            node = child

        if not node.has_value:
            return False

        node.value = None
        node.has_value = False
        self._count -= 1

        # Prune empty branches
        for parent, segment in reversed(trail):
            child = parent.children[segment]
            if child.has_value or child.children:
                break
            del parent.children[segment]
        return True

    def find_substr(self, path: str) -> Optional[T]:
        """Value of the longest registered prefix of ``path``."""
        best: Optional[T] = self._root.value if self._root.has_value else None
        node = self._root
        for segment in self._segments(path):
            node = node.children.get(segment)
            if node is None:
                break
            if node.has_value:
                best = node.value
        return best

    def find_superstr(self, path: str) -> list[T]:
        """Values registered strictly below ``path``."""
        node = self._find(path)
        if node is None:
            return []
        return [value for child in node.children.values() for value in self._walk(child)]

    def _walk(self, node: _Node[T]) -> Iterator[T]:
        if node.has_value:
            yield node.value  # type: ignore[misc]
        for child in node.children.values():
            yield from self._walk(child)

    def values(self) -> list[T]:
        return list(self._walk(self._root))

    def count(self) -> int:
        return self._count

    def highlander(self) -> Optional[T]:
        """The only value, if there is exactly one."""
        if self._count != 1:
            return None
        return next(self._walk(self._root), None)

    def clear(self) -> None:
        self._root = _Node()
        self._count = 0


RepositoriesChangedListener = Callable[[], None]


class RepositoryRegistry:
    """All open repositories, addressable by any path inside them.

    Change events of every registered repository are re-broadcast to the
    registry's subscribers.
    """

    def __init__(self, guest: bool = False, guest_prefix: str = "/~0"):
        self.guest = guest
        self.guest_prefix = guest_prefix
        self._trie: PathTrie[Repository] = PathTrie()
        self._unsubscribe: dict[str, Callable[[], None]] = {}
        self._listeners: list[Listener] = []
        self._changed_listeners: list[RepositoriesChangedListener] = []

    def __len__(self) -> int:
        return self._trie.count()

    def __contains__(self, path: str) -> bool:
        return self._trie.has(path)

    def on_did_change_repository(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def on_did_change_repositories(self, listener: RepositoriesChangedListener) -> Callable[[], None]:
        self._changed_listeners.append(listener)
        return lambda: self._changed_listeners.remove(listener) if listener in self._changed_listeners else None

    def fire_repositories_changed(self) -> None:
        for listener in list(self._changed_listeners):
            listener()

    def _forward(self, event: RepositoryChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def add(self, repository: Repository, notify: bool = True) -> Repository:
        """Register ``repository`` unless its root is already registered.

        Returns:
            The registered instance for that root, which is the existing one
            when discovery raced.
        """
        existing = self._trie.get(repository.path)
        if existing is not None:
            return existing

        self._trie.set(repository.path, repository)
        self._unsubscribe[repository.path] = repository.on_did_change(self._forward)
        logger.debug(f"Repository added: {repository.path}")
        if notify:
            self.fire_repositories_changed()
        return repository

    def remove(self, path: str, notify: bool = True) -> Optional[Repository]:
        repository = self._trie.get(path)
        if repository is None:
            return None

        self._trie.delete(path)
        repository.close()
        unsubscribe = self._unsubscribe.pop(repository.path, None)
        if unsubscribe is not None:
            unsubscribe()
        logger.debug(f"Repository removed: {repository.path}")
        if notify:
            self.fire_repositories_changed()
        return repository

    def get(self, path: str) -> Optional[Repository]:
        return self._trie.get(path)

    def find(self, path: str) -> Optional[Repository]:
        """The repository owning ``path`` (longest registered prefix).

        In guest mode a miss is retried inside the guest namespace.
        """
        repository = self._trie.find_substr(path)
        if repository is None and self.guest:
            normalized = normalize_path(path)
            if not normalized.startswith(self.guest_prefix):
                repository = self._trie.find_substr(f"{self.guest_prefix}/{normalized.lstrip('/')}")
        return repository

    def find_all_under(self, path: str) -> list[Repository]:
        return self._trie.find_superstr(path)

    def values(self) -> list[Repository]:
        return self._trie.values()

    def count(self) -> int:
        return self._trie.count()

    def highlander(self) -> Optional[Repository]:
        return self._trie.highlander()

    def clear(self) -> None:
        for repository in self.values():
            repository.close()
        for unsubscribe in self._unsubscribe.values():
            unsubscribe()
        self._unsubscribe.clear()
        self._trie.clear()
