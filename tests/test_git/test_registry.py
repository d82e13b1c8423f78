"""Tests for the repository registry."""

from unittest.mock import MagicMock

from gitlayer.git.registry import PathTrie, RepositoryRegistry
from gitlayer.git.repository import Repository, RepositoryChange


class TestPathTrie:
    """Tests for PathTrie."""

    def test_set_get(self):
        """Test storing and reading exact paths."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work/repo", "repo")
        assert trie.get("/work/repo") == "repo"
        assert trie.get("/work/repo/") == "repo"
        assert trie.get("/work") is None
        assert trie.has("/work/repo")
        assert not trie.has("/work")

    def test_find_substr_longest_prefix(self):
        """Test that the deepest registered ancestor wins."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work/repo", "outer")
        trie.set("/work/repo/vendor/lib", "inner")

        assert trie.find_substr("/work/repo/src/app.py") == "outer"
        assert trie.find_substr("/work/repo/vendor/lib/x.py") == "inner"
        assert trie.find_substr("/work/repo/vendor/library/x.py") == "outer"
        assert trie.find_substr("/elsewhere/x.py") is None

    def test_segment_boundaries(self):
        """Test that a sibling with a shared prefix doesn't match."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work/repo", "repo")
        assert trie.find_substr("/work/repository/a.txt") is None

    def test_ignore_case(self):
        """Test case-insensitive lookups."""
        trie: PathTrie[str] = PathTrie(ignore_case=True)
        trie.set("C:/Work/Repo", "repo")
        assert trie.find_substr("c:/work/repo/file.txt") == "repo"

    def test_case_sensitive(self):
        """Test case-sensitive lookups."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/Work/Repo", "repo")
        assert trie.get("/work/repo") is None

    def test_delete_prunes(self):
        """Test that deleting removes the value and empty branches."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work/repo", "outer")
        trie.set("/work/repo/sub", "inner")

        assert trie.delete("/work/repo/sub") is True
        assert trie.delete("/work/repo/sub") is False
        assert trie.count() == 1
        assert trie.find_substr("/work/repo/sub/x") == "outer"
        assert trie.delete("/nope") is False

    def test_find_superstr(self):
        """Test listing values below a path."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work", "work")
        trie.set("/work/a", "a")
        trie.set("/work/b/c", "c")

        assert sorted(trie.find_superstr("/work")) == ["a", "c"]
        assert trie.find_superstr("/none") == []

    def test_highlander(self):
        """Test the single-value shortcut."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        assert trie.highlander() is None
        trie.set("/work/a", "a")
        assert trie.highlander() == "a"
        trie.set("/work/b", "b")
        assert trie.highlander() is None
        assert sorted(trie.values()) == ["a", "b"]

    def test_clear(self):
        """Test clearing everything."""
        trie: PathTrie[str] = PathTrie(ignore_case=False)
        trie.set("/work/a", "a")
        trie.clear()
        assert trie.count() == 0
        assert trie.values() == []


class TestRepositoryRegistry:
    """Tests for RepositoryRegistry."""

    def test_add_and_find(self):
        """Test registering a repository and finding files in it."""
        registry = RepositoryRegistry()
        repo = registry.add(Repository("/work/repo"))

        assert registry.get("/work/repo") is repo
        assert registry.find("/work/repo/src/app.py") is repo
        assert "/work/repo" in registry
        assert len(registry) == 1

    def test_add_existing_returns_registered(self):
        """Test that a racing discovery gets the first instance."""
        registry = RepositoryRegistry()
        first = registry.add(Repository("/work/repo"))
        second = registry.add(Repository("/work/repo/"))
        assert second is first
        assert registry.count() == 1

    def test_nested_repository_wins(self):
        """Test that a nested repository owns its files."""
        registry = RepositoryRegistry()
        outer = registry.add(Repository("/work/repo"))
        inner = registry.add(Repository("/work/repo/vendor/lib"))

        assert registry.find("/work/repo/vendor/lib/a.c") is inner
        assert registry.find("/work/repo/vendor/other.c") is outer
        assert registry.find_all_under("/work/repo") == [inner]

    def test_notifications(self):
        """Test that adding and removing notify subscribers."""
        registry = RepositoryRegistry()
        listener = MagicMock()
        unsubscribe = registry.on_did_change_repositories(listener)

        registry.add(Repository("/work/a"))
        registry.add(Repository("/work/b"), notify=False)
        registry.remove("/work/a")
        unsubscribe()
        registry.remove("/work/b")

        assert listener.call_count == 2

    def test_remove_closes(self):
        """Test that removing closes the repository."""
        registry = RepositoryRegistry()
        repo = registry.add(Repository("/work/repo"))

        assert registry.remove("/work/repo") is repo
        assert repo.closed is True
        assert registry.find("/work/repo/a.txt") is None
        assert registry.remove("/work/repo") is None

    def test_forwards_repository_events(self):
        """Test that repository change events are re-broadcast."""
        registry = RepositoryRegistry()
        repo = registry.add(Repository("/work/repo"))
        listener = MagicMock()
        registry.on_did_change_repository(listener)

        repo.fire_change(RepositoryChange.STASH)

        listener.assert_called_once()
        assert listener.call_args[0][0].changed(RepositoryChange.STASH)

    def test_removed_repository_stops_forwarding(self):
        """Test that events of removed repositories aren't forwarded."""
        registry = RepositoryRegistry()
        repo = registry.add(Repository("/work/repo"))
        listener = MagicMock()
        registry.on_did_change_repository(listener)

        registry.remove("/work/repo")
        listener.reset_mock()
        repo.fire_change(RepositoryChange.STASH)

        listener.assert_not_called()

    def test_remove_forwards_closed(self):
        """Test that removal reports the repository as closed."""
        registry = RepositoryRegistry()
        registry.add(Repository("/work/repo"))
        listener = MagicMock()
        registry.on_did_change_repository(listener)

        registry.remove("/work/repo")

        assert listener.call_args[0][0].changed(RepositoryChange.CLOSED)

    def test_guest_lookup(self):
        """Test that guest mode retries inside the guest namespace."""
        registry = RepositoryRegistry(guest=True, guest_prefix="/~0")
        repo = registry.add(Repository("/~0/work/repo"))

        assert registry.find("/work/repo/a.txt") is repo

    def test_no_guest_lookup(self):
        """Test that the namespace is only used in guest mode."""
        registry = RepositoryRegistry()
        registry.add(Repository("/~0/work/repo"))
        assert registry.find("/work/repo/a.txt") is None

    def test_clear(self):
        """Test that clearing closes everything."""
        registry = RepositoryRegistry()
        a = registry.add(Repository("/work/a"))
        b = registry.add(Repository("/work/b"))
        assert registry.highlander() is None

        registry.clear()

        assert a.closed and b.closed
        assert registry.values() == []
