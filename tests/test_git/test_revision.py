"""Tests for revision helpers."""

from gitlayer.git import revision
from gitlayer.git.revision import DELETED_OR_MISSING, UNCOMMITTED, UNCOMMITTED_STAGED

SHA = "0123456789abcdef0123456789abcdef01234567"


class TestShaChecks:
    """Tests for sha recognition."""

    def test_is_sha(self):
        """Test full shas and the uncommitted markers."""
        assert revision.is_sha(SHA)
        assert revision.is_sha(UNCOMMITTED_STAGED)
        assert revision.is_sha(DELETED_OR_MISSING)
        assert not revision.is_sha(SHA[:7])
        assert not revision.is_sha("main")
        assert not revision.is_sha(f"{SHA}^")

    def test_is_sha_like(self):
        """Test shas with revision suffixes."""
        assert revision.is_sha_like(f"{SHA}^")
        assert revision.is_sha_like(f"{SHA}~2")
        assert revision.is_sha_like(f"{SHA}:src/app.py")
        assert not revision.is_sha_like("HEAD~1")

    def test_is_sha_parent(self):
        """Test parent notation."""
        assert revision.is_sha_parent(f"{SHA}^")
        assert revision.is_sha_parent(f"{SHA}^2")
        assert not revision.is_sha_parent(SHA)

    def test_is_uncommitted(self):
        """Test working tree and index markers."""
        assert revision.is_uncommitted(UNCOMMITTED)
        assert revision.is_uncommitted(UNCOMMITTED_STAGED)
        assert revision.is_uncommitted(f"{UNCOMMITTED}^")
        assert not revision.is_uncommitted(UNCOMMITTED_STAGED, exact=True)
        assert not revision.is_uncommitted(SHA)
        assert not revision.is_uncommitted(None)

    def test_is_uncommitted_staged(self):
        """Test the index marker."""
        assert revision.is_uncommitted_staged(UNCOMMITTED_STAGED)
        assert revision.is_uncommitted_staged(UNCOMMITTED_STAGED, exact=True)
        assert not revision.is_uncommitted_staged(UNCOMMITTED)
        assert not revision.is_uncommitted_staged("")


class TestRanges:
    """Tests for range helpers."""

    def test_is_range(self):
        """Test two- and three-dot ranges."""
        assert revision.is_range("main..feature")
        assert revision.is_range("main...feature")
        assert revision.is_range("..feature")
        assert not revision.is_range("main")
        assert not revision.is_range(None)

    def test_split_range(self):
        """Test splitting into left, notation and right."""
        assert revision.split_range("main..feature") == ("main", "..", "feature")
        assert revision.split_range("main...feature") == ("main", "...", "feature")
        assert revision.split_range("main") is None

    def test_create_range(self):
        """Test building ranges."""
        assert revision.create_range("a", "b") == "a..b"
        assert revision.create_range("a", "b", "...") == "a...b"
        assert revision.create_range(None, "b") == "..b"


class TestShorten:
    """Tests for shorten."""

    def test_full_sha(self):
        """Test abbreviating a sha."""
        assert revision.shorten(SHA) == "0123456"
        assert revision.shorten(SHA, length=10) == "0123456789"

    def test_keeps_suffix(self):
        """Test that revision suffixes survive."""
        assert revision.shorten(f"{SHA}^") == "0123456^"
        assert revision.shorten(f"{SHA}:src/app.py") == "0123456:src/app.py"

    def test_names_untouched(self):
        """Test that branch names and HEAD aren't abbreviated."""
        assert revision.shorten("feature/some-long-branch-name") == "feature/some-long-branch-name"
        assert revision.shorten("HEAD") == "HEAD"

    def test_force(self):
        """Test abbreviating a non-sha."""
        assert revision.shorten("abcdef0123", force=True) == "abcdef0"

    def test_uncommitted_labels(self):
        """Test working tree and index labels."""
        assert revision.shorten(UNCOMMITTED) == "Working Tree"
        assert revision.shorten(UNCOMMITTED_STAGED) == "Index"
        assert revision.shorten(UNCOMMITTED, uncommitted="Working") == "Working"

    def test_empty(self):
        """Test the empty label."""
        assert revision.shorten(None) == ""
        assert revision.shorten("", working="Working Tree") == "Working Tree"
