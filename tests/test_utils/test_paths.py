"""Tests for path helpers."""

from gitlayer.utils.paths import (
    is_descendant,
    is_folder_glob,
    normalize_path,
    relative_to,
    split_path,
    to_folder_glob,
)


class TestNormalizePath:
    """Tests for normalize_path."""

    def test_backslashes(self) -> None:
        """Test that backslashes become forward slashes."""
        assert normalize_path("C:\\work\\repo") == "c:/work/repo"

    def test_collapse_repeats(self) -> None:
        """Test that repeated separators collapse."""
        assert normalize_path("/work//repo///src") == "/work/repo/src"

    def test_trailing_slash(self) -> None:
        """Test that a trailing slash is dropped."""
        assert normalize_path("/work/repo/") == "/work/repo"

    def test_keep_trailing_slash(self) -> None:
        """Test that the trailing slash can be kept."""
        assert normalize_path("/work/repo/", strip_trailing=False) == "/work/repo/"

    def test_root(self) -> None:
        """Test that the filesystem root survives."""
        assert normalize_path("/") == "/"

    def test_empty(self) -> None:
        """Test that an empty path stays empty."""
        assert normalize_path("") == ""


class TestSplitPath:
    """Tests for split_path."""

    def test_relative_to_repo(self) -> None:
        """Test splitting a file under the repository."""
        assert split_path("/work/repo/src/app.py", "/work/repo") == ("src/app.py", "/work/repo")

    def test_case_insensitive_prefix(self) -> None:
        """Test that the repository prefix matches regardless of case."""
        assert split_path("C:\\Work\\Repo\\a.txt", "c:/work/repo") == ("a.txt", "c:/work/repo")

    def test_outside_repo(self) -> None:
        """Test that a file outside the repository is returned as is."""
        assert split_path("/elsewhere/a.txt", "/work/repo") == ("/elsewhere/a.txt", "/work/repo")

    def test_no_repo_extracts_directory(self) -> None:
        """Test that without a repository the directory becomes the root."""
        assert split_path("/work/repo/src/app.py", None) == ("app.py", "/work/repo/src")

    def test_no_repo_without_extract(self) -> None:
        """Test that extraction can be disabled."""
        assert split_path("/work/repo/src/app.py", None, extract=False) == ("/work/repo/src/app.py", "")


class TestFolderGlobs:
    """Tests for folder glob helpers."""

    def test_is_folder_glob(self) -> None:
        """Test detecting a folder glob."""
        assert is_folder_glob("/work/repo/src/*") is True
        assert is_folder_glob("/work/repo/src") is False

    def test_to_folder_glob(self) -> None:
        """Test building a folder glob."""
        assert to_folder_glob("/work/repo/src/") == "/work/repo/src/*"


class TestDescendants:
    """Tests for is_descendant and relative_to."""

    def test_is_descendant(self) -> None:
        """Test containment checks."""
        assert is_descendant("/work/repo/src", "/work/repo")
        assert is_descendant("/work/repo", "/work/repo")
        assert not is_descendant("/work/repository", "/work/repo")

    def test_relative_to(self) -> None:
        """Test relative path computation."""
        assert relative_to("/work/repo/src/app.py", "/work/repo") == "src/app.py"
        assert relative_to("/work/repo", "/work/repo") == ""
        assert relative_to("/other/x", "/work/repo") == "/other/x"
