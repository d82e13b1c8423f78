"""Tests for git diagnostic classification."""

import pytest

from gitlayer.git import diagnostics


class TestWarnings:
    """Tests for benign warnings."""

    @pytest.mark.parametrize(
        "message,name",
        [
            ("fatal: not a git repository (or any of the parent directories): .git", "not_a_repository"),
            ("fatal: /tmp/x: '/tmp/x' is outside repository at '/work/repo'", "outside_repository"),
            ("fatal: no such path 'x.txt' in HEAD", "no_path"),
            ("fatal: your current branch 'main' does not have any commits yet", "no_commits"),
            ("fatal: Path 'a.txt' does not exist in 'HEAD'", "not_found"),
            ("fatal: Path 'a.txt' exists on disk, but not in 'HEAD'", "found_but_not_in_revision"),
            ("fatal: HEAD does not point to a branch", "head_not_a_branch"),
            ("fatal: no upstream configured for branch 'main'", "no_upstream"),
            (
                "fatal: ambiguous argument 'nope': unknown revision or path not in the working tree.",
                "unknown_revision",
            ),
            ("fatal: this operation must be run in a work tree", "must_run_in_work_tree"),
            ("error: Applied patch to 'a.txt' with conflicts.", "patch_with_conflicts"),
            ("fatal: No remote repository specified.  Please, specify either a URL", "no_remote_repository_specified"),
            ("fatal: Could not read from remote repository.", "remote_connection_error"),
            ("git: 'frobnicate' is not a git command. See 'git --help'.", "not_a_git_command"),
        ],
    )
    def test_match_warning(self, message, name):
        """Test that each warning is recognized by name."""
        assert diagnostics.match_warning(message) == name
        assert diagnostics.is_warning(message, name)

    def test_no_match(self):
        """Test that unknown failures aren't warnings."""
        assert diagnostics.match_warning("fatal: bad revision 'x'") is None
        assert diagnostics.match_warning("") is None


class TestErrors:
    """Tests for recoverable errors."""

    def test_bad_revision(self):
        """Test extracting the ref from a bad revision."""
        message = "fatal: bad revision 'abc^'"
        assert diagnostics.is_error(message, "bad_revision")
        assert diagnostics.bad_revision(message) == "abc^"
        assert diagnostics.bad_revision("fatal: other") is None
        assert diagnostics.bad_revision("") is None

    @pytest.mark.parametrize(
        "message,name",
        [
            (" ! [rejected]        main -> main  (non-fast-forward)", "no_fast_forward"),
            ("fatal: main...feature: no merge base", "no_merge_base"),
            ("fatal: Not a valid object name HEAD", "not_a_valid_object_name"),
            ("fatal: file src/a.py has only 10 lines", "invalid_line_count"),
        ],
    )
    def test_is_error(self, message, name):
        """Test each recoverable error."""
        assert diagnostics.is_error(message, name)

    def test_not_a_symbolic_ref(self):
        """Test the symbolic ref check."""
        assert diagnostics.is_not_a_symbolic_ref("fatal: ref refs/remotes/origin/HEAD is not a symbolic ref")
        assert not diagnostics.is_not_a_symbolic_ref("")


class TestCleanMessage:
    """Tests for clean_message."""

    def test_flattens(self):
        """Test stripping the fatal prefix and joining lines."""
        assert diagnostics.clean_message("fatal: first\nsecond\n") == "first • second"
