"""Tests for the command line interface."""

from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from conftest import git_cli, requires_git
from gitlayer import __version__
from gitlayer import cli
from gitlayer.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tables from wrapping long temporary paths."""
    monkeypatch.setattr(cli, "console", Console(width=240))


class TestVersion:
    """Tests for the version flag."""

    def test_version(self, clean_env: None) -> None:
        """Test that --version prints the version and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"gitlayer version {__version__}" in result.output

    def test_no_args_shows_help(self, clean_env: None) -> None:
        """Test that running without a command prints usage."""
        result = runner.invoke(app, [])
        assert "Usage" in result.output


@pytest.mark.integration
@requires_git
class TestCommands:
    """Tests for the commands against a real repository."""

    def test_repos(self, clean_env: None, git_repo: Path) -> None:
        """Test listing the repositories of a folder."""
        (git_repo / "vendor").mkdir()
        git_cli(git_repo / "vendor", "init", "-q")
        git_cli(git_repo / "vendor", "-c", "user.name=Vee", "-c", "user.email=vee@example.com", "commit", "-q", "--allow-empty", "-m", "Init")

        result = runner.invoke(app, ["repos", str(git_repo), "--depth", "1"])

        assert result.exit_code == 0
        assert "project" in result.output
        assert "vendor" in result.output
        assert "main" in result.output

    def test_status(self, clean_env: None, git_repo: Path) -> None:
        """Test showing a modified file."""
        (git_repo / "app.py").write_text("changed\n")
        result = runner.invoke(app, ["status", str(git_repo)])
        assert result.exit_code == 0
        assert "On branch main" in result.output
        assert "app.py" in result.output

    def test_branches(self, clean_env: None, git_repo: Path) -> None:
        """Test listing branches and tags."""
        git_cli(git_repo, "branch", "topic")
        git_cli(git_repo, "tag", "v1.0")

        result = runner.invoke(app, ["branches", str(git_repo), "--tags"])

        assert result.exit_code == 0
        assert "topic" in result.output
        assert "v1.0" in result.output

    def test_log(self, clean_env: None, git_repo: Path) -> None:
        """Test the repository log."""
        result = runner.invoke(app, ["log", str(git_repo), "-n", "1"])
        assert result.exit_code == 0
        assert "Add three" in result.output
        assert "Add app" not in result.output

    def test_log_search(self, clean_env: None, git_repo: Path) -> None:
        """Test searching the log by author."""
        result = runner.invoke(app, ["log", str(git_repo), "--search", "@:Bob"])
        assert result.exit_code == 0
        assert "Add three" in result.output

    def test_blame(self, clean_env: None, git_repo: Path) -> None:
        """Test blaming a range of lines."""
        result = runner.invoke(app, ["blame", str(git_repo / "app.py"), "--start", "3", "--end", "3"])
        assert result.exit_code == 0
        assert "Add three" in result.output
        assert "Bob (1)" in result.output
        assert "You (" not in result.output

    def test_not_a_repository(self, clean_env: None, tmp_path: Path) -> None:
        """Test that a folder outside any repository fails."""
        plain = tmp_path / "plain"
        plain.mkdir()
        result = runner.invoke(app, ["status", str(plain)])
        assert result.exit_code == 1
        assert "Not a git repository" in result.output
