"""End-to-end tests against a real git executable."""

import pytest
import pytest_asyncio

from conftest import git_cli, requires_git
from gitlayer.git.parsers.common import YOU
from gitlayer.git.repository import RepositoryChange, WorkspaceFolder
from gitlayer.git.search import SearchPattern
from gitlayer.git.service import GitService

pytestmark = [pytest.mark.integration, requires_git]


@pytest_asyncio.fixture
async def live(settings, git_repo):
    service = GitService(settings)
    await service.initialize([WorkspaceFolder(str(git_repo), git_repo.name)])
    yield service, str(git_repo)
    await service.shutdown()


class TestDiscovery:
    """Tests for finding repositories."""

    async def test_workspace_repository(self, live):
        """Test that the workspace folder's repository is registered as root."""
        service, repo = live
        repositories = service.get_ordered_repositories()
        assert [r.path for r in repositories] == [repo]
        assert repositories[0].root

    async def test_file_repository(self, live, git_repo):
        """Test resolving the repository of a file."""
        service, repo = live
        assert await service.get_repo_path(str(git_repo / "app.py")) == repo

    async def test_outside_any_repository(self, live, tmp_path):
        """Test a folder that isn't in a repository."""
        service, _ = live
        plain = tmp_path / "plain"
        plain.mkdir()
        assert await service.get_repo_path(str(plain), is_directory=True) is None

    async def test_git_version(self, live):
        """Test that a version was detected."""
        service, _ = live
        assert service.compare_git_version("1.0.0") == 1


class TestHistory:
    """Tests for logs and blame on the real repository."""

    async def test_branch(self, live):
        """Test the current branch."""
        service, repo = live
        branch = await service.get_branch(repo)
        assert branch.name == "main"
        assert branch.current
        assert branch.upstream is None

    async def test_log(self, live):
        """Test the repository log, newest first."""
        service, repo = live
        log = await service.get_log(repo)
        commits = list(log.commits.values())
        assert [c.summary for c in commits] == ["Add three", "Add app"]
        assert commits[0].author == "Bob"
        assert commits[1].author == YOU
        assert log.has_more is False

    async def test_log_paging(self, live):
        """Test that a one-commit page can fetch the rest."""
        service, repo = live
        log = await service.get_log(repo, limit=1)
        assert log.has_more is True
        merged = await log.more(None)
        assert merged.count == 2

    async def test_file_log(self, live, git_repo):
        """Test the history of a file with line counts."""
        service, repo = live
        log = await service.get_log_for_file(str(git_repo / "app.py"), repo)
        newest = log.newest
        assert newest.summary == "Add three"
        assert newest.additions == 1
        assert newest.deletions == 0

    async def test_blame(self, live, git_repo):
        """Test blaming a file with two authors."""
        service, repo = live
        head = git_cli(git_repo, "rev-parse", "HEAD").strip()

        blame = await service.get_blame_for_file(str(git_repo / "app.py"), repo)

        assert len(blame.lines) == 3
        assert blame.line(2).sha == head
        assert blame.authors["Bob"].line_count == 1
        assert blame.authors[YOU].line_count == 2

    async def test_blame_for_unsaved_contents(self, live, git_repo):
        """Test that unsaved lines are blamed as uncommitted."""
        service, repo = live
        blame = await service.get_blame_for_file_contents(str(git_repo / "app.py"), "one\ntwo\nthree\nfour\n", repo)
        assert len(blame.lines) == 4
        assert blame.line(3).sha == "0" * 40

    async def test_versioned_contents(self, live, git_repo):
        """Test reading a file at an older revision."""
        service, repo = live
        data = await service.get_versioned_file_buffer(repo, str(git_repo / "app.py"), "HEAD~1")
        assert data == b"one\ntwo\n"

    async def test_search_by_message(self, live):
        """Test a message search finds the commit."""
        service, repo = live
        log = await service.get_log_for_search(repo, SearchPattern("three"))
        assert [c.summary for c in log.commits.values()] == ["Add three"]


class TestWorkingTree:
    """Tests for status, diffs and stashes."""

    async def test_status_and_diff(self, live, git_repo):
        """Test a modified file shows in status and diff."""
        service, repo = live
        (git_repo / "app.py").write_text("one\ntwo\nthree\nfour\n")

        status = await service.get_status_for_repo(repo)
        assert status.branch == "main"
        assert [(f.path, f.status, f.staged) for f in status.files] == [("app.py", "M", False)]

        line = await service.get_diff_for_line(str(git_repo / "app.py"), 3, repo_path=repo)
        assert line.text == "four"
        assert line.state == "added"

    async def test_tracking(self, live, git_repo):
        """Test tracked and untracked files."""
        service, repo = live
        (git_repo / "notes.txt").write_text("draft\n")
        assert await service.is_tracked(str(git_repo / "app.py"), repo) is True
        assert await service.is_tracked(str(git_repo / "notes.txt"), repo) is False

    async def test_stage_and_unstage(self, live, git_repo):
        """Test staging a change."""
        service, repo = live
        (git_repo / "app.py").write_text("changed\n")

        await service.stage_file(repo, str(git_repo / "app.py"))
        file = await service.get_status_for_file(repo, str(git_repo / "app.py"))
        assert file.staged

        await service.unstage_file(repo, str(git_repo / "app.py"))
        file = await service.get_status_for_file(repo, str(git_repo / "app.py"))
        assert not file.staged

    async def test_stash(self, live, git_repo):
        """Test stashing and listing."""
        service, repo = live
        (git_repo / "app.py").write_text("changed\n")

        await service.stash_save(repo, "wip")
        service.get_repository(repo).fire_change(RepositoryChange.STASH)
        stash = await service.get_stash(repo)

        entry = stash.find("stash@{0}")
        assert entry is not None
        assert "wip" in entry.message
        assert (git_repo / "app.py").read_text() == "one\ntwo\nthree\n"

    async def test_tags(self, live, git_repo):
        """Test listing tags."""
        service, repo = live
        git_cli(git_repo, "tag", "v1.0")
        tags = await service.get_tags(repo)
        assert [t.name for t in tags] == ["v1.0"]

    async def test_references(self, live, git_repo):
        """Test validating and resolving refs."""
        service, repo = live
        head = git_cli(git_repo, "rev-parse", "HEAD").strip()

        assert await service.validate_reference(repo, "main") is True
        assert await service.validate_reference(repo, "nope") is False
        assert await service.resolve_reference(repo, "main", str(git_repo / "app.py")) == head
        assert await service.validate_branch_or_tag_name("feature/x", repo) is True

