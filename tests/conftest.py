"""Pytest configuration and fixtures for gitlayer tests."""

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator, Callable, Generator, Optional, Union
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from gitlayer.config import Settings, reset_settings
from gitlayer.errors import RunError
from gitlayer.git.commands import Git
from gitlayer.git.locator import GitLocation
from gitlayer.git.repository import Repository, WorkspaceFolder
from gitlayer.git.service import GitService

REPO = "/work/repo"

SHA1 = "1111111111111111111111111111111111111111"
SHA2 = "2222222222222222222222222222222222222222"
SHA3 = "3333333333333333333333333333333333333333"
SHA4 = "4444444444444444444444444444444444444444"

Response = Union[str, bytes, Exception, Callable[[list[str]], Union[str, bytes]]]


def git_subcommand(args: list[str]) -> str:
    """The git subcommand of ``args``, skipping leading ``-c key=value`` pairs."""
    i = 0
    while i < len(args) and args[i] == "-c":
        i += 2
    return args[i] if i < len(args) else ""


@dataclass
class RunnerCall:
    args: list[str]
    cwd: Optional[str]
    stdin: Optional[Union[str, bytes]]
    env: Optional[dict]

    @property
    def subcommand(self) -> str:
        return git_subcommand(self.args)


class FakeRunner:
    """Stands in for :class:`ProcessRunner`, answering by git subcommand.

    A response is the stdout to return, an exception to raise, or a callable
    receiving the full argument list.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Response] = {}
        self.calls: list[RunnerCall] = []
        self.run = AsyncMock(side_effect=self._respond)

    def on(self, subcommand: str, response: Response) -> "FakeRunner":
        self.responses[subcommand] = response
        return self

    def calls_of(self, subcommand: str) -> list[RunnerCall]:
        return [call for call in self.calls if call.subcommand == subcommand]

    async def _respond(self, executable, args, encoding="utf8", *, cwd=None, env=None, stdin=None):
        call = RunnerCall(list(args), cwd, stdin, env)
        self.calls.append(call)

        response = self.responses.get(call.subcommand, "")
        if callable(response) and not isinstance(response, Exception):
            response = response(list(args))
        if isinstance(response, Exception):
            raise response
        if encoding == "buffer" and isinstance(response, str):
            return response.encode("utf-8")
        return response


def run_error(stderr: str, stdout: str = "", exit_code: int = 128) -> RunError:
    """A failed git process as the runner reports it."""
    return RunError(stderr.strip(), command="git", exit_code=exit_code, stdout=stdout, stderr=stderr)


def log_record(
    sha: str,
    *,
    author: str = "Alice",
    email: str = "alice@example.com",
    date: int = 1700000000,
    parents: str = "",
    message: str = "Commit message",
    files: tuple[str, ...] = (),
) -> str:
    """One record of the default log format, as git prints it."""
    return "\n".join(
        [
            "</f>",
            f"<r> {sha}",
            f"<a> {author}",
            f"<e> {email}",
            f"<d> {date}",
            f"<c> {date}",
            f"<p> {parents}",
            "<s>",
            message,
            "</s>",
            "<f>",
            *files,
            "",
        ]
    )


def blame_group(
    sha: str,
    original_line: int,
    line: int,
    count: int,
    *,
    author: str = "Alice",
    email: str = "alice@example.com",
    time: int = 1700000000,
    summary: str = "Commit message",
    file_name: str = "src/app.py",
    details: bool = True,
) -> str:
    """One ``blame --incremental`` group; ``details`` only on a commit's first group."""
    lines = [f"{sha} {original_line} {line} {count}"]
    if details:
        lines.extend(
            [
                f"author {author}",
                f"author-mail <{email}>",
                f"author-time {time}",
                "author-tz +0000",
                f"committer {author}",
                f"committer-mail <{email}>",
                f"committer-time {time}",
                "committer-tz +0000",
                f"summary {summary}",
            ]
        )
    lines.append(f"filename {file_name}")
    return "\n".join(lines) + "\n"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text(
        """
git:
  path: /opt/git/bin/git

advanced:
  caching:
    enabled: false
  max_list_items: 50
  similarity_threshold: 75
  search_exclude:
    - "**/build"

blame:
  ignore_whitespace: true

remotes:
  - domain: git.example.com
    type: GitLab

log_file: "{log_path}"
""".format(log_path=str(temp_dir / "gitlayer.log").replace("\\", "/"))
    )
    return config_path


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables for testing."""
    original = {var: os.environ.pop(var) for var in list(os.environ) if var.startswith("GITLAYER_")}
    reset_settings()

    yield

    for var in [v for v in os.environ if v.startswith("GITLAYER_")]:
        del os.environ[var]
    os.environ.update(original)
    reset_settings()


@pytest.fixture
def settings(clean_env: None) -> Settings:
    """Default settings, isolated from the environment."""
    return Settings()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def git(runner: FakeRunner) -> Git:
    """An executor over the fake runner, reporting a recent git."""
    return Git(GitLocation("/usr/bin/git", "2.40.0"), runner=runner)


@pytest_asyncio.fixture
async def service(settings: Settings, git: Git) -> AsyncGenerator[GitService, None]:
    """An initialized service with one registered repository at ``REPO``."""
    svc = GitService(settings, git=git)
    await svc.initialize()
    svc.registry.add(Repository(REPO, WorkspaceFolder(REPO, "repo"), root=True))
    yield svc
    await svc.shutdown()


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git_cli(cwd: Path, *args: str) -> str:
    """Run the real git in ``cwd`` with the host's user config kept out."""
    env = {
        **os.environ,
        "GIT_CONFIG_NOSYSTEM": "1",
        "GIT_CONFIG_GLOBAL": os.devnull,
        "HOME": str(cwd),
        "LC_ALL": "C",
    }
    result = subprocess.run(
        ["git", "-c", "commit.gpgsign=false", "-c", "tag.gpgsign=false", *args],
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A real repository on ``main`` with two commits touching ``app.py``."""
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("HOME", str(tmp_path))

    repo = tmp_path.resolve() / "project"
    repo.mkdir()
    git_cli(repo, "init", "-q")
    git_cli(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git_cli(repo, "config", "user.name", "Alice")
    git_cli(repo, "config", "user.email", "alice@example.com")

    (repo / "app.py").write_text("one\ntwo\n")
    git_cli(repo, "add", "app.py")
    git_cli(repo, "commit", "-q", "-m", "Add app")

    (repo / "app.py").write_text("one\ntwo\nthree\n")
    git_cli(repo, "-c", "user.name=Bob", "-c", "user.email=bob@example.com", "commit", "-q", "-am", "Add three")
    return repo
