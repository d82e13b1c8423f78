"""Tests for git argument construction."""

import pytest

from gitlayer.git import builder
from gitlayer.git.builder import (
    BlameOptions,
    DiffOptions,
    LogFileOptions,
    LogOptions,
    ReflogOptions,
    StashPushOptions,
)
from gitlayer.git.invocation import ErrorHandling
from gitlayer.git.parsers import log as log_parser
from gitlayer.git.revision import ROOT_SHA, UNCOMMITTED, UNCOMMITTED_STAGED

REPO = "/work/repo"
SHA = "0123456789abcdef0123456789abcdef01234567"


class TestVersionGating:
    """Tests for version-dependent arguments."""

    def test_porcelain_version(self):
        """Test the porcelain format switch at 2.11."""
        assert builder.porcelain_version("2.10.5") == 1
        assert builder.porcelain_version("2.11.0") == 2

    def test_status_modern(self):
        """Test status args on a recent git."""
        inv = builder.status(REPO, "2.40.0", similarity_threshold=60)
        assert inv.args == ("status", "--porcelain=v2", "--branch", "-u", "--find-renames=60%", "--")
        assert inv.configs == ("-c", "color.status=false")
        assert dict(inv.env) == {"GIT_OPTIONAL_LOCKS": "0"}

    def test_status_old(self):
        """Test that old versions get porcelain v1 without rename detection."""
        inv = builder.status(REPO, "2.10.0")
        assert inv.args == ("status", "--porcelain", "--branch", "-u", "--")

    def test_status_between(self):
        """Test v2 porcelain before --find-renames is available."""
        inv = builder.status(REPO, "2.17.0")
        assert "--porcelain=v2" in inv.args
        assert not any(a.startswith("--find-renames") for a in inv.args)

    def test_status_file(self):
        """Test that a file status runs relative to the repository."""
        inv = builder.status_file(REPO, f"{REPO}/src/app.py", "2.40.0")
        assert inv.args == ("status", "--porcelain=v2", "--find-renames", "--", "src/app.py")
        assert inv.cwd == REPO


class TestBlame:
    """Tests for blame invocations."""

    def test_basic(self):
        """Test blame of a file at a commit."""
        inv = builder.blame(REPO, f"{REPO}/src/app.py", SHA)
        assert inv.args == ("blame", "--root", "--incremental", SHA, "--", "src/app.py")
        assert inv.cwd == REPO
        assert inv.stdin is None

    def test_options(self):
        """Test whitespace, line range and custom args."""
        options = BlameOptions(args=("--minimal",), ignore_whitespace=True, start_line=3, end_line=9)
        inv = builder.blame(REPO, "src/app.py", None, options)
        assert inv.args == ("blame", "--root", "--incremental", "-w", "-L3,9", "--minimal", "--", "src/app.py")

    def test_staged_uses_contents(self):
        """Test that the index is blamed through stdin."""
        inv = builder.blame(REPO, "src/app.py", UNCOMMITTED_STAGED, staged_contents="staged\n")
        assert inv.args[-4:] == ("--contents", "-", "--", "src/app.py")
        assert inv.stdin == "staged\n"

    def test_blame_contents(self):
        """Test blaming unsaved contents."""
        inv = builder.blame_contents(REPO, "src/app.py", "dirty\n", correlation_key="doc")
        assert inv.args == ("blame", "--root", "--incremental", "--contents", "-", "--", "src/app.py")
        assert inv.stdin == "dirty\n"
        assert inv.correlation_key == "doc"

    def test_ignore_revs_file(self):
        """Test locating and dropping --ignore-revs-file."""
        args = ("--minimal", "--ignore-revs-file", ".git-blame-ignore-revs", "-w")
        found = builder.find_ignore_revs_file(args, REPO)
        assert found == (1, f"{REPO}/.git-blame-ignore-revs")
        assert builder.drop_ignore_revs_file(args, 1) == ("--minimal", "-w")

    def test_ignore_revs_file_absolute(self):
        """Test that an absolute path is kept."""
        assert builder.find_ignore_revs_file(["--ignore-revs-file", "/etc/revs"], REPO) == (0, "/etc/revs")
        assert builder.find_ignore_revs_file(["--ignore-revs-file"], REPO) is None
        assert builder.find_ignore_revs_file([], REPO) is None


class TestDiff:
    """Tests for diff invocations."""

    def test_refs(self):
        """Test a diff between two commits."""
        inv = builder.diff(REPO, "src/app.py", f"{SHA}^", SHA, DiffOptions(lines_of_context=3))
        assert inv.args == (
            "diff",
            "--no-ext-diff",
            "--minimal",
            "-U3",
            "-M",
            f"{SHA}^",
            SHA,
            "--",
            "src/app.py",
        )
        assert inv.root_fallback_ref == f"{SHA}^"

    def test_staged(self):
        """Test that the index ref becomes --staged."""
        inv = builder.diff(REPO, "a.txt", UNCOMMITTED_STAGED, None, DiffOptions(renames=False))
        assert inv.args == ("diff", "--no-ext-diff", "--minimal", "--staged", "--", "a.txt")

    def test_stash_untracked_parent(self):
        """Test that the parent of a stash's untracked commit is the empty tree."""
        inv = builder.diff(REPO, "a.txt", f"{SHA}^3^", f"{SHA}^3")
        assert ROOT_SHA in inv.args
        assert inv.root_fallback_ref == ROOT_SHA

    def test_filters(self):
        """Test the diff filter argument."""
        inv = builder.diff(REPO, "a.txt", options=DiffOptions(filters=("A", "M"), similarity_threshold=50))
        assert "--diff-filter=AM" in inv.args
        assert "-M50%" in inv.args

    def test_contents(self):
        """Test a no-index diff against stdin."""
        inv = builder.diff_contents(REPO, "a.txt", "new\n")
        assert inv.args == ("diff", "-M", "--no-ext-diff", "-U0", "--minimal", "--no-index", "--", "a.txt", "-")
        assert inv.stdin == "new\n"

    def test_name_status(self):
        """Test diff --name-status between refs."""
        inv = builder.diff_name_status(REPO, "HEAD", None, filters=("D",))
        assert inv.args == ("diff", "--name-status", "-M", "--no-ext-diff", "--diff-filter=D", "HEAD", "--")


class TestLog:
    """Tests for log invocations."""

    def test_default(self):
        """Test a paged repository log."""
        inv = builder.log(REPO, "main", LogOptions(limit=50, ordering="topo"))
        assert inv.args == (
            "log",
            f"--format={log_parser.DEFAULT_FORMAT}",
            "--full-history",
            "-M",
            "-m",
            "--name-status",
            "--topo-order",
            "-n51",
            "main",
            "--",
        )
        assert inv.configs == ("-c", "diff.renameLimit=0", "-c", "log.showSignature=false")

    def test_authors_and_since(self):
        """Test author filters and since."""
        inv = builder.log(REPO, None, LogOptions(authors=("alice",), since="2 weeks ago", merges=False, all=True))
        args = inv.args
        assert '--since="2 weeks ago"' in args
        assert "--first-parent" in args
        assert args.index("--use-mailmap") < args.index("--author=alice")
        assert args[-2:] == ("--all", "--")

    def test_reverse(self):
        """Test that reverse walks forward from the ref without a limit."""
        inv = builder.log(REPO, SHA, LogOptions(limit=10, reverse=True))
        assert "-n11" not in inv.args
        assert inv.args[-4:] == ("--reverse", "--ancestry-path", f"{SHA}..HEAD", "--")

    def test_staged_ref_dropped(self):
        """Test that the index ref isn't passed to log."""
        inv = builder.log(REPO, UNCOMMITTED_STAGED)
        assert UNCOMMITTED_STAGED not in inv.args

    def test_refs_format(self):
        """Test the refs-only format has no file list."""
        inv = builder.log(REPO, None, LogOptions(format="refs"))
        assert f"--format={log_parser.REFS_FORMAT}" in inv.args
        assert "--name-status" not in inv.args

    def test_log_file(self):
        """Test a file log with renames."""
        inv = builder.log_file(REPO, f"{REPO}/src/app.py", None, LogFileOptions(limit=5, skip=10))
        assert inv.args == (
            "log",
            f"--format={log_parser.DEFAULT_FORMAT}",
            "-n6",
            "--skip=10",
            "--follow",
            "--numstat",
            "--summary",
            "--",
            "src/app.py",
        )
        assert inv.cwd == REPO

    def test_log_file_folder(self):
        """Test that folder globs use name-status."""
        inv = builder.log_file(REPO, "src/*", None, LogFileOptions(all=True))
        assert "--name-status" in inv.args
        assert "-m" in inv.args
        assert "--follow" not in inv.args

    def test_log_file_line_range(self):
        """Test that -L carries the path and no -- is emitted."""
        inv = builder.log_file(REPO, "src/app.py", "HEAD", LogFileOptions(start_line=4, end_line=8))
        assert "-L4,8:src/app.py" in inv.args
        assert "--follow" not in inv.args
        assert "--" not in inv.args
        assert inv.args[-1] == "HEAD"

    def test_log_file_first_parent(self):
        """Test that first-parent keeps -m alongside --follow."""
        inv = builder.log_file(REPO, "a.txt", None, LogFileOptions(first_parent=True))
        args = inv.args
        assert args.index("--follow") < args.index("--first-parent") < args.index("-m")

    def test_log_search(self):
        """Test a paged search."""
        inv = builder.log_search(REPO, ["-M", "--grep=fix", "--"], limit=20, skip=40)
        assert inv.args[:4] == ("log", "--name-status", f"--format={log_parser.DEFAULT_FORMAT}", "--use-mailmap")
        assert inv.args[4:] == ("-n21", "--skip=40", "-M", "--grep=fix", "--")

    def test_log_search_show(self):
        """Test that commit searches use show without paging."""
        inv = builder.log_search(REPO, ["-m", SHA, "--"], limit=20, use_show=True)
        assert inv.args[0] == "show"
        assert "-n21" not in inv.args
        assert inv.configs == ()

    def test_reflog(self):
        """Test reflog paging."""
        inv = builder.reflog(REPO, ReflogOptions(limit=100, skip=100, all=True))
        assert inv.args[:2] == ("log", "--walk-reflogs")
        assert "--all" in inv.args
        assert "-n100" in inv.args
        assert "--skip=100" in inv.args


class TestShow:
    """Tests for show invocations."""

    def test_commit(self):
        """Test the object spec for a commit."""
        inv = builder.show(REPO, f"{REPO}/src/app.py", SHA)
        assert inv.args == ("show", "--textconv", f"{SHA}:./src/app.py", "--")
        assert inv.errors is ErrorHandling.THROW

    def test_index(self):
        """Test the object spec for the index."""
        assert builder.show(REPO, "a.txt", ":").args[2] == ":./a.txt"

    def test_working_tree_rejected(self):
        """Test that the working tree has no object to show."""
        with pytest.raises(ValueError):
            builder.show(REPO, "a.txt", UNCOMMITTED)


class TestStashPush:
    """Tests for stash push."""

    def test_pathspecs(self):
        """Test that pathspecs imply untracked files."""
        inv = builder.stash_push(REPO, StashPushOptions(message="wip", pathspecs=("a.txt", "b.txt")))
        assert inv.args == ("stash", "push", "-u", "-m", "wip", "--", "a.txt", "b.txt")

    def test_stdin(self):
        """Test pathspecs through stdin."""
        inv = builder.stash_push(REPO, StashPushOptions(keep_index=True, pathspecs=("a", "b"), stdin=True))
        assert inv.args == ("stash", "push", "-u", "-k", "--pathspec-from-file=-", "--pathspec-file-nul")
        assert inv.stdin == "a\0b"

    def test_plain(self):
        """Test a plain stash."""
        assert builder.stash_push(REPO).args == ("stash", "push", "--")


class TestFetch:
    """Tests for fetch."""

    @pytest.mark.parametrize(
        "kwargs,expected",
        [
            ({"all": True, "prune": True}, ("fetch", "--prune", "--all")),
            ({"remote": "origin"}, ("fetch", "origin")),
            ({"remote": "origin", "branch": "main"}, ("fetch", "origin", "main")),
            (
                {"remote": "origin", "branch": "main", "upstream": "main", "pull": True},
                ("fetch", "-u", "origin", "main:main"),
            ),
        ],
    )
    def test_args(self, kwargs, expected):
        """Test the fetch variants."""
        assert builder.fetch(REPO, **kwargs).args == expected


class TestMisc:
    """Tests for smaller commands."""

    def test_current_branch(self):
        """Test rev-parse for branch and upstream."""
        inv = builder.rev_parse_current_branch(REPO)
        assert inv.args == ("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@", "@{u}", "--")
        assert inv.errors is ErrorHandling.THROW

    def test_rev_parse_verify(self):
        """Test verifying a commit and a file at a commit."""
        assert builder.rev_parse_verify(REPO, "main").args[-1] == "main^{commit}"
        assert builder.rev_parse_verify(REPO, "main", "a.txt").args[-1] == "main:./a.txt"

    def test_check_ignore(self):
        """Test that files go through stdin NUL separated."""
        inv = builder.check_ignore(REPO, ["a", "b"])
        assert inv.stdin == "a\0b"
        assert inv.errors is ErrorHandling.IGNORE

    def test_checkout_file(self):
        """Test checking out one file."""
        inv = builder.checkout(REPO, SHA, file_name=f"{REPO}/a.txt")
        assert inv.args == ("checkout", SHA, "--", "a.txt")

    def test_checkout_create_branch(self):
        """Test creating a branch on checkout."""
        assert builder.checkout(REPO, "main", create_branch="topic").args == ("checkout", "-b", "topic", "main", "--")

    def test_ls_files(self):
        """Test ls-files with a tree and untracked files."""
        assert builder.ls_files(REPO, "a.txt", ref=SHA).args == ("ls-files", f"--with-tree={SHA}", "--", "a.txt")
        assert builder.ls_files(REPO, "a.txt", untracked=True).args == ("ls-files", "-o", "--", "a.txt")
        assert builder.ls_files(REPO, "a.txt", ref=UNCOMMITTED).args == ("ls-files", "--", "a.txt")
