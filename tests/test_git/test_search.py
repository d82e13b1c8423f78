"""Tests for commit search parsing."""

from gitlayer.git.search import (
    SearchPattern,
    build_search_args,
    parse_search_operations,
    strip_quotes,
    word_boundaries,
)

SHA = "0123456789abcdef0123456789abcdef01234567"


class TestParseSearchOperations:
    """Tests for parse_search_operations."""

    def test_mixed_operators(self):
        """Test grouping by operator in first-appearance order."""
        result = parse_search_operations("fix @:alice ?:src/*.py")
        assert result == {"message:": ["fix"], "author:": ["alice"], "file:": ["src/*.py"]}
        assert list(result) == ["message:", "author:", "file:"]

    def test_long_operators(self):
        """Test the long operator forms."""
        result = parse_search_operations("message:fix author:bob change:TODO commit:abc")
        assert result == {
            "message:": ["fix"],
            "author:": ["bob"],
            "change:": ["TODO"],
            "commit:": ["abc"],
        }

    def test_space_after_operator(self):
        """Test a single space between operator and value."""
        assert parse_search_operations("@: alice") == {"author:": ["alice"]}

    def test_quoted_values(self):
        """Test that quoted values keep their spaces and quotes."""
        assert parse_search_operations('=:"fix the bug"') == {"message:": ['"fix the bug"']}
        assert parse_search_operations('"two words"') == {"message:": ['"two words"']}

    def test_bare_sha_is_commit(self):
        """Test that a bare full sha searches commits."""
        assert parse_search_operations(SHA) == {"commit:": [SHA]}

    def test_duplicates_removed(self):
        """Test that repeated values appear once."""
        assert parse_search_operations("fix fix =:fix") == {"message:": ["fix"]}

    def test_empty(self):
        """Test an empty query."""
        assert parse_search_operations("") == {}


class TestQuoteHelpers:
    """Tests for quote helpers."""

    def test_strip_quotes(self):
        """Test removing quotes."""
        assert strip_quotes('"src/app.py"') == "src/app.py"

    def test_word_boundaries(self):
        """Test that quotes become word boundaries."""
        assert word_boundaries('"fix"') == r"\bfix\b"


class TestBuildSearchArgs:
    """Tests for build_search_args."""

    def test_message_search(self):
        """Test a case-insensitive regex message search."""
        args, use_show = build_search_args(SearchPattern("fix"))
        assert use_show is False
        assert args == [
            "-M",
            "--all",
            "--full-history",
            "--extended-regexp",
            "--regexp-ignore-case",
            "-m",
            "--grep=fix",
            "--",
        ]

    def test_match_all_and_case(self):
        """Test all-match and case-sensitive options."""
        args, _ = build_search_args(SearchPattern("fix bug", match_all=True, match_case=True))
        assert "--all-match" in args
        assert "--regexp-ignore-case" not in args
        assert args.count("-m") == 1
        assert "--grep=fix" in args and "--grep=bug" in args

    def test_fixed_strings(self):
        """Test a non-regex search."""
        args, _ = build_search_args(SearchPattern("a.b", match_regex=False))
        assert "--fixed-strings" in args
        assert "--extended-regexp" not in args
        assert "--regexp-ignore-case" not in args

    def test_author_change_and_files(self):
        """Test author, change and file operators."""
        args, _ = build_search_args(SearchPattern('@:"bob" ~:TODO ?:"src/a b.py"'), similarity_threshold=60)
        assert args[0] == "-M60%"
        assert r"--author=\bbob\b" in args
        assert "-GTODO" in args
        assert args[-2:] == ["--", "src/a b.py"]

    def test_commit_search_uses_show(self):
        """Test that commit searches use show."""
        args, use_show = build_search_args(SearchPattern(f"#:{SHA}"))
        assert use_show is True
        assert args == ["-m", "-M", SHA, "--"]
