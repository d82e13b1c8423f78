"""Tests for command invocations and deduplication."""

import asyncio

import pytest

from gitlayer.git.dedup import CommandDeduplicator
from gitlayer.git.invocation import CommandInvocation, ErrorHandling, invocation


class TestInvocation:
    """Tests for CommandInvocation."""

    def test_none_args_dropped(self):
        """Test that None arguments are removed."""
        inv = invocation("log", None, "-n1", None, cwd="/repo")
        assert inv.args == ("log", "-n1")

    def test_command_and_signature(self):
        """Test the display command and dedup signature."""
        inv = invocation("status", "--porcelain", cwd="/repo")
        assert inv.command == "[/repo] git status --porcelain"
        assert inv.signature == inv.command

    def test_correlation_key_in_signature(self):
        """Test that a correlation key separates otherwise identical commands."""
        a = invocation("status", cwd="/repo", correlation_key="a")
        b = invocation("status", cwd="/repo", correlation_key="b")
        assert a.signature == "a:[/repo] git status"
        assert a.signature != b.signature

    def test_signature_ignores_stdin_and_env(self):
        """Test that stdin and env don't separate otherwise identical commands."""
        a = invocation("apply", "--cached", "-", cwd="/repo", stdin="patch a", env={"A": "1"})
        b = invocation("apply", "--cached", "-", cwd="/repo", stdin="patch b")
        assert a != b
        assert a.signature == b.signature

    def test_env_sorted(self):
        """Test that env becomes a sorted tuple of pairs."""
        inv = invocation("status", env={"B": "2", "A": "1"})
        assert inv.env == (("A", "1"), ("B", "2"))

    def test_defaults(self):
        """Test default options."""
        inv = invocation("status")
        assert inv.errors is ErrorHandling.DEFAULT
        assert inv.encoding == "utf8"
        assert inv.local is False

    def test_with_helpers(self):
        """Test that copies change one field only."""
        inv = invocation("show", "HEAD", cwd="/repo")
        assert inv.with_args("show", "HEAD~1").args == ("show", "HEAD~1")
        assert inv.with_errors(ErrorHandling.THROW).errors is ErrorHandling.THROW
        assert inv.errors is ErrorHandling.DEFAULT

    def test_root_fallback_ignored_in_equality(self):
        """Test that the root fallback marker doesn't affect equality."""
        a = CommandInvocation(args=("diff",), root_fallback_ref="x^")
        b = CommandInvocation(args=("diff",))
        assert a == b


class TestCommandDeduplicator:
    """Tests for CommandDeduplicator."""

    async def test_identical_commands_share_process(self):
        """Test that a concurrent identical invocation waits on the first."""
        dedup = CommandDeduplicator()
        calls = 0
        gate = asyncio.Event()

        async def factory():
            nonlocal calls
            calls += 1
            await gate.wait()
            return "output"

        inv = invocation("status", cwd="/repo")
        first = asyncio.ensure_future(dedup.run(inv, factory))
        second = asyncio.ensure_future(dedup.run(invocation("status", cwd="/repo"), factory))
        await asyncio.sleep(0)
        assert dedup.is_pending(inv)
        gate.set()

        assert await first == ("output", False)
        assert await second == ("output", True)
        assert calls == 1
        assert dedup.pending_count == 0

    async def test_different_cwd_not_shared(self):
        """Test that the working directory is part of the identity."""
        dedup = CommandDeduplicator()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            return "x"

        await asyncio.gather(
            dedup.run(invocation("status", cwd="/a"), factory),
            dedup.run(invocation("status", cwd="/b"), factory),
        )
        assert calls == 2

    async def test_failure_shared_and_cleared(self):
        """Test that all waiters see the failure and the entry is removed."""
        dedup = CommandDeduplicator()

        async def factory():
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        inv = invocation("fetch", cwd="/repo")
        results = await asyncio.gather(dedup.run(inv, factory), dedup.run(inv, factory), return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert not dedup.is_pending(inv)

    async def test_cancelled_waiter_does_not_cancel_process(self):
        """Test that cancelling one caller leaves the shared command running."""
        dedup = CommandDeduplicator()
        gate = asyncio.Event()

        async def factory():
            await gate.wait()
            return "done"

        inv = invocation("log", cwd="/repo")
        first = asyncio.ensure_future(dedup.run(inv, factory))
        second = asyncio.ensure_future(dedup.run(inv, factory))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        gate.set()

        assert await second == ("done", True)
