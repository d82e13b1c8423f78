"""Tests for per-document result caching."""

import asyncio

import pytest

from gitlayer.errors import GitError
from gitlayer.git.documents import CacheEntry, DocumentTracker, get_or_compute
from gitlayer.git.repository import Repository, RepositoryChange, RepositoryChangeEvent


class TestCacheEntry:
    """Tests for CacheEntry."""

    async def test_empty(self):
        """Test that an empty entry resolves to None and keeps the message."""
        entry = CacheEntry.empty("fatal: no such path")
        assert entry.is_empty
        assert entry.error_message == "fatal: no such path"
        assert await entry.future is None

    async def test_not_empty(self):
        """Test a regular entry."""
        future = asyncio.get_running_loop().create_future()
        assert CacheEntry(future).is_empty is False


class TestDocumentTracker:
    """Tests for DocumentTracker."""

    def test_get_or_add(self):
        """Test that documents are keyed by normalized path."""
        tracker = DocumentTracker()
        document = tracker.get_or_add("/work/repo//a.txt", "/work/repo/")
        assert document.key == "/work/repo/a.txt"
        assert document.repo_path == "/work/repo"
        assert tracker.get_or_add("/work/repo/a.txt", "/work/repo") is document
        assert tracker.get("/work/repo/a.txt") is document
        assert len(tracker) == 1

    def test_close(self):
        """Test that closing forgets the document."""
        tracker = DocumentTracker()
        document = tracker.get_or_add("/work/repo/a.txt", "/work/repo")
        document.ensure_state()

        tracker.close("/work/repo/a.txt")

        assert document.closed is True
        assert document.state is None
        assert tracker.get("/work/repo/a.txt") is None

    def test_reset_by_repository(self):
        """Test that resetting a repository leaves other documents alone."""
        tracker = DocumentTracker()
        a = tracker.get_or_add("/work/repo/a.txt", "/work/repo")
        b = tracker.get_or_add("/work/other/b.txt", "/work/other")
        a.ensure_state()
        b.ensure_state()

        tracker.reset("/work/repo")

        assert a.state is None
        assert b.state is not None

    @pytest.mark.parametrize(
        "change,resets",
        [
            (RepositoryChange.HEADS, True),
            (RepositoryChange.INDEX, True),
            (RepositoryChange.UNKNOWN, True),
            (RepositoryChange.TAGS, False),
            (RepositoryChange.CONFIG, False),
        ],
    )
    def test_on_repository_changed(self, change, resets):
        """Test which repository changes reset document state."""
        tracker = DocumentTracker()
        document = tracker.get_or_add("/work/repo/a.txt", "/work/repo")
        document.ensure_state()

        tracker.on_repository_changed(RepositoryChangeEvent(Repository("/work/repo"), frozenset({change})))

        assert (document.state is None) is resets


class TestGetOrCompute:
    """Tests for get_or_compute."""

    async def test_caches_result(self):
        """Test that a result is computed once per key."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            return "blame"

        assert await get_or_compute(document, "blame", producer) == "blame"
        assert await get_or_compute(document, "blame", producer) == "blame"
        assert calls == 1
        assert document.state.keys() == ["blame"]

    async def test_concurrent_requests_share(self):
        """Test that the pending computation is stored before it finishes."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")
        gate = asyncio.Event()
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            await gate.wait()
            return 1

        first = asyncio.ensure_future(get_or_compute(document, "k", producer))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(get_or_compute(document, "k", producer))
        await asyncio.sleep(0)
        gate.set()

        assert await first == 1
        assert await second == 1
        assert calls == 1

    async def test_failure_stored_as_empty(self):
        """Test that a trapped failure becomes an empty entry and isn't retried."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")
        calls = 0
        failures = []

        async def producer():
            nonlocal calls
            calls += 1
            raise GitError("fatal: no such path")

        result = await get_or_compute(
            document, "blame", producer, on_error=lambda state: failures.append(state.key)
        )

        assert result is None
        entry = document.state.get("blame")
        assert entry.is_empty
        assert "no such path" in entry.error_message
        assert failures == ["/work/repo/a.txt"]

        assert await get_or_compute(document, "blame", producer) is None
        assert calls == 1

    async def test_untrapped_failure_propagates(self):
        """Test that errors outside ``trap`` are raised and not kept."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")
        results = [ValueError("bug"), 42]

        async def producer():
            result = results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result

        with pytest.raises(ValueError):
            await get_or_compute(document, "k", producer)
        assert "k" not in document.state

        assert await get_or_compute(document, "k", producer) == 42
        assert await get_or_compute(document, "k", producer) == 42
        assert results == []

    async def test_no_document(self):
        """Test computing without a document."""
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            raise GitError("boom")

        assert await get_or_compute(None, "k", producer) is None
        assert await get_or_compute(None, "k", producer) is None
        assert calls == 2

    async def test_caching_disabled(self):
        """Test that disabled caching stores nothing."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")

        async def producer():
            return 5

        assert await get_or_compute(document, "k", producer, caching=False) == 5
        assert document.state is None

    async def test_reset_during_compute(self):
        """Test that a failure after a reset doesn't write into the new state."""
        document = DocumentTracker().get_or_add("/work/repo/a.txt", "/work/repo")
        gate = asyncio.Event()

        async def producer():
            await gate.wait()
            raise GitError("late")

        pending = asyncio.ensure_future(get_or_compute(document, "k", producer))
        await asyncio.sleep(0)
        document.reset("test")
        fresh = document.ensure_state()
        gate.set()

        assert await pending is None
        assert "k" not in fresh
