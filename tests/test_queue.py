"""
Tests for URL queue module.

Tests URL normalization, priority ordering, deduplication and the
depth bound.
"""

import asyncio

import pytest

from scrape_pipeline.core.models import CrawlTarget
from scrape_pipeline.crawler import (
    URLQueue,
    QueuedURL,
    URLPriority,
    normalize_url,
)


class TestNormalizeURL:
    """Tests for URL normalization function."""

    def test_normalize_trailing_slash(self):
        """Trailing slash should be handled consistently."""
        assert normalize_url("https://example.com/page/") == normalize_url(
            "https://example.com/page")

    def test_normalize_fragment_removal(self):
        """URL fragments should be removed."""
        assert "#" not in normalize_url("https://example.com/page#section")

    def test_normalize_query_params_sorted(self):
        """Query parameters should be sorted consistently."""
        assert normalize_url("https://example.com/page?b=2&a=1") == normalize_url(
            "https://example.com/page?a=1&b=2")

    def test_normalize_case_and_default_port(self):
        """Scheme and host are lowercased and default ports dropped."""
        assert normalize_url("HTTPS://Example.Com:443/Page") == "https://example.com/Page"
        assert normalize_url("http://example.com:80/") == "http://example.com/"

    def test_normalize_empty_path(self):
        """An empty path becomes the root."""
        assert normalize_url("https://example.com") == "https://example.com/"


class TestQueuedURL:
    """Tests for QueuedURL ordering."""

    def test_priority_then_sequence(self):
        """Entries sort by priority, then insertion order."""
        seed = QueuedURL(
            priority=URLPriority.SEED, sequence=5,
            target=CrawlTarget(url="https://a.com/seed"))
        early = QueuedURL(
            priority=URLPriority.DISCOVERED, sequence=1,
            target=CrawlTarget(url="https://a.com/1", depth=1))
        late = QueuedURL(
            priority=URLPriority.DISCOVERED, sequence=2,
            target=CrawlTarget(url="https://a.com/2", depth=1))

        assert sorted([late, seed, early]) == [seed, early, late]

    def test_domain(self):
        """domain is the lowercased host."""
        entry = QueuedURL(
            priority=0, sequence=0, target=CrawlTarget(url="https://Example.COM/x"))

        assert entry.domain == "example.com"

    def test_domain_of_unparseable_url(self):
        """An unparseable URL has an empty domain instead of raising."""
        entry = QueuedURL(
            priority=0, sequence=0, target=CrawlTarget(url="http://[bad"))

        assert entry.domain == ""


class TestURLQueue:
    """Tests for URLQueue."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        """URLs come back with their depth and parent."""
        queue = URLQueue(max_depth=1)

        assert await queue.put("https://example.com/a", depth=1, parent_url="https://example.com/")
        entry = await queue.get()

        assert entry.url == "https://example.com/a"
        assert entry.depth == 1
        assert entry.parent_url == "https://example.com/"

    @pytest.mark.asyncio
    async def test_deduplication(self):
        """Equivalent URLs are queued once."""
        queue = URLQueue()

        assert await queue.put("https://example.com/page")
        assert not await queue.put("https://example.com/page/")
        assert not await queue.put("https://EXAMPLE.com/page#top")

        assert queue.pending_count == 1
        assert queue.is_seen("https://example.com/page")

    @pytest.mark.asyncio
    async def test_exact_deduplication(self):
        """In exact mode only identical strings are duplicates."""
        queue = URLQueue()

        assert await queue.put("https://example.com/a", exact=True)
        assert await queue.put("https://example.com/a/", exact=True)
        assert not await queue.put("https://example.com/a", exact=True)
        # Discovered links still collapse onto the normalized form
        assert not await queue.put("https://example.com/a#frag")

        assert queue.pending_count == 2

    @pytest.mark.asyncio
    async def test_entries_carry_target(self):
        """Every entry wraps a CrawlTarget bound to the queue's policy."""
        policy = object()
        queue = URLQueue(max_depth=1, policy=policy)

        await queue.put("https://example.com/x", depth=1)
        entry = await queue.get()

        assert isinstance(entry.target, CrawlTarget)
        assert entry.target.url == "https://example.com/x"
        assert entry.target.depth == 1
        assert entry.target.policy is policy

    @pytest.mark.asyncio
    async def test_depth_bound(self):
        """URLs deeper than max_depth are refused."""
        queue = URLQueue(max_depth=0)

        assert await queue.put("https://example.com/seed", depth=0)
        assert not await queue.put("https://example.com/child", depth=1)

    @pytest.mark.asyncio
    async def test_priority_order(self):
        """Seeds are served before discovered links."""
        queue = URLQueue(max_depth=1)

        await queue.put("https://example.com/found", priority=URLPriority.DISCOVERED, depth=1)
        await queue.put("https://example.com/seed", priority=URLPriority.SEED)

        assert (await queue.get()).url == "https://example.com/seed"
        assert (await queue.get()).url == "https://example.com/found"

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self):
        """Equal priorities keep insertion order."""
        queue = URLQueue()
        urls = [f"https://example.com/{i}" for i in range(5)]

        added = await queue.put_many(urls, priority=URLPriority.SEED)

        assert added == 5
        assert [(await queue.get()).url for _ in urls] == urls

    @pytest.mark.asyncio
    async def test_join_waits_for_task_done(self):
        """join() returns only after every entry is marked done."""
        queue = URLQueue()
        await queue.put("https://example.com/a")

        entry = await queue.get()
        joiner = asyncio.ensure_future(queue.join())
        await asyncio.sleep(0)
        assert not joiner.done()
        assert queue.in_progress_count == 1
        assert not queue.is_idle

        queue.task_done()
        await asyncio.wait_for(joiner, timeout=1.0)
        assert queue.is_idle

        assert entry.url == "https://example.com/a"
        assert queue.get_stats() == {
            "pending": 0,
            "in_progress": 0,
            "completed": 1,
            "seen": 1,
        }
