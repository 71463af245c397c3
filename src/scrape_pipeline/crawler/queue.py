"""
Crawl frontier.

Priority queue of targets with URL deduplication and a depth bound.
Workers take entries with get() and must call task_done() for each;
join() returns once every queued entry has been processed, including
entries queued by link discovery along the way.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING
from urllib.parse import urlparse, urlunparse

from scrape_pipeline.core.models import CrawlTarget
from scrape_pipeline.utils.logging import get_logger

if TYPE_CHECKING:
    from scrape_pipeline.config.settings import ScraperSettings

logger = get_logger(__name__)


class URLPriority(IntEnum):
    """
    Priority levels for the frontier.

    Lower values = higher priority (processed first).
    """

    SEED = 0  # URLs from the input list
    DISCOVERED = 50  # Links found on fetched pages


@dataclass(order=True)
class QueuedURL:
    """
    Frontier entry wrapping one CrawlTarget.

    Sorted by priority, then by insertion order.
    """

    priority: int
    sequence: int
    target: CrawlTarget = field(compare=False)
    parent_url: str | None = field(compare=False, default=None)

    @property
    def url(self) -> str:
        return self.target.url

    @property
    def depth(self) -> int:
        return self.target.depth

    @property
    def domain(self) -> str:
        return self.target.domain


def normalize_url(url: str) -> str:
    """
    Normalize URL for deduplication.

    - Lowercases scheme and host
    - Removes default ports
    - Removes trailing slashes (except root)
    - Removes fragments
    - Sorts query parameters

    Unparseable URLs are returned unchanged.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()

    # Default ports
    if netloc.endswith(":80") and scheme == "http":
        netloc = netloc[:-3]
    elif netloc.endswith(":443") and scheme == "https":
        netloc = netloc[:-4]

    # Empty path is the root; no trailing slash otherwise
    path = parsed.path or "/"
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")

    # Parameter order does not matter
    query = parsed.query
    if query:
        query = "&".join(sorted(query.split("&")))

    return urlunparse((scheme, netloc, path, parsed.params, query, ""))


class URLQueue:
    """
    Frontier for one crawl run.

    Example:
        >>> queue = URLQueue(max_depth=1)
        >>> await queue.put("https://example.com/", priority=URLPriority.SEED)
        True
        >>> entry = await queue.get()
        >>> ...
        >>> queue.task_done()
    """

    def __init__(
        self,
        max_depth: int = 0,
        policy: "ScraperSettings | None" = None,
    ) -> None:
        """
        Initialize URL queue.

        Args:
            max_depth: Maximum link depth (0 = seed only)
            policy: Scraper settings attached to every queued target
        """
        self.max_depth = max_depth
        self.policy = policy
        self._queue: asyncio.PriorityQueue[QueuedURL] = asyncio.PriorityQueue()
        self._seen: set[str] = set()
        self._seen_exact: set[str] = set()
        self._sequence = itertools.count()
        self._in_progress = 0
        self._completed = 0

    async def put(
        self,
        url: str,
        priority: int = URLPriority.DISCOVERED,
        depth: int = 0,
        parent_url: str | None = None,
        exact: bool = False,
    ) -> bool:
        """
        Add URL to the frontier if it is new and within the depth bound.

        The URL is queued as given. Discovered links are deduplicated on
        their normalized form; with ``exact`` (input URLs) only an identical
        string counts as a duplicate, so every distinct input gets a record.

        Returns:
            True if URL was added, False if duplicate or too deep
        """
        if depth > self.max_depth:
            logger.debug(
                f"Skipping URL (depth {depth} > {self.max_depth}): {url}")
            return False

        # Dedupe
        normalized = normalize_url(url)
        if exact:
            if url in self._seen_exact:
                return False
        elif normalized in self._seen:
            return False
        self._seen.add(normalized)
        self._seen_exact.add(url)

        self._queue.put_nowait(QueuedURL(
            priority=priority,
            sequence=next(self._sequence),
            target=CrawlTarget(url=url, policy=self.policy, depth=depth),
            parent_url=parent_url,
        ))
        logger.debug(f"Queued (priority={priority}, depth={depth}): {url}")
        return True

    async def put_many(
        self,
        urls: list[str],
        priority: int = URLPriority.DISCOVERED,
        depth: int = 0,
        parent_url: str | None = None,
        exact: bool = False,
    ) -> int:
        """
        Add multiple URLs.

        Returns:
            Number of URLs actually added
        """
        added = 0
        for url in urls:
            if await self.put(url, priority, depth, parent_url, exact):
                added += 1
        return added

    async def get(self) -> QueuedURL:
        """Wait for the next entry and mark it in progress."""
        entry = await self._queue.get()
        self._in_progress += 1
        return entry

    def task_done(self) -> None:
        """Mark the entry returned by the matching get() as processed."""
        self._in_progress -= 1
        self._completed += 1
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued entry has been processed."""
        await self._queue.join()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def is_idle(self) -> bool:
        """No entry is waiting or being processed."""
        return self._queue.qsize() == 0 and self._in_progress == 0

    @property
    def in_progress_count(self) -> int:
        return self._in_progress

    @property
    def completed_count(self) -> int:
        return self._completed

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def is_seen(self, url: str) -> bool:
        return normalize_url(url) in self._seen

    def get_stats(self) -> dict:
        return {
            "pending": self.pending_count,
            "in_progress": self.in_progress_count,
            "completed": self.completed_count,
            "seen": self.seen_count,
        }
