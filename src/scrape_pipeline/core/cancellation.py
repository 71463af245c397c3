"""
Cooperative cancellation for crawl runs.

A single token is shared by reference across every worker of a run and
checked at defined suspension points: before dispatch, before emit, and
around every blocking await (network I/O, rate-limit and retry waits).
"""

import asyncio
from typing import Awaitable, TypeVar

from scrape_pipeline.core.exceptions import CrawlCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Cancellation signal for one crawl run.

    Example:
        >>> token = CancellationToken()
        >>> page = await token.guard(client.get(url))
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation. Idempotent; the first reason is kept."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Suspend until cancellation is signalled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlCancelledError(self.reason or "Crawl cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        When cancellation wins, the pending work is cancelled (abandoned)
        and CrawlCancelledError is raised.

        Raises:
            CrawlCancelledError: If the token is or becomes cancelled
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            # Abandoned; its outcome is no longer reported
            pass
        raise CrawlCancelledError(self.reason or "Crawl cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until cancelled."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        await self.guard(asyncio.sleep(seconds))
