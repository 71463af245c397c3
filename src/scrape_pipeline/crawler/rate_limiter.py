"""
Per-domain request pacing.

Each domain gets a minimum spacing of 1/rate seconds between request
starts, plus random jitter of up to ``jitter_ratio`` of that spacing so
that concurrent workers do not fire in lockstep.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlparse

from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitState:
    """
    Pacing state for a single domain.

    Attributes:
        domain: Domain the state belongs to
        next_slot: Monotonic time at which the next request may start
        last_request_time: Monotonic start time of the latest admitted request
        request_count: Requests admitted so far
        total_wait: Seconds workers spent waiting for this domain
    """

    domain: str
    next_slot: float = 0.0
    last_request_time: float = 0.0
    request_count: int = 0
    total_wait: float = 0.0


class DomainRateLimiter:
    """
    Admission check for outbound requests.

    Slot reservation is the only step done under the lock; the wait for
    the reserved slot happens outside it, so a worker waiting on one
    domain never holds up workers on other domains.

    Example:
        >>> limiter = DomainRateLimiter(rate_for=lambda domain: 2.0)
        >>> await limiter.acquire("https://example.com/a")
        0.0
        >>> await limiter.acquire("https://example.com/b")  # waits 0.5-0.75s
    """

    def __init__(
        self,
        rate_for: Callable[[str], float],
        jitter_ratio: float = 0.5,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            rate_for: Maps a domain to its requests-per-second
            jitter_ratio: Maximum jitter as a fraction of the spacing
            rng: Random source for jitter (seedable for tests)
            clock: Monotonic clock
        """
        self._rate_for = rate_for
        self.jitter_ratio = jitter_ratio
        self._rng = rng or random.Random()
        self._clock = clock
        self._states: dict[str, RateLimitState] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _get_domain(url: str) -> str:
        return urlparse(url).netloc.lower()

    def spacing_for(self, domain: str) -> float:
        """Minimum seconds between request starts for ``domain``."""
        rate = self._rate_for(domain)
        if rate <= 0:
            return 0.0
        return 1.0 / rate

    def _jitter(self, spacing: float) -> float:
        if self.jitter_ratio <= 0 or spacing <= 0:
            return 0.0
        return self._rng.uniform(0.0, self.jitter_ratio * spacing)

    async def reserve(self, url: str) -> float:
        """
        Reserve the next start slot for the URL's domain.

        Returns:
            Seconds the caller must wait before starting the request
        """
        domain = self._get_domain(url)

        async with self._lock:
            state = self._states.get(domain)
            if state is None:
                state = self._states[domain] = RateLimitState(domain=domain)

            now = self._clock()
            start = max(now, state.next_slot)
            spacing = self.spacing_for(domain)
            state.next_slot = start + spacing + self._jitter(spacing)
            state.last_request_time = start
            state.request_count += 1

            wait = start - now
            state.total_wait += wait

        if wait > 0:
            logger.debug(f"Rate limit: waiting {wait:.3f}s for {domain}")
        return wait

    async def acquire(
        self,
        url: str,
        cancel_token: CancellationToken | None = None,
    ) -> float:
        """
        Block the calling worker until the URL's domain admits a request.

        Args:
            url: URL about to be requested
            cancel_token: Aborts the wait when cancelled

        Returns:
            Time waited in seconds

        Raises:
            CrawlCancelledError: If the token fires while waiting
        """
        wait = await self.reserve(url)
        if wait > 0:
            if cancel_token is not None:
                await cancel_token.sleep(wait)
            else:
                await asyncio.sleep(wait)
        return wait

    def get_state(self, domain: str) -> RateLimitState | None:
        return self._states.get(domain.lower())

    def get_stats(self) -> dict:
        return {
            "total_domains": len(self._states),
            "total_requests": sum(s.request_count for s in self._states.values()),
            "domains": {
                domain: {
                    "request_count": state.request_count,
                    "total_wait": round(state.total_wait, 3),
                    "spacing": self.spacing_for(domain),
                }
                for domain, state in self._states.items()
            },
        }

    def reset(self, domain: str | None = None) -> None:
        """
        Reset pacing state.

        Args:
            domain: Domain to reset (None = reset all)
        """
        if domain is not None:
            self._states.pop(domain.lower(), None)
        else:
            self._states.clear()
