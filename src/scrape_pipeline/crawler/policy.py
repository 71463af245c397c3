"""
Retry decisions and proxy rotation for outbound requests.
"""

import asyncio

from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

# Status 0 stands for "no HTTP response" (connection error, timeout)
TRANSPORT_FAILURE_STATUS = 0
TOO_MANY_REQUESTS = 429


def is_retryable_status(status_code: int) -> bool:
    """Transport failures, 5xx and 429 are worth another attempt."""
    return (
        status_code == TRANSPORT_FAILURE_STATUS
        or status_code >= 500
        or status_code == TOO_MANY_REQUESTS
    )


class RetryPolicy:
    """
    Bounded retry with a configured delay.

    A target makes at most ``max_retries + 1`` fetches. The delay is fixed
    unless ``backoff_factor`` is above 1, in which case it grows
    geometrically with each retry.

    Example:
        >>> policy = RetryPolicy(max_retries=2, delay_seconds=1.0)
        >>> policy.should_retry(503, attempts=1)
        True
        >>> policy.should_retry(503, attempts=3)
        False
        >>> policy.should_retry(404, attempts=1)
        False
    """

    def __init__(
        self,
        max_retries: int = 3,
        delay_seconds: float = 1.0,
        backoff_factor: float = 1.0,
    ) -> None:
        self.max_retries = max(0, max_retries)
        self.delay_seconds = max(0.0, delay_seconds)
        self.backoff_factor = max(1.0, backoff_factor)

    def should_retry(self, status_code: int, attempts: int) -> bool:
        """
        Decide whether a failed fetch gets another attempt.

        Args:
            status_code: HTTP status of the failure (0 = transport failure)
            attempts: Fetches already made for the target

        Returns:
            True if the target should be fetched again
        """
        return is_retryable_status(status_code) and attempts <= self.max_retries

    def delay_for(self, attempts: int, retry_after: float | None = None) -> float:
        """
        Seconds to wait before the next attempt.

        A server-supplied Retry-After longer than the configured delay wins.
        """
        delay = self.delay_seconds * \
            (self.backoff_factor ** max(0, attempts - 1))
        if retry_after is not None and retry_after > delay:
            return retry_after
        return delay


class ProxyRotator:
    """
    Round-robin proxy assignment for one crawl run.

    One counter is shared by all domains of the run; the increment is done
    under a lock so concurrent workers never receive the same turn.
    """

    def __init__(self, proxy_urls: list[str] | None = None) -> None:
        self.proxy_urls = list(proxy_urls or [])
        self._counter = 0
        self._lock = asyncio.Lock()

    def __bool__(self) -> bool:
        return bool(self.proxy_urls)

    @property
    def assigned(self) -> int:
        """Number of assignments handed out so far."""
        return self._counter

    async def next(self) -> str | None:
        """Next proxy in rotation, or None when no proxies are configured."""
        if not self.proxy_urls:
            return None
        async with self._lock:
            proxy = self.proxy_urls[self._counter % len(self.proxy_urls)]
            self._counter += 1
        return proxy
