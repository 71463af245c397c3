"""
Custom exceptions for the scrape pipeline.

Provides a hierarchy of exceptions for precise error handling across
the crawl and extraction stages. All exceptions inherit from
ScrapePipelineError.

Exception Hierarchy:
    ScrapePipelineError (base)
    ├── ConfigurationError
    ├── CrawlerError
    │   ├── PolicyRejectionError
    │   │   ├── RobotsBlockedError
    │   │   └── URLFilteredError
    │   ├── TransportError (retryable)
    │   │   ├── HTTPStatusError
    │   │   └── RateLimitError
    │   └── CrawlCancelledError
    ├── ExtractionError
    │   └── ContentExtractionError
    └── PipelineError
"""

from typing import Any


class ScrapePipelineError(Exception):
    """
    Base exception for all scrape pipeline errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(
                f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details!r})"


class RetryableError(ScrapePipelineError):
    """
    Marker class for errors that can be retried.

    Attributes:
        retry_after: Suggested delay in seconds before retry (optional)
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ScrapePipelineError):
    """
    Error in configuration loading or validation.

    Raised when:
    - Configuration file is missing or malformed
    - Required settings (scraper name, URL) are missing
    - Setting values fail validation

    Fatal at startup; never raised once a crawl run is underway.
    """

    pass


# =============================================================================
# Crawler Errors
# =============================================================================


class CrawlerError(ScrapePipelineError):
    """Base error for crawling operations."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.url = url


class PolicyRejectionError(CrawlerError):
    """
    Request rejected by crawl policy before any network I/O.

    This is NOT retryable: the policy will reject the URL again.
    """

    pass


class RobotsBlockedError(PolicyRejectionError):
    """URL path matches a disallowed robots.txt prefix for its domain."""

    def __init__(
        self,
        message: str,
        url: str,
        prefix: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if prefix:
            details["prefix"] = prefix
        super().__init__(message, url=url, details=details)
        self.prefix = prefix


class URLFilteredError(PolicyRejectionError):
    """URL failed the allow/deny pattern or domain filter."""

    pass


class TransportError(CrawlerError, RetryableError):
    """
    Fetch failed at the transport level or with a retryable status.

    Raised when:
    - Connection cannot be established
    - The request times out
    - The server answers 5xx or 429

    Status code 0 means no HTTP response was received.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int = 0,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ) -> None:
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        CrawlerError.__init__(self, message, url=url, details=details)
        self.retry_after = retry_after
        self.status_code = status_code


class HTTPStatusError(TransportError):
    """Server answered with an error status."""

    @property
    def retryable(self) -> bool:
        """Whether the status is eligible for retry (5xx or 429)."""
        return self.status_code >= 500 or self.status_code == 429


class RateLimitError(HTTPStatusError):
    """
    Server returned 429 Too Many Requests.

    The retry_after attribute carries the Retry-After header when present.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            url=url,
            status_code=429,
            details=details,
            retry_after=retry_after,
        )


class CrawlCancelledError(CrawlerError):
    """Work abandoned because the crawl's cancellation token fired."""

    pass


# =============================================================================
# Extraction Errors
# =============================================================================


class ExtractionError(ScrapePipelineError):
    """Base error for content extraction operations."""

    pass


class ContentExtractionError(ExtractionError):
    """
    Error extracting structured content from a page.

    Raised when the HTML cannot be parsed into a tree at all.
    Terminal for the page; fetch retries do not apply.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.url = url


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(ScrapePipelineError):
    """Error wiring or running the crawl-and-extract pipeline."""

    pass


# =============================================================================
# Utility Functions
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """
    Check if an error is retryable.

    HTTP status errors are retryable only for 5xx and 429.

    Args:
        error: The exception to check

    Returns:
        True if the error indicates a retryable condition
    """
    if isinstance(error, HTTPStatusError):
        return error.retryable
    return isinstance(error, RetryableError)


def get_retry_delay(error: BaseException, default: float = 1.0) -> float:
    """
    Get the recommended retry delay for an error.

    Args:
        error: The exception to check
        default: Default delay if not specified by error

    Returns:
        Recommended delay in seconds before retry
    """
    if isinstance(error, RetryableError) and error.retry_after is not None:
        return error.retry_after
    return default
