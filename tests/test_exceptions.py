"""
Tests for exception hierarchy.

Tests custom exceptions and retry classification.
"""

import pytest

from scrape_pipeline.core.exceptions import (
    ScrapePipelineError,
    RetryableError,
    ConfigurationError,
    CrawlerError,
    PolicyRejectionError,
    RobotsBlockedError,
    URLFilteredError,
    TransportError,
    HTTPStatusError,
    RateLimitError,
    CrawlCancelledError,
    ExtractionError,
    ContentExtractionError,
    PipelineError,
    is_retryable,
    get_retry_delay,
)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    def test_base_exception(self):
        """ScrapePipelineError should be the base for all custom exceptions."""
        exc = ScrapePipelineError("Test error")

        assert isinstance(exc, Exception)
        assert str(exc) == "Test error"

    @pytest.mark.parametrize("cls", [
        ConfigurationError,
        CrawlerError,
        ExtractionError,
        PipelineError,
    ])
    def test_top_level_errors(self, cls):
        """Top-level error families inherit from ScrapePipelineError."""
        assert issubclass(cls, ScrapePipelineError)

    def test_policy_rejections(self):
        """Robots and filter rejections are policy rejections, not retryable."""
        for cls in (RobotsBlockedError, URLFilteredError):
            exc = cls("Rejected", url="https://example.com/x")

            assert isinstance(exc, PolicyRejectionError)
            assert isinstance(exc, CrawlerError)
            assert not is_retryable(exc)

    def test_transport_error_is_retryable(self):
        """TransportError is both a CrawlerError and a RetryableError."""
        exc = TransportError("Connection refused", url="https://example.com")

        assert isinstance(exc, CrawlerError)
        assert isinstance(exc, RetryableError)
        assert exc.status_code == 0
        assert is_retryable(exc)

    def test_rate_limit_error(self):
        """RateLimitError carries status 429 and Retry-After."""
        exc = RateLimitError("Too many", url="https://example.com", retry_after=5.0)

        assert isinstance(exc, HTTPStatusError)
        assert exc.status_code == 429
        assert exc.retry_after == 5.0
        assert is_retryable(exc)

    def test_content_extraction_error(self):
        """ContentExtractionError is an ExtractionError with the page URL."""
        exc = ContentExtractionError("Bad HTML", url="https://example.com/p")

        assert isinstance(exc, ExtractionError)
        assert exc.url == "https://example.com/p"
        assert not is_retryable(exc)

    def test_cancelled_not_retryable(self):
        """Cancellation is never retried."""
        assert not is_retryable(CrawlCancelledError("stop"))


class TestExceptionDetails:
    """Tests for messages and details."""

    def test_details_in_str(self):
        """Details are rendered after the message."""
        exc = ConfigurationError("Missing file", {"path": "config.yaml"})

        assert str(exc) == "Missing file (path='config.yaml')"
        assert exc.details == {"path": "config.yaml"}

    def test_crawler_error_url_in_details(self):
        """CrawlerError stores the URL both as attribute and detail."""
        exc = CrawlerError("Failed", url="https://example.com")

        assert exc.url == "https://example.com"
        assert exc.details["url"] == "https://example.com"

    def test_status_code_in_details(self):
        """HTTP status errors record the status code."""
        exc = HTTPStatusError("HTTP 503", url="https://example.com", status_code=503)

        assert exc.details["status_code"] == 503

    def test_robots_prefix(self):
        """RobotsBlockedError records the matching prefix."""
        exc = RobotsBlockedError("Blocked", url="https://example.com/private/x",
                                 prefix="/private/")

        assert exc.prefix == "/private/"

    def test_repr(self):
        """repr shows class, message and details."""
        exc = PipelineError("boom")

        assert repr(exc) == "PipelineError('boom', details={})"


class TestRetryClassification:
    """Tests for is_retryable and get_retry_delay."""

    @pytest.mark.parametrize("status,expected", [
        (500, True),
        (502, True),
        (503, True),
        (429, True),
        (404, False),
        (403, False),
        (400, False),
    ])
    def test_http_status_retryable(self, status: int, expected: bool):
        """Only 5xx and 429 statuses are retryable."""
        exc = HTTPStatusError(f"HTTP {status}", status_code=status)

        assert is_retryable(exc) is expected

    def test_plain_exceptions_not_retryable(self):
        """Exceptions outside the hierarchy are not retryable."""
        assert not is_retryable(ValueError("nope"))

    def test_retry_delay_from_error(self):
        """Retry-After on the error wins over the default."""
        assert get_retry_delay(RateLimitError("x", retry_after=7.5)) == 7.5

    def test_retry_delay_default(self):
        """Errors without Retry-After use the default."""
        assert get_retry_delay(TransportError("x"), default=2.0) == 2.0
        assert get_retry_delay(ValueError("x"), default=3.0) == 3.0
