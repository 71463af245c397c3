"""
Core module for the scrape pipeline.

Contains foundational types, protocols, and exceptions used throughout the application.
"""

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
from scrape_pipeline.core.models import (
    CrawlTarget,
    RawPage,
    FetchError,
    ImageRef,
    ExtractedContent,
    ExtractionFailure,
    RetryState,
    domain_of,
)
from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.core.protocols import CrawlHandle, Scraper, Extractor, Normalizer, Observer

__all__ = [
    # Exceptions
    "ScrapePipelineError",
    "RetryableError",
    "ConfigurationError",
    "CrawlerError",
    "PolicyRejectionError",
    "RobotsBlockedError",
    "URLFilteredError",
    "TransportError",
    "HTTPStatusError",
    "RateLimitError",
    "CrawlCancelledError",
    "ExtractionError",
    "ContentExtractionError",
    "PipelineError",
    "is_retryable",
    "get_retry_delay",
    # Records
    "CrawlTarget",
    "RawPage",
    "FetchError",
    "ImageRef",
    "ExtractedContent",
    "ExtractionFailure",
    "RetryState",
    "domain_of",
    # Cancellation
    "CancellationToken",
    # Roles
    "CrawlHandle",
    "Scraper",
    "Extractor",
    "Normalizer",
    "Observer",
]
