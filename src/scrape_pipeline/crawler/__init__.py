"""
Crawler module for Scrape Pipeline.

Provides the streaming crawl engine and its policy pieces:
- Per-domain rate limiting
- Retry decisions and proxy rotation
- URL filtering and robots prefix exclusions
- Frontier queue and output channels
"""

from scrape_pipeline.crawler.rate_limiter import (
    DomainRateLimiter,
    RateLimitState,
)
from scrape_pipeline.crawler.policy import (
    RetryPolicy,
    ProxyRotator,
    is_retryable_status,
)
from scrape_pipeline.crawler.filters import (
    URLFilter,
    RobotsRules,
)
from scrape_pipeline.crawler.queue import (
    URLQueue,
    URLPriority,
    QueuedURL,
    normalize_url,
)
from scrape_pipeline.crawler.channel import (
    Channel,
    ChannelClosed,
)
from scrape_pipeline.crawler.engine import (
    CrawlEngine,
    CrawlRun,
    CrawlStats,
)

__all__ = [
    # Rate limiting
    "DomainRateLimiter",
    "RateLimitState",
    # Retry and proxies
    "RetryPolicy",
    "ProxyRotator",
    "is_retryable_status",
    # Filters
    "URLFilter",
    "RobotsRules",
    # Queue
    "URLQueue",
    "URLPriority",
    "QueuedURL",
    "normalize_url",
    # Channels
    "Channel",
    "ChannelClosed",
    # Engine
    "CrawlEngine",
    "CrawlRun",
    "CrawlStats",
]
