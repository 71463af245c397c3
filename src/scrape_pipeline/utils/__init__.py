"""
Utilities module for the scrape pipeline.

Provides logging setup, in-memory metrics and the default observer.
"""

from scrape_pipeline.utils.logging import (
    setup_logging,
    get_logger,
    get_logger_with_context,
    reset_logging,
)
from scrape_pipeline.utils.metrics import (
    Metrics,
    TimingStats,
    LoggingObserver,
    SafeObserver,
    as_observer,
    series_key,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "get_logger_with_context",
    "reset_logging",
    # Metrics
    "Metrics",
    "TimingStats",
    "LoggingObserver",
    "SafeObserver",
    "as_observer",
    "series_key",
]
