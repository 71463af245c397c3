"""
Scrape Pipeline - polite crawling and article extraction.

Fetches pages under per-domain rate, retry, proxy and robots policy,
extracts title, metadata, main text and images from each page, and
hands the results to a downstream normalizer.
"""

__version__ = "0.1.0"

from scrape_pipeline.config import Settings, ScraperSettings, load_config
from scrape_pipeline.utils.logging import setup_logging, get_logger
from scrape_pipeline.core.exceptions import ScrapePipelineError
from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.crawler import CrawlEngine
from scrape_pipeline.extraction import DOMExtractor
from scrape_pipeline.pipeline import Pipeline, build_pipeline

__all__ = [
    "Settings",
    "ScraperSettings",
    "load_config",
    "setup_logging",
    "get_logger",
    "ScrapePipelineError",
    "CancellationToken",
    "CrawlEngine",
    "DOMExtractor",
    "Pipeline",
    "build_pipeline",
]
