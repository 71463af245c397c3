"""
Pipeline glue between the crawl engine and the extractor.

Every page from the crawl is extracted (off the event loop) and the
result, or the extraction failure, goes to the normalizer. Fetch errors
are drained alongside and recorded, so the report accounts for every
input URL except those dropped by the URL filter.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from scrape_pipeline.config.settings import ScraperSettings, Settings
from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.core.exceptions import ExtractionError, PipelineError
from scrape_pipeline.core.models import (
    ExtractedContent,
    ExtractionFailure,
    FetchError,
    RawPage,
)
from scrape_pipeline.core.protocols import Extractor, Normalizer, Observer, Scraper
from scrape_pipeline.crawler.engine import ClientFactory, CrawlEngine, CrawlStats
from scrape_pipeline.extraction.content_extractor import DOMExtractor
from scrape_pipeline.utils.logging import get_logger
from scrape_pipeline.utils.metrics import as_observer

logger = get_logger(__name__)


@dataclass
class PipelineReport:
    """
    Accounting for one pipeline run.

    Attributes:
        name: Scraper the run belongs to
        pages: Pages received from the crawl
        extracted: Pages extracted and accepted downstream
        extraction_failures: Pages that could not be extracted
        fetch_errors: Targets that ended in a FetchError
        normalizer_errors: Downstream calls that raised
        cancelled: Whether the run was cancelled
        crawl_stats: Counters reported by the crawl engine
    """

    name: str = ""
    pages: int = 0
    extracted: int = 0
    extraction_failures: list[ExtractionFailure] = field(default_factory=list)
    fetch_errors: list[FetchError] = field(default_factory=list)
    normalizer_errors: int = 0
    cancelled: bool = False
    crawl_stats: CrawlStats | None = None
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    @property
    def failed_urls(self) -> list[str]:
        """URLs that failed at either stage."""
        return [e.url for e in self.fetch_errors] + [
            f.url for f in self.extraction_failures
        ]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "pages": self.pages,
            "extracted": self.extracted,
            "extraction_failures": len(self.extraction_failures),
            "fetch_errors": len(self.fetch_errors),
            "normalizer_errors": self.normalizer_errors,
            "cancelled": self.cancelled,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "crawl": self.crawl_stats.to_dict() if self.crawl_stats else {},
        }


class MemorySink:
    """Normalizer that keeps everything in memory."""

    def __init__(self) -> None:
        self.contents: list[ExtractedContent] = []
        self.failures: list[ExtractionFailure] = []

    def accept(self, content: ExtractedContent) -> None:
        self.contents.append(content)

    def reject(self, failure: ExtractionFailure) -> None:
        self.failures.append(failure)

    def by_url(self) -> dict[str, ExtractedContent]:
        return {content.url: content for content in self.contents}

    def clear(self) -> None:
        self.contents.clear()
        self.failures.clear()


class Pipeline:
    """
    Runs crawl, extraction and hand-off for a list of URLs.

    Example:
        >>> pipeline = Pipeline(engine, DOMExtractor(), MemorySink())
        >>> report = await pipeline.run(["https://example.com/a"])
        >>> print(report.extracted, len(report.fetch_errors))
    """

    def __init__(
        self,
        scraper: Scraper,
        extractor: Extractor,
        normalizer: Normalizer,
        observer: Observer | None = None,
        name: str = "pipeline",
    ) -> None:
        """
        Initialize pipeline.

        Args:
            scraper: Produces pages and fetch errors
            extractor: Turns a page into ExtractedContent
            normalizer: Receives every extraction result or failure
            observer: Receives metrics, spans and logs
            name: Label used in logs and the report
        """
        self.scraper = scraper
        self.extractor = extractor
        self.normalizer = normalizer
        self.observer = as_observer(observer)
        self.name = name

    async def run(
        self,
        urls: Sequence[str],
        cancel_token: CancellationToken | None = None,
    ) -> PipelineReport:
        """
        Crawl ``urls`` and extract every page.

        Args:
            urls: Seed URLs
            cancel_token: Cancels the crawl; pages already emitted are
                still extracted

        Returns:
            PipelineReport for the run

        Raises:
            PipelineError: If the crawl itself fails
        """
        token = cancel_token or CancellationToken()
        report = PipelineReport(name=self.name)
        end_span = self.observer.start_span("pipeline_run")

        logger.info(f"Pipeline '{self.name}' starting with {len(urls)} URLs")

        crawl = self.scraper.start(urls, token)
        errors_task = asyncio.ensure_future(self._drain_errors(crawl.errors, report))

        try:
            async for page in crawl.pages:
                report.pages += 1
                await self._process_page(page, report)
            await errors_task
        finally:
            if not errors_task.done():
                token.cancel("Pipeline stopped")
                errors_task.cancel()
            try:
                report.crawl_stats = await crawl.wait()
            except Exception as e:
                self.observer.log(
                    "error", "Crawl failed", {"pipeline": self.name, "error": str(e)})
                raise PipelineError(f"Crawl failed for '{self.name}': {e}") from e
            finally:
                report.cancelled = token.cancelled
                report.completed_at = datetime.now(timezone.utc)
                end_span()

        logger.info(
            f"Pipeline '{self.name}' finished: {report.extracted}/{report.pages} pages "
            f"extracted, {len(report.extraction_failures)} extraction failures, "
            f"{len(report.fetch_errors)} fetch errors"
            + (" (cancelled)" if report.cancelled else "")
        )
        self.observer.log(
            "info",
            "Pipeline cancelled" if report.cancelled else "Pipeline finished",
            {"pipeline": self.name, "pages": report.pages, "extracted": report.extracted},
        )
        return report

    async def _drain_errors(self, errors, report: PipelineReport) -> None:
        async for error in errors:
            report.fetch_errors.append(error)
            logger.warning(f"Fetch failed: {error}")

    async def _process_page(self, page: RawPage, report: PipelineReport) -> None:
        labels = {"domain": page.domain}

        try:
            content = await asyncio.to_thread(self.extractor.extract, page)
        except ExtractionError as e:
            logger.warning(f"Extraction failed for {page.url}: {e}")
            self._reject(ExtractionFailure(page.url, e), report, labels)
            return
        except Exception as e:
            logger.exception(f"Unexpected extraction error for {page.url}")
            self._reject(ExtractionFailure(page.url, e), report, labels)
            return

        report.extracted += 1
        self.observer.record_metric("extraction_success_total", 1, labels)
        self.observer.record_metric(
            "extraction_word_count", content.word_count, labels)

        try:
            self.normalizer.accept(content)
        except Exception:
            report.normalizer_errors += 1
            logger.exception(f"Normalizer rejected content for {page.url}")

    def _reject(
        self,
        failure: ExtractionFailure,
        report: PipelineReport,
        labels: dict[str, str],
    ) -> None:
        report.extraction_failures.append(failure)
        self.observer.log(
            "warning", "Extraction failed",
            {"url": failure.url, "error": str(failure.cause)})
        self.observer.record_metric("extraction_failures_total", 1, labels)
        try:
            self.normalizer.reject(failure)
        except Exception:
            report.normalizer_errors += 1
            logger.exception(f"Normalizer failed on extraction failure for {failure.url}")


def build_pipeline(
    settings: Settings,
    scraper_settings: ScraperSettings,
    *,
    normalizer: Normalizer | None = None,
    observer: Observer | None = None,
    client_factory: ClientFactory | None = None,
) -> Pipeline:
    """
    Build the pipeline for one configured scraper.

    Args:
        settings: Full configuration (extraction switches are read here)
        scraper_settings: Crawl policy for this scraper
        normalizer: Downstream consumer (MemorySink if None)
        observer: Metrics/log side channel
        client_factory: HTTP client builder for the crawl engine

    Returns:
        Pipeline wired with a CrawlEngine and a DOMExtractor
    """
    observer = as_observer(observer)
    engine = CrawlEngine(
        scraper_settings,
        client_factory=client_factory,
        observer=observer,
    )
    return Pipeline(
        scraper=engine,
        extractor=DOMExtractor(settings.extraction),
        normalizer=normalizer or MemorySink(),
        observer=observer,
        name=scraper_settings.name,
    )
