"""
Capability interfaces for the pipeline's roles.

The pipeline holds one component per role, built once at startup,
and talks to it only through these protocols.
"""

from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from scrape_pipeline.core.cancellation import CancellationToken
    from scrape_pipeline.core.models import (
        ExtractedContent,
        ExtractionFailure,
        FetchError,
        RawPage,
    )
    from scrape_pipeline.crawler.channel import Channel
    from scrape_pipeline.crawler.engine import CrawlStats


@runtime_checkable
class CrawlHandle(Protocol):
    """A crawl in flight: two record channels plus control."""

    pages: "Channel[RawPage]"
    errors: "Channel[FetchError]"

    async def add_urls(self, urls: Sequence[str]) -> int:
        ...

    def cancel(self, reason: str | None = None) -> None:
        ...

    async def wait(self) -> "CrawlStats":
        ...


@runtime_checkable
class Scraper(Protocol):
    """Turns a URL list into a stream of pages and fetch errors."""

    def start(
        self,
        urls: Sequence[str],
        cancel_token: "CancellationToken",
    ) -> CrawlHandle:
        ...

    def crawl(
        self,
        urls: Sequence[str],
        cancel_token: "CancellationToken",
    ) -> AsyncIterator["RawPage | FetchError"]:
        ...

    def set_rate_limit(self, requests_per_second: float) -> None:
        ...


@runtime_checkable
class Extractor(Protocol):
    """Derives structured content from one fetched page."""

    def extract(self, page: "RawPage") -> "ExtractedContent":
        ...


@runtime_checkable
class Normalizer(Protocol):
    """Downstream consumer of extraction results. No response is expected."""

    def accept(self, content: "ExtractedContent") -> None:
        ...

    def reject(self, failure: "ExtractionFailure") -> None:
        ...


@runtime_checkable
class Observer(Protocol):
    """
    Side channel for metrics, spans and structured logs.

    Implementations must return promptly; callers never wait on delivery.
    """

    def record_metric(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        ...

    def start_span(self, name: str) -> Callable[[], None]:
        ...

    def log(self, level: str, message: str, fields: dict[str, Any] | None = None) -> None:
        ...
