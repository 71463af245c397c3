"""
Records passed between the crawl and extraction stages.

Pages, errors and extracted content are frozen once built; only
RetryState is mutable and it never leaves the worker that owns it.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import urlparse

if TYPE_CHECKING:
    from scrape_pipeline.config.settings import ScraperSettings


def _freeze(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    """Return a read-only copy of a string mapping."""
    return MappingProxyType(dict(mapping or {}))


def domain_of(url: str) -> str:
    """Lowercased host[:port] of a URL, empty if it has none or cannot be parsed."""
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return ""


@dataclass(frozen=True)
class CrawlTarget:
    """
    One URL scheduled for fetching under its domain's policy.

    Built by the frontier for every seed and every discovered link.

    Attributes:
        url: URL to fetch
        policy: Scraper settings the target inherits (None outside a run)
        depth: Link distance from the seed list (0 = seed)
    """

    url: str
    policy: "ScraperSettings | None" = None
    depth: int = 0

    @property
    def domain(self) -> str:
        """Domain the target's rate and robots policy is keyed on."""
        return domain_of(self.url)


@dataclass(frozen=True)
class RawPage:
    """
    A successfully fetched page.

    Produced exactly once per successful fetch and handed to extraction.
    """

    url: str
    html: str
    status_code: int
    content_type: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    fetched_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc))
    depth: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze(self.headers))

    @property
    def domain(self) -> str:
        return domain_of(self.url)

    @property
    def is_html(self) -> bool:
        """Whether the content type looks like HTML (or is unknown)."""
        content_type = self.content_type.lower()
        return not content_type or "html" in content_type


@dataclass(frozen=True)
class FetchError:
    """
    Terminal fetch failure for one target.

    Attributes:
        url: Target URL
        cause: Exception that ended the target
        attempts: Number of network fetches made (0 for policy rejections)
    """

    url: str
    cause: BaseException
    attempts: int = 0

    @property
    def status_code(self) -> int:
        """Last HTTP status seen, 0 when no response was received."""
        return getattr(self.cause, "status_code", 0) or 0

    @property
    def is_policy_rejection(self) -> bool:
        from scrape_pipeline.core.exceptions import PolicyRejectionError

        return isinstance(self.cause, PolicyRejectionError)

    def __str__(self) -> str:
        return f"{self.url}: {self.cause} (attempts={self.attempts})"


@dataclass(frozen=True)
class ImageRef:
    """An image referenced by a page; URL kept as found in the markup."""

    url: str
    alt: str = ""


@dataclass(frozen=True)
class ExtractedContent:
    """
    Structured article content derived from exactly one RawPage.

    Metadata keys are case-sensitive; images keep document order.
    """

    url: str
    title: str
    text: str
    metadata: Mapping[str, str] = field(default_factory=dict)
    images: tuple[ImageRef, ...] = ()
    word_count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))
        object.__setattr__(self, "images", tuple(self.images))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "url": self.url,
            "title": self.title,
            "text": self.text,
            "metadata": dict(self.metadata),
            "images": [{"url": img.url, "alt": img.alt} for img in self.images],
            "word_count": self.word_count,
        }


@dataclass(frozen=True)
class ExtractionFailure:
    """Record forwarded downstream when a page cannot be extracted."""

    url: str
    cause: BaseException

    def __str__(self) -> str:
        return f"{self.url}: {self.cause}"


@dataclass
class RetryState:
    """
    Retry bookkeeping for a single target.

    Attributes:
        domain: Domain of the target
        attempts: Fetches made so far
        next_eligible_at: Monotonic time before which no retry may start
    """

    domain: str
    attempts: int = 0
    next_eligible_at: float = 0.0

    def record_attempt(self) -> int:
        """Count one fetch attempt and return the new total."""
        self.attempts += 1
        return self.attempts

    def schedule(self, delay: float) -> None:
        """Push the next eligible time ``delay`` seconds into the future."""
        self.next_eligible_at = time.monotonic() + max(0.0, delay)

    @property
    def remaining_delay(self) -> float:
        return max(0.0, self.next_eligible_at - time.monotonic())
