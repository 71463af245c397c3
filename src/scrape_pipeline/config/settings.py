"""
Pydantic settings models for the scrape pipeline.

Scraper, extraction and logging settings drive the crawl-and-extract
core. Chunking, quality, embedding and storage sections belong to the
downstream collaborators; they are validated here so that one
configuration file serves the whole pipeline.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = "Scrape-Pipeline/1.0"
DEFAULT_RATE_LIMIT = 1.0
DEFAULT_CONCURRENCY = 1


class ScraperSettings(BaseModel):
    """
    Crawl policy for one configured site.

    Invalid or zero values for rate limit, concurrency and user agent are
    coerced to their defaults instead of being rejected.
    """

    name: str = Field(
        ...,
        min_length=1,
        description="Human-readable scraper name",
    )
    url: str = Field(
        ...,
        min_length=1,
        description="Base URL of the site",
    )
    seed_urls: list[str] = Field(
        default_factory=list,
        description="URLs to crawl. Empty means the base URL only.",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with every request",
    )
    rate_limit: float = Field(
        default=DEFAULT_RATE_LIMIT,
        description="Requests per second per domain",
    )
    rate_limit_rules: dict[str, float] = Field(
        default_factory=dict,
        description="Per-domain requests-per-second overrides",
    )
    concurrency: int = Field(
        default=DEFAULT_CONCURRENCY,
        description="Maximum in-flight requests per domain",
    )
    jitter_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Random extra spacing as a fraction of 1/rate_limit",
    )
    respect_robots_txt: bool = Field(
        default=True,
        description="Whether to reject disallowed robots.txt paths",
    )
    disallowed_paths: list[str] = Field(
        default_factory=lambda: ["/private/"],
        description="Disallowed path prefixes recorded for the site's domain",
    )
    fetch_robots_txt: bool = Field(
        default=False,
        description="Also load Disallow prefixes from the domain's /robots.txt",
    )
    retry_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum retries for transport failures, 5xx and 429",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=300.0,
        description="Fixed delay before each retry",
    )
    backoff_factor: float = Field(
        default=1.0,
        ge=1.0,
        le=10.0,
        description="Multiplier applied to the retry delay per attempt (1.0 = fixed)",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Wall-clock timeout for a single fetch",
    )
    proxy_urls: list[str] = Field(
        default_factory=list,
        description="Proxy endpoints assigned round-robin per request",
    )
    allow_url_patterns: list[str] = Field(
        default_factory=list,
        description="URL regexes to include. Empty means include all.",
    )
    deny_url_patterns: list[str] = Field(
        default_factory=list,
        description="URL regexes to drop",
    )
    allowed_domains: list[str] = Field(
        default_factory=list,
        description="Domains to crawl (subdomains included). Empty means any.",
    )
    max_depth: int = Field(
        default=0,
        ge=0,
        le=50,
        description="Link-following depth beyond the seed URLs (0 = seeds only)",
    )

    @field_validator("rate_limit", mode="before")
    @classmethod
    def coerce_rate_limit(cls, v: Any) -> float:
        """Fall back to the default rate for missing, invalid or non-positive values."""
        try:
            value = float(v)
        except (TypeError, ValueError):
            return DEFAULT_RATE_LIMIT
        return value if value > 0 else DEFAULT_RATE_LIMIT

    @field_validator("concurrency", mode="before")
    @classmethod
    def coerce_concurrency(cls, v: Any) -> int:
        """Fall back to the default concurrency for missing, invalid or non-positive values."""
        try:
            value = int(v)
        except (TypeError, ValueError):
            return DEFAULT_CONCURRENCY
        return value if value > 0 else DEFAULT_CONCURRENCY

    @field_validator("user_agent", mode="before")
    @classmethod
    def coerce_user_agent(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            return DEFAULT_USER_AGENT
        return v

    @field_validator("rate_limit_rules", mode="before")
    @classmethod
    def drop_invalid_rules(cls, v: Any) -> dict[str, float]:
        """Keep only positive numeric per-domain rates, keyed by lowercased domain."""
        if not v:
            return {}
        rules = {}
        for domain, rate in dict(v).items():
            try:
                rate = float(rate)
            except (TypeError, ValueError):
                continue
            if rate > 0:
                rules[str(domain).lower()] = rate
        return rules

    @model_validator(mode="after")
    def default_seeds(self) -> "ScraperSettings":
        if not self.seed_urls:
            self.seed_urls = [self.url]
        return self

    def rate_for(self, domain: str) -> float:
        """Requests per second allowed for ``domain``."""
        return self.rate_limit_rules.get(domain.lower(), self.rate_limit)


class ExtractionSettings(BaseModel):
    """Switches for the DOM extraction stage."""

    preserve_headings: bool = Field(
        default=True,
        description="Keep h1-h6 text in the serialized body",
    )
    extract_images: bool = Field(
        default=True,
        description="Collect img references",
    )
    extract_metadata: bool = Field(
        default=True,
        description="Collect meta name/property tags",
    )


class ChunkingSettings(BaseModel):
    """Downstream chunker configuration."""

    max_tokens: int = Field(default=1000, ge=1)
    overlap: int = Field(default=200, ge=0)


class QualitySettings(BaseModel):
    """Downstream quality-control configuration."""

    min_content_length: int = Field(default=100, ge=0)
    duplicate_threshold: float = Field(default=0.5, ge=0.0, le=1.0)


class EmbeddingSettings(BaseModel):
    """Downstream embedding configuration."""

    model: str = Field(default="default_model")
    batch_size: int = Field(default=32, ge=1)


class StorageSettings(BaseModel):
    """Downstream vector storage configuration."""

    type: str = Field(default="local")
    path: Path = Field(default=Path("./data"))

    @field_validator("path", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum logging level",
    )
    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format string",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Date format for log timestamps",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path to log file. None means console only.",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of backup log files to keep",
    )
    log_to_console: bool = Field(
        default=True,
        description="Whether to output logs to console",
    )

    @field_validator("file_path", mode="before")
    @classmethod
    def convert_file_path(cls, v: str | Path | None) -> Path | None:
        """Convert string paths to Path objects."""
        if v is None:
            return None
        return Path(v) if isinstance(v, str) else v


class Settings(BaseModel):
    """
    Root configuration model.

    At least one scraper must be configured.
    """

    scrapers: list[ScraperSettings] = Field(
        ...,
        min_length=1,
        description="Sites to crawl",
    )
    extraction: ExtractionSettings = Field(
        default_factory=ExtractionSettings,
        description="Extraction switches",
    )
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    model_config = {
        "extra": "forbid",
        "validate_default": True,
    }
