"""
Logging configuration for the scrape pipeline.

All modules log through children of the ``scrape_pipeline`` logger.
setup_logging() attaches console and rotating-file handlers once per
process; crawl workers add per-URL context with get_logger_with_context().
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from scrape_pipeline.config.settings import LoggingSettings


ROOT_LOGGER_NAME = "scrape_pipeline"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_configured = False


def setup_logging(
    settings: "LoggingSettings | None" = None,
    level: str | None = None,
) -> logging.Logger:
    """
    Configure the pipeline's logger hierarchy.

    Safe to call more than once; only the first call installs handlers.

    Args:
        settings: Logging configuration. None uses console-only defaults.
        level: Level name overriding ``settings.level`` (e.g. from --verbose)

    Returns:
        The configured ``scrape_pipeline`` logger.
    """
    global _logging_configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if _logging_configured:
        return logger

    logger.handlers.clear()

    level_name = level or (settings.level if settings else "INFO")
    numeric_level = getattr(logging, level_name.upper(), logging.INFO)
    logger.setLevel(numeric_level)

    formatter = logging.Formatter(
        fmt=settings.format if settings else DEFAULT_FORMAT,
        datefmt=settings.date_format if settings else DEFAULT_DATE_FORMAT,
    )

    if settings is None or settings.log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if settings is not None and settings.file_path is not None:
        logger.addHandler(_create_file_handler(
            file_path=settings.file_path,
            max_bytes=settings.max_file_size_mb * 1024 * 1024,
            backup_count=settings.backup_count,
            level=numeric_level,
            formatter=formatter,
        ))

    # Handlers live on our root only
    logger.propagate = False

    _logging_configured = True
    return logger


def _create_file_handler(
    file_path: Path,
    max_bytes: int,
    backup_count: int,
    level: int,
    formatter: logging.Formatter,
) -> RotatingFileHandler:
    """Create a rotating file handler, making the parent directory if needed."""
    file_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(file_path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger under the ``scrape_pipeline`` hierarchy.

    Args:
        name: Usually ``__name__``. Names outside the package are nested
              under the root so they share its handlers.
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)

    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Close and remove all handlers so setup_logging() can run again."""
    global _logging_configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    _logging_configured = False


def format_fields(fields: Mapping[str, Any] | None) -> str:
    """Render ``{"url": u, "attempt": 2}`` as ``[url=u] [attempt=2]``."""
    if not fields:
        return ""
    return " ".join(f"[{k}={v}]" for k, v in fields.items())


class LoggerAdapter(logging.LoggerAdapter):
    """
    Appends bound context to every message.

    Example:
        >>> log = LoggerAdapter(get_logger(__name__), {"url": "https://example.com/a"})
        >>> log.info("Fetched")  # "Fetched [url=https://example.com/a]"
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        context = format_fields(self.extra)
        if context:
            msg = f"{msg} {context}"
        return msg, kwargs


def get_logger_with_context(
    name: str | None = None,
    **context: Any,
) -> LoggerAdapter:
    """Get a logger whose messages carry ``context`` as key=value tags."""
    return LoggerAdapter(get_logger(name), context)
