"""
Configuration module for the scrape pipeline.

Provides Pydantic-based settings management with YAML file support
and environment variable overrides.
"""

from scrape_pipeline.config.settings import (
    Settings,
    ScraperSettings,
    ExtractionSettings,
    ChunkingSettings,
    QualitySettings,
    EmbeddingSettings,
    StorageSettings,
    LoggingSettings,
    DEFAULT_USER_AGENT,
)
from scrape_pipeline.config.loader import (
    load_config,
    settings_from_dict,
    write_default_config,
    DEFAULT_CONFIG,
    DEFAULT_CONFIG_PATH,
)

__all__ = [
    "Settings",
    "ScraperSettings",
    "ExtractionSettings",
    "ChunkingSettings",
    "QualitySettings",
    "EmbeddingSettings",
    "StorageSettings",
    "LoggingSettings",
    "DEFAULT_USER_AGENT",
    "load_config",
    "settings_from_dict",
    "write_default_config",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_PATH",
]
