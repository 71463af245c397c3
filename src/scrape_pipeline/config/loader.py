"""
Configuration loader with YAML file support and environment variable overrides.

Supports loading from:
1. Default values (defined in settings.py)
2. YAML configuration file
3. Environment variables (highest priority)

Environment variables use the pattern: SCRAPE_PIPELINE__{SECTION}__{KEY}
Example: SCRAPE_PIPELINE__EXTRACTION__EXTRACT_IMAGES=false

Sections holding lists (``scrapers``) can only be set from the file.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from scrape_pipeline.config.settings import Settings
from scrape_pipeline.core.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config.yaml")

DEFAULT_CONFIG: dict[str, Any] = {
    "scrapers": [
        {
            "name": "Default Scraper",
            "url": "https://example.com",
            "rate_limit": 1,
            "concurrency": 1,
            "respect_robots_txt": True,
        },
    ],
    "extraction": {
        "preserve_headings": True,
        "extract_images": True,
    },
    "chunking": {
        "max_tokens": 1000,
        "overlap": 200,
    },
    "quality": {
        "min_content_length": 100,
        "duplicate_threshold": 0.5,
    },
    "embedding": {
        "model": "default_model",
        "batch_size": 32,
    },
    "storage": {
        "type": "local",
        "path": "./data",
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary to merge into
        override: Dictionary with values to override

    Returns:
        Merged dictionary with override values taking precedence
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    """
    Parse environment variable string into appropriate Python type.

    Args:
        value: String value from environment variable

    Returns:
        Parsed value (bool, int, float, None or string)
    """
    # Booleans
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    # Null-like values
    if value.lower() in ("none", "null", ""):
        return None

    # Numbers, integer first
    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _load_env_overrides(prefix: str = "SCRAPE_PIPELINE") -> dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Environment variables should follow the pattern:
    {PREFIX}__{SECTION}__{KEY}

    Args:
        prefix: Environment variable prefix to look for

    Returns:
        Dictionary of configuration overrides
    """
    overrides: dict[str, Any] = {}
    prefix_with_sep = f"{prefix}__"

    for key, value in os.environ.items():
        if not key.startswith(prefix_with_sep):
            continue

        # Strip the prefix; what remains is SECTION__KEY
        key_path = key[len(prefix_with_sep):].lower().split("__")

        if len(key_path) < 2:
            continue

        # Walk / create the nested sections
        current = overrides
        for part in key_path[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[key_path[-1]] = _parse_env_value(value)

    return overrides


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or not a mapping
    """
    if not path.exists():
        raise ConfigurationError(
            "Configuration file does not exist", {"path": str(path)})

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse config file: {e}", {"path": str(path)}) from e

    # Handle empty files
    if content is None:
        return {}

    if not isinstance(content, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got: {type(content).__name__}",
            {"path": str(path)},
        )

    return content


def load_config(
    config_path: Path | str = DEFAULT_CONFIG_PATH,
    env_prefix: str = "SCRAPE_PIPELINE",
) -> Settings:
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML configuration file
        env_prefix: Prefix for environment variables

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If the file is missing or invalid, or validation fails
    """
    # File values over model defaults
    path = Path(config_path)
    config_data = _load_yaml_file(path)

    # Environment over file
    env_overrides = _load_env_overrides(env_prefix)
    config_data = _deep_merge(config_data, env_overrides)

    # Validate and build settings
    return settings_from_dict(config_data)


def settings_from_dict(data: dict[str, Any]) -> Settings:
    """
    Validate a configuration mapping.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return Settings(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


def write_default_config(path: Path | str = DEFAULT_CONFIG_PATH) -> Path:
    """
    Write the default configuration to ``path``.

    Returns:
        Path that was written
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(DEFAULT_CONFIG, f,
                       default_flow_style=False, sort_keys=False)

    return output_path
