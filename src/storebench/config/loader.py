"""Configuration loader for storebench."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .schema import StorebenchConfig


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileNotFoundError(ConfigError):
    """Raised when configuration file is not found."""

    pass


class ConfigParseError(ConfigError):
    """Raised when configuration file cannot be parsed."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping.

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails or the top level is not a mapping
    """
    if not path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML: {e}")  # noqa: B904

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigParseError(
            f"Expected a mapping at the top level of {path}, got {type(content).__name__}"
        )
    return content


def load_config(path: str | Path) -> StorebenchConfig:
    """Load and validate storebench configuration from file.

    Args:
        path: Path to configuration YAML file

    Returns:
        Validated StorebenchConfig object

    Raises:
        ConfigFileNotFoundError: If file doesn't exist
        ConfigParseError: If YAML parsing fails
        ConfigValidationError: If validation fails
    """
    path = Path(path)
    data = load_yaml(path)

    try:
        return StorebenchConfig.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        error_messages = []
        for err in errors:
            loc = ".".join(str(x) for x in err["loc"])
            msg = err["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigValidationError(  # noqa: B904
            "Configuration validation failed:\n" + "\n".join(error_messages),
            errors=[dict(e) for e in errors],  # type: ignore[call-overload]
        )


def load_config_or_default(path: str | Path | None) -> StorebenchConfig:
    """Load *path* when given, otherwise return the default configuration."""
    if path is None:
        return StorebenchConfig()
    return load_config(path)


def save_config(config: StorebenchConfig, path: str | Path) -> None:
    """Save configuration to YAML file."""
    path = Path(path)
    data = config.model_dump(mode="json", exclude_defaults=False)

    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, indent=2)


def generate_example_config_yaml() -> str:
    """Generate example configuration YAML with comments.

    Every option is shown commented out with its default, so an unedited
    file behaves exactly like having no config at all.
    """
    return """# storebench configuration
# =======================
# Commented-out options show their DEFAULT value; the default stays active
# while commented out.

# Name recorded in logs
name: storebench

## Result log
# output:
#   path: ./storebench-output/results.jsonl
#   append: true                   # false truncates the log on first write
#   buffer_size: 100               # Buffered records that trigger a flush
#   flush_interval_seconds: 5.0    # Background flush period (0 = only on full buffer/close)
#   rotate_max_bytes: 104857600    # `storebench rotate` archives the log past this size

## Per-million row prices used for cost estimates
# pricing:
#   read_per_million: 0.001
#   write_per_million: 1.0

## Storage interceptor
# instrument:
#   track_operations: false        # Keep a per-operation trace
#   max_operations: 1000           # Trace capacity (trimmed to the newest 500)

## Defaults for recorded benchmarks
# recorder:
#   default_database: unknown
#   default_dataset: default
#   default_environment: local     # worker | do | container | local
#   tags: {}
#   print_summary: true
#   git: true                      # Attach git sha/branch

## Run comparison
# compare:
#   threshold_pct: 5.0             # Latency change (%) that counts as significant
"""
