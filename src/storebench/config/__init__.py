"""storebench configuration module."""

from .loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    generate_example_config_yaml,
    load_config,
    load_config_or_default,
    save_config,
)
from .schema import (
    CompareConfig,
    InstrumentConfig,
    OutputConfig,
    PricingConfig,
    RecorderConfig,
    StorebenchConfig,
)

__all__ = [
    # Config classes
    "StorebenchConfig",
    "OutputConfig",
    "PricingConfig",
    "InstrumentConfig",
    "RecorderConfig",
    "CompareConfig",
    # Loader
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    "generate_example_config_yaml",
    "load_config",
    "load_config_or_default",
    "save_config",
]
