"""Configuration loading and validation."""

from .loader import (
    DEFAULT_CONFIG,
    load_config,
    validate_config,
    get_config_value,
    with_defaults,
)

__all__ = ["DEFAULT_CONFIG", "load_config", "validate_config", "get_config_value", "with_defaults"]
