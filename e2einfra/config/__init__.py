"""
Configuration management package.

This module provides:
- Config class for loading YAML configuration files with E2E_* overrides
- Pydantic schemas validating the suite configuration
"""

from .config import Config
from .constants import ENV_NESTING_SEPARATOR, ENV_PREFIX, MAX_CONFIG_SIZE_BYTES
from .schemas import (
    DiagnosticsConfig,
    LoggingConfig,
    RetryConfig,
    SuiteConfig,
    load_suite_config,
    validate_config,
)

__all__ = [
    "Config",
    # Constants
    "ENV_PREFIX",
    "ENV_NESTING_SEPARATOR",
    "MAX_CONFIG_SIZE_BYTES",
    # Validation
    "SuiteConfig",
    "RetryConfig",
    "DiagnosticsConfig",
    "LoggingConfig",
    "validate_config",
    "load_suite_config",
]
