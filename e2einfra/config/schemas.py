"""
Configuration schemas using Pydantic for validation.

The suite config is intentionally permissive: only required values and basic
types are checked. Unknown keys are kept so conftest code can read its own
sections from the same file.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import ConfigError
from .config import Config


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str | bool = Field(default="info", description="Global log level")
    colors: bool = Field(default=True, description="Colored console output")
    location: bool | int = Field(default=0, description="Show file locations in logs")
    micros: bool = Field(default=False, description="Show microsecond timestamps")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: Any) -> Any:
        """Validate log level is a recognized level."""
        valid_levels = [
            "TRACE2",
            "TRACE",
            "DEBUG",
            "INFO",
            "WARNING",
            "ERROR",
            "CRITICAL",
            "FALSE",
        ]
        if isinstance(v, str) and not v.isnumeric() and v.upper() not in valid_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(valid_levels)}"
            )
        return v

    model_config = ConfigDict(extra="allow")


class RetryConfig(BaseModel):
    """Retry, backoff and polling limits for platform operations."""

    attempts: int = Field(default=5, ge=1, description="Attempts per operation")
    initial_delay: float = Field(default=0.5, ge=0.0, description="First backoff")
    max_delay: float = Field(default=8.0, ge=0.0, description="Backoff cap")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff growth")
    deadline: float = Field(
        default=120.0, gt=0.0, description="Hard limit per operation in seconds"
    )
    poll_interval: float = Field(
        default=1.0, gt=0.0, description="Interval between async job polls"
    )


class DiagnosticsConfig(BaseModel):
    """Failure-hook dispatch settings."""

    handler_timeout: float = Field(
        default=30.0, gt=0.0, description="Per-handler time budget in seconds"
    )
    dispatch: Literal["all", "first"] = Field(
        default="all", description="Invoke all matching handlers or only the first"
    )
    default_hooks: bool = Field(
        default=True, description="Register the built-in diagnostic collectors"
    )


class SuiteConfig(BaseModel):
    """
    Complete suite configuration schema.

    This validates the structure of the e2e YAML configuration file.
    """

    api_endpoint: str = Field(..., description="Base URL of the platform API")
    apps_domain: str = Field(..., description="Domain routes of test apps live under")
    root_namespace: str = Field(
        default="e2e", description="Prefix for every resource the suite creates"
    )
    skip_deploy: bool = Field(
        default=False, description="Test against an already deployed platform"
    )
    admin_token: str | None = Field(
        default=None, repr=False, description="Administrative bearer token"
    )
    workers: int = Field(default=1, ge=1, description="Parallel worker count")
    worker_mode: Literal["process", "thread"] = Field(default="process")
    correlation_header: str = Field(default="X-Correlation-ID")
    request_timeout: float = Field(
        default=30.0, gt=0.0, description="Timeout for a single API request"
    )
    transport: str | None = Field(
        default=None, description="Transport factory as 'module:callable'"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="allow")

    @field_validator("api_endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


def validate_config(config_dict: dict[str, Any]) -> SuiteConfig:
    """
    Validate a configuration dictionary against the schema.

    Raises:
        ConfigError: If configuration is invalid (missing required values or
            wrong basic types); the pydantic error is chained
    """
    try:
        return SuiteConfig(**config_dict)
    except ValidationError as e:
        fields = ",".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigError("invalid suite configuration", fields=fields) from e


def load_suite_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
    enable_env_overrides: bool = True,
) -> SuiteConfig:
    """
    Load, override and validate a suite configuration.

    Args:
        path: YAML file to load (None to start from an empty mapping)
        overrides: Top-level values applied after the file and environment,
            e.g. command line options
        enable_env_overrides: Whether E2E_* environment variables apply

    Example:
        cfg = load_suite_config("etc/e2e.yaml", overrides={"skip_deploy": True})
    """
    config = Config(path, enable_env_overrides=enable_env_overrides)
    data = config.to_dict()
    data.update(overrides or {})
    return validate_config(data)
