"""
Logging errors, rooted in the harness hierarchy so configuration mistakes in
the ``logging`` section surface like any other ConfigError.
"""

from typing import Any

from ..exceptions import ConfigError


class LogError(ConfigError):
    """Invalid logging configuration."""


class InvalidLogLevelError(LogError):
    """Raised when a level name is neither a standard nor a trace level."""

    def __init__(self, level: Any) -> None:
        self.level = level
        super().__init__(f"invalid log level: {level!r}", level=level)
