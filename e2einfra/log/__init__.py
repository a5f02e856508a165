"""
Logging for the e2e harness.

Extends Python's standard logging with:
- Custom TRACE and TRACE2 log levels for detailed debugging
- Colored console output with ANSI escape sequences
- Structured logging with extra fields rendered as [key:value]
- Derived "view" loggers per component sharing the root's handlers
- Queue-based forwarding of worker process records to the leader (log.mp)

Log Level Control:
- Use standard levels: debug, info, warning, error, critical
- Use custom levels: trace, trace2
- Disable logging completely: False or "false"
"""

import logging
from typing import Any

from .config import ChildLogConfig, LogConfig
from .constants import LogConstants
from .exceptions import InvalidLogLevelError, LogError
from .factory import LoggerFactory
from .formatters import LogFormatter
from .logger import Logger

logging.TRACE = LogConstants.CUSTOM_LEVELS["TRACE"]  # type: ignore[attr-defined]
logging.addLevelName(logging.TRACE, "TRACE")  # type: ignore[attr-defined]

logging.TRACE2 = LogConstants.CUSTOM_LEVELS["TRACE2"]  # type: ignore[attr-defined]
logging.addLevelName(logging.TRACE2, "TRACE2")  # type: ignore[attr-defined]

LogConstants.LEVEL_NAMES.update(
    {
        "trace": logging.TRACE,  # type: ignore[attr-defined]
        "trace2": logging.TRACE2,  # type: ignore[attr-defined]
    }
)

from .colors import ColorManager  # noqa: E402

ColorManager.add_custom_level_colors()


def resolve_level(s: str | int | bool) -> int | bool:
    """
    Resolve log level from string, numeric value, or boolean.

    Raises:
        InvalidLogLevelError: If the log level is invalid
    """
    if isinstance(s, bool):
        return s

    if str(s).isnumeric():
        return int(s)

    s_str = str(s).lower()
    if s_str in LogConstants.LEVEL_NAMES:
        return LogConstants.LEVEL_NAMES[s_str]

    raise InvalidLogLevelError(s)


def create_root_lg(
    level: str | int | bool = "info",
    location: bool | int = False,
    micros: bool = False,
    colors: bool = True,
) -> Logger:
    """
    Create a root logger with the specified configuration.

    Example:
        >>> lg = create_root_lg("debug", colors=False)
    """
    config = LogConfig.from_params(level, location, micros, colors)
    return LoggerFactory.create_root(config)


def derive_lg(
    lg: Logger, tags: str | list[str], extra: dict[str, Any] | None = None
) -> Logger:
    """
    Derive a component logger from a parent logger.

    Example:
        >>> root = create_root_lg("info")
        >>> lg = derive_lg(root, ["suite", "resources"])
    """
    return LoggerFactory.derive(lg, tags, extra)


__all__ = [
    "Logger",
    "LoggerFactory",
    "LogConfig",
    "ChildLogConfig",
    "LogConstants",
    "LogFormatter",
    "LogError",
    "InvalidLogLevelError",
    "resolve_level",
    "create_root_lg",
    "derive_lg",
]
