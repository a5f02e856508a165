"""
Configuration classes for the logging system.

LogConfig is immutable and serializable so the leader can hand the same
settings to worker processes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class ChildLogConfig:
    """
    Immutable configuration for derived loggers.

    Derived loggers only control their level; display settings come from
    the root logger's config.
    """

    level: int | bool = logging.INFO


@dataclass(frozen=True)
class LogConfig:
    """
    Immutable configuration for root loggers.
    """

    level: int | bool = logging.INFO  # False disables logging
    location: int = 0
    micros: bool = False
    colors: bool = True

    @staticmethod
    def _resolve_level(level: str | int | bool) -> int | bool:
        """Resolve level parameter to int or False."""
        from .constants import LogConstants
        from .exceptions import InvalidLogLevelError

        if isinstance(level, bool):
            return False if not level else logging.INFO
        elif isinstance(level, str):
            if level.isnumeric():
                return int(level)
            elif level.lower() in LogConstants.LEVEL_NAMES:
                return LogConstants.LEVEL_NAMES[level.lower()]
            else:
                raise InvalidLogLevelError(level)
        return level

    @classmethod
    def from_params(
        cls,
        level: str | int | bool,
        location: bool | int = 0,
        micros: bool = False,
        colors: bool = True,
    ) -> LogConfig:
        """
        Create LogConfig from individual parameters.

        Args:
            level: Log level (string name, numeric value, or False to disable logging)
            location: Location display level (bool or int)
            micros: Whether to show microsecond precision
            colors: Whether to enable colored output
        """
        resolved_location = (
            1 if location is True else (0 if location is False else int(location))
        )
        return cls(
            level=cls._resolve_level(level),
            location=resolved_location,
            micros=micros,
            colors=colors,
        )

    @classmethod
    def from_config(cls, section: Any) -> LogConfig:
        """
        Create LogConfig from a logging config section.

        Accepts a plain dict, a DotDict, or a pydantic ``LoggingConfig``.
        """
        if hasattr(section, "model_dump"):
            section = section.model_dump()
        elif hasattr(section, "to_dict"):
            section = section.to_dict()

        level = section.get("level", "info")
        if level == "false":
            level = False

        return cls.from_params(
            level=level,
            location=section.get("location", 0),
            micros=section.get("micros", False),
            colors=section.get("colors", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for handing to a worker process."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LogConfig:
        """Rebuild a config serialized with to_dict()."""
        return cls(
            level=d.get("level", logging.INFO),
            location=d.get("location", 0),
            micros=d.get("micros", False),
            colors=d.get("colors", True),
        )
