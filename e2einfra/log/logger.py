"""
Logger class for the harness logging system.

Adds TRACE/TRACE2 levels, pre-populated structured fields and handler
sharing between a root logger and its derived "view" loggers.
"""

import collections
import logging
import sys
from typing import Any

from .config import ChildLogConfig, LogConfig
from .constants import LogConstants

ConfigLike = LogConfig | ChildLogConfig

# Record attribute holding the merged structured fields
EXTRA_ATTR = "__harness__extra"


class Logger(logging.Logger):
    """
    Enhanced logger with structured extra fields.

    Extends the standard Python logger with:
    - Custom trace and trace2 methods
    - Pre-populated extra fields merged into every record
    - Handler delegation for derived loggers (see LoggerFactory.derive)
    """

    def __init__(
        self,
        name: str,
        config: ConfigLike | None = None,
        extra: dict[str, Any] | collections.OrderedDict | None = None,
    ):
        """
        Initialize the enhanced logger.

        Args:
            name: Logger name
            config: Logger configuration (LogConfig for root, ChildLogConfig for
                    derived loggers). Defaults to info level.
            extra: Pre-populated extra fields to include in all log records
        """
        if config is None:
            config = LogConfig.from_params("info")

        if config.level is False:
            super().__init__(name, logging.CRITICAL + 1)
            self._logging_disabled = True
        else:
            super().__init__(name, config.level)
            self._logging_disabled = False

        self._config = config
        self._extra = extra or {}
        self._root_logger: Logger | None = None  # Set for derived "view" loggers

        self._original_makeRecord = self.makeRecord
        self.makeRecord = self._makeRecord  # type: ignore[assignment,method-assign]

    @property
    def config(self) -> ConfigLike:
        """Get logger configuration."""
        return self._config

    @property
    def location(self) -> int:
        """Location display depth, read from the root config for derived loggers."""
        if self._root_logger is not None:
            return self._root_logger.location
        return getattr(self._config, "location", 0)

    @property
    def disabled(self) -> bool:
        """Check if logging is disabled."""
        return self._logging_disabled

    @disabled.setter
    def disabled(self, value: bool) -> None:
        self._logging_disabled = value

    def get_level(self) -> int | bool:
        """Get configured log level."""
        return self._config.level

    def setLevel(self, level: int | str) -> None:
        """Set level and clear this logger's cache."""
        super().setLevel(level)
        # Derived loggers may not be reachable from Manager._clear_cache()
        self._cache.clear()  # type: ignore[attr-defined]

    def _merge_extra(
        self, extra: dict[str, Any] | collections.OrderedDict | None
    ) -> dict[str, Any] | collections.OrderedDict:
        """Merge pre-populated extra fields with per-call extra fields."""
        merged: dict[str, Any] | collections.OrderedDict
        if isinstance(self._extra, collections.OrderedDict) or isinstance(
            extra, collections.OrderedDict
        ):
            merged = collections.OrderedDict(self._extra)
        else:
            merged = self._extra.copy()
        if extra:
            merged.update(extra)
        return merged

    def _makeRecord(
        self,
        name: str,
        level: int,
        fn: str,
        lno: int,
        msg: str,
        args: tuple,
        exc_info: Any | None,
        func: str | None = None,
        extra: dict[str, Any] | collections.OrderedDict | None = None,
        sinfo: str | None = None,
    ) -> logging.LogRecord:
        """Create log record, keeping the merged extra fields on the record."""
        merged_extra = self._merge_extra(extra)
        record = self._original_makeRecord(
            name,
            level,
            fn,
            lno,
            msg,
            args,
            exc_info,
            func=func,
            extra=merged_extra,
            sinfo=sinfo,
        )
        setattr(record, EXTRA_ATTR, merged_extra)
        return record

    def trace(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """
        Log a TRACE level message.

        Args:
            msg: Log message
            *args: Message format arguments
            **kwargs: Additional keyword arguments including 'extra' for structured data
        """
        if self._logging_disabled:
            return
        trace_level = LogConstants.CUSTOM_LEVELS["TRACE"]
        if self.isEnabledFor(trace_level):
            self._log(trace_level, msg, args, **kwargs)

    def trace2(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a TRACE2 level message (most verbose level)."""
        if self._logging_disabled:
            return
        trace2_level = LogConstants.CUSTOM_LEVELS["TRACE2"]
        if self.isEnabledFor(trace2_level):
            self._log(trace2_level, msg, args, **kwargs)

    def _log(self, level: int, msg: str, args: tuple, **kwargs: Any) -> None:  # type: ignore[override]
        if self._logging_disabled:
            return

        try:
            super()._log(level, msg, args, **kwargs)
        except (TypeError, ValueError) as e:
            # Format string errors must not take down a test worker
            msg_preview = msg[:80] + "..." if len(msg) > 80 else msg
            sys.stderr.write(
                f"LOG_FORMAT_ERROR [{self.name}]: {e.__class__.__name__}: {e} "
                f"| msg={msg_preview!r} args={args!r}\n"
            )

    def callHandlers(self, record: logging.LogRecord) -> None:
        """
        Pass a record to all relevant handlers.

        Derived loggers delegate to the root logger's handlers so handlers
        added to the root (queue handlers in worker processes, capture
        handlers in tests) apply to every component logger.
        """
        if self._root_logger is not None:
            for handler in self._root_logger.handlers:
                if record.levelno >= handler.level:
                    handler.handle(record)
        else:
            super().callHandlers(record)
