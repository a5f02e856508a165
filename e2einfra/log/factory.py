"""
Factory for creating and configuring harness loggers.
"""

import collections
import logging
import sys
from typing import Any, cast

from .config import ChildLogConfig, LogConfig
from .formatters import LogFormatter
from .logger import Logger


class LoggerFactory:
    """Factory for creating and configuring loggers."""

    @staticmethod
    def create_root(config: LogConfig, logger_class: type[Logger] = Logger) -> Logger:
        """
        Create a root logger with the specified configuration.

        Example:
            >>> config = LogConfig.from_params(level="info", colors=False)
            >>> lg = LoggerFactory.create_root(config)
            >>> lg.info("suite started", extra={"workers": 4})
            [12:34:56,789] [I] suite started        [workers:4] [1234] [/]
        """
        return LoggerFactory.create("/", config, logger_class)

    @staticmethod
    def create(
        name: str,
        config: LogConfig,
        logger_class: type[Logger] = Logger,
        extra: dict[str, Any] | collections.OrderedDict | None = None,
        stream: Any = None,
    ) -> Logger:
        """
        Create a logger writing to stdout (or ``stream``).

        Args:
            name: Logger name
            config: Logger configuration
            logger_class: Logger class to use
            extra: Pre-populated extra fields to include in all log records
            stream: Output stream (defaults to sys.stdout)
        """
        existing = LoggerFactory._check_existing_logger(name)
        if existing:
            return existing

        lg = logger_class(name, config, extra)
        if config.level is not False:
            lg.setLevel(config.level)

        handler = logging.StreamHandler(stream or sys.stdout)
        if config.level is not False:
            handler.setLevel(config.level)
        handler.setFormatter(LogFormatter(config))
        lg.addHandler(handler)
        lg.propagate = False
        lg.parent = logging.root

        logging.root.manager.loggerDict[name] = lg
        lg.trace2(
            "created logger",
            extra={"level": logging.getLevelName(config.level)},
        )
        return lg

    @staticmethod
    def _check_existing_logger(name: str) -> Logger | None:
        existing = logging.root.manager.loggerDict.get(name)
        if isinstance(existing, Logger):
            return existing
        return None

    @staticmethod
    def derive(
        parent: Logger,
        tags: str | list[str],
        extra: dict[str, Any] | None = None,
    ) -> Logger:
        """
        Derive a "view" logger that delegates to root's handlers.

        Examples:
            >>> derived = LoggerFactory.derive(root, "suite")
            >>> derived.name
            '/suite'
            >>> LoggerFactory.derive(root, ["suite", "resources"]).name
            '/suite/resources'

        Args:
            parent: Parent logger instance
            tags: Single tag string or list of tags forming the hierarchy
            extra: Extra fields added to every record of the derived logger.
                   Derived loggers with extra fields are not cached by name.
        """
        if isinstance(tags, str):
            tags = [tags]

        prefix = parent.name if parent.name == "/" else parent.name + "/"
        name = prefix + "/".join(tags)

        if extra is None:
            existing = LoggerFactory._check_existing_logger(name)
            if existing:
                return existing

        root = parent._root_logger if parent._root_logger else parent
        merged = dict(parent._extra)
        merged.update(extra or {})

        lg = parent.__class__(name, ChildLogConfig(level=parent.get_level()), merged)
        if parent.get_level() is not False:
            lg.setLevel(cast(int, parent.get_level()))
        lg._root_logger = root
        lg.parent = parent
        lg.propagate = False

        if extra is None:
            logging.root.manager.loggerDict[name] = lg
        return lg
