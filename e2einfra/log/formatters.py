"""
Log formatter rendering structured fields after the message.

Output format (plain):
    [12:34:56,789] [I] space created              [correlation_id:ab12..] [4242] [/suite/resources]
"""

import collections
import logging
import os
import re
from typing import Any

from .colors import ColorManager
from .config import LogConfig
from .constants import LogConstants
from .logger import EXTRA_ATTR

_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def _visual_len(text: str) -> int:
    """Calculate visual width of text, excluding ANSI escape codes."""
    if "\x1b" not in text:
        return len(text)
    return len(_ANSI_PATTERN.sub("", text))


def _ordered_items(extra: dict[str, Any]) -> list[tuple[str, Any]]:
    keys = list(extra.keys())
    if not isinstance(extra, collections.OrderedDict):
        keys = sorted(keys)
    return [(k, extra[k]) for k in keys]


def _render_value(value: Any) -> str:
    if isinstance(value, BaseException):
        return f"{value.__class__.__name__}: {value}"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class PreFormatter(logging.Formatter):
    """Formatter adding optional sub-millisecond precision to timestamps."""

    def __init__(self, fmt: str, micros: bool) -> None:
        self._micros = micros
        super().__init__(fmt)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        s = super().formatTime(record)
        if self._micros:
            micros = int((record.created % 1) * 1000000) % 1000
            s += f".{micros:03d}"
        return s


class LogFormatter(logging.Formatter):
    """
    Log formatter with optional colors and structured field rendering.

    Renders each extra field as ``[key:value]`` after the message, padded to
    a fixed rule so fields line up, followed by the process id and logger
    name. Exceptions passed as ``extra={"exception": e}`` are rendered on the
    following line.
    """

    def __init__(self, config: LogConfig):
        """
        Initialize the log formatter.

        Args:
            config: Root logger configuration
        """
        super().__init__()
        self._config = config
        self._pre_formatter = PreFormatter(LogConstants.DEFAULT_FORMAT, config.micros)

    def format(self, record: logging.LogRecord) -> str:
        head = self._pre_formatter.format(record)
        rule = (
            LogConstants.MICRO_RULE_WIDTH
            if self._config.micros
            else LogConstants.DEFAULT_RULE_WIDTH
        )
        pad = " " * max(1, rule - _visual_len(head))

        fields, exception = self._render_fields(record)
        meta = f"[{record.process}] [{record.name}]" + self._render_location(record)

        if self._config.colors:
            line = self._colorize(record, head, pad, fields, meta)
        else:
            line = head + pad + " ".join(fields + [meta])

        if exception is not None:
            line += "\n" + _render_value(exception)
        return line

    def _render_fields(
        self, record: logging.LogRecord
    ) -> tuple[list[str], BaseException | None]:
        extra = getattr(record, EXTRA_ATTR, None)
        if not extra:
            return [], None

        fields = []
        exception = None
        for key, value in _ordered_items(extra):
            if key == "exception" and isinstance(value, BaseException):
                exception = value
                fields.append(f"[{key}:{value.__class__.__name__}]")
            else:
                fields.append(f"[{key}:{_render_value(value)}]")
        return fields, exception

    def _render_location(self, record: logging.LogRecord) -> str:
        if not self._config.location:
            return ""
        path = "./" + os.path.relpath(record.pathname, os.getcwd())
        return f" [{path}:{record.lineno}]"

    def _colorize(
        self,
        record: logging.LogRecord,
        head: str,
        pad: str,
        fields: list[str],
        meta: str,
    ) -> str:
        col = ColorManager.get_color_for_level(record.levelno) or ColorManager.DEFAULT
        bold = ColorManager.create_bold_color(col)
        gray = ColorManager.create_gray_level(9) + "m"

        out = bold + head + ColorManager.RESET + pad
        if fields:
            out += col + "m" + " ".join(fields) + ColorManager.RESET + " "
        return out + gray + meta + ColorManager.RESET
