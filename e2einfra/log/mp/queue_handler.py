"""
Multiprocessing-safe queue handler.

Prepares log records so they survive pickling across process boundaries:
tracebacks and exception objects in structured fields are rendered to text
before the record is queued.
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any

from ..logger import EXTRA_ATTR

if TYPE_CHECKING:
    from multiprocessing import Queue as QueueType


class MPQueueHandler(logging.Handler):
    """
    Queue handler used inside worker processes.

    Unlike Python's standard QueueHandler, this handler also converts
    exception objects passed as ``extra={"exception": e}`` to strings.
    """

    def __init__(self, queue: QueueType[logging.LogRecord | None]) -> None:
        """
        Initialize the queue handler.

        Args:
            queue: multiprocessing.Queue to send records to
        """
        super().__init__()
        self.queue = queue

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(self._prepare(record))
        except Exception:
            self.handleError(record)

    def _prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Prepare a record for cross-process pickling."""
        if record.exc_info:
            record.exc_text = self._format_exc_info(record.exc_info)
            record.exc_info = None

        self._prepare_extra(record)

        # Format args into message (args might contain unpicklable objects)
        try:
            record.msg = record.getMessage()
        except Exception:
            # Keep the raw message when args don't match it
            pass
        record.args = None

        return record

    def _prepare_extra(self, record: logging.LogRecord) -> None:
        extra = getattr(record, EXTRA_ATTR, None)
        if not extra:
            return

        prepared = extra.copy()
        for key, value in extra.items():
            if isinstance(value, BaseException):
                prepared[key] = f"{value.__class__.__name__}: {value}"
        setattr(record, EXTRA_ATTR, prepared)
        if "exception" in extra:
            setattr(record, "exception", prepared["exception"])

    def _format_exc_info(
        self, exc_info: tuple[type, BaseException, Any] | tuple[None, None, None]
    ) -> str:
        if exc_info[0] is None:
            return ""
        return "".join(traceback.format_exception(*exc_info))
