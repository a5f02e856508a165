"""
Queue listener replaying worker log records in the leader process.
"""

from __future__ import annotations

import logging
import queue
import sys
import threading
import traceback
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from multiprocessing import Queue as QueueType

    from ..logger import Logger


class LogQueueListener:
    """
    Receives log records from worker processes and dispatches to handlers.

    Runs a daemon thread reading from a multiprocessing.Queue and passing
    records to the given logger's handlers (the root's handlers for derived
    loggers).
    """

    def __init__(
        self,
        log_queue: QueueType[logging.LogRecord | None],
        logger: Logger,
        respect_handler_level: bool = True,
    ) -> None:
        """
        Initialize the queue listener.

        Args:
            log_queue: multiprocessing.Queue to receive records from
            logger: Logger whose handlers will process the records
            respect_handler_level: If True, only dispatch to handlers whose
                                   level is <= record level
        """
        self._queue = log_queue
        self._logger = logger
        self._respect_handler_level = respect_handler_level
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        """Start the listener thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._listen, name="log-queue-listener", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the listener thread after draining queued records.

        Args:
            timeout: Maximum seconds to wait for thread to finish
        """
        try:
            self._queue.put_nowait(None)
        except Exception:
            self._stop_event.set()

        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._stop_event.set()

    def _listen(self) -> None:
        while not self._stop_event.is_set():
            try:
                record = self._queue.get(timeout=0.5)
                if record is None:
                    break
                self._handle_record(record)
            except queue.Empty:
                continue
            except (EOFError, OSError):
                # Queue torn down underneath us
                break
            except Exception:
                sys.stderr.write("LogQueueListener: error handling record:\n")
                traceback.print_exc(file=sys.stderr)

    def _handle_record(self, record: logging.LogRecord) -> None:
        # Records were already level-filtered in the worker
        for handler in self._get_handlers():
            if self._respect_handler_level and record.levelno < handler.level:
                continue
            try:
                handler.handle(record)
            except Exception:
                handler.handleError(record)

    def _get_handlers(self) -> list[logging.Handler]:
        root = getattr(self._logger, "_root_logger", None)
        if root is not None:
            return list(root.handlers)
        return list(self._logger.handlers)

    @property
    def is_alive(self) -> bool:
        """Check if the listener thread is running."""
        return self._thread is not None and self._thread.is_alive()
