"""Context manager for worker process infrastructure.

Provides signal handling and graceful shutdown for worker processes.
"""

from __future__ import annotations

import signal
import threading
from types import FrameType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..log import Logger


class WorkerProcessContext:
    """
    Context manager for worker process boilerplate.

    A worker stops taking new test cases after SIGTERM or SIGINT; the case
    in progress finishes (and its resource scope is cleaned up) before the
    worker reports done.

    Example:
        with WorkerProcessContext(lg=lg) as ctx:
            for case in cases:
                if not ctx.running:
                    break
                run(case)

    Args:
        lg: Logger instance for this worker
        handle_signals: Whether to install signal handlers (default: True).
            Ignored outside the main thread, where Python cannot install them
            (thread-mode workers).
    """

    def __init__(self, lg: Logger, handle_signals: bool = True) -> None:
        self._lg = lg
        self._handle_signals = handle_signals
        self._running = True
        self._previous: dict[int, Any] = {}

    @property
    def running(self) -> bool:
        """False after SIGTERM or SIGINT was received, or after stop()."""
        return self._running

    @property
    def lg(self) -> Logger:
        return self._lg

    def stop(self) -> None:
        """Stop taking new work."""
        self._running = False

    def __enter__(self) -> WorkerProcessContext:
        if self._handle_signals and threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGTERM, signal.SIGINT):
                self._previous[signum] = signal.signal(signum, self._handle_stop_signal)
        return self

    def __exit__(self, *args: object) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def _handle_stop_signal(self, signum: int, frame: FrameType | None) -> None:
        """Handle SIGTERM/SIGINT by setting running to False."""
        sig_name = signal.Signals(signum).name
        self._lg.warning(f"received {sig_name}, finishing current test case")
        self._running = False
