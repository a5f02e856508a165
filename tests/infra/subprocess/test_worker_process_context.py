"""
Tests for WorkerProcessContext signal handling.
"""

import signal
import threading

import pytest

from e2einfra.subprocess import WorkerProcessContext


@pytest.mark.unit
class TestWorkerProcessContext:
    def test_running_until_stopped(self, test_logger):
        with WorkerProcessContext(test_logger) as ctx:
            assert ctx.running
            ctx.stop()
            assert not ctx.running
        assert ctx.lg is test_logger

    def test_installs_and_restores_handlers(self, test_logger):
        before = signal.getsignal(signal.SIGTERM)
        with WorkerProcessContext(test_logger) as ctx:
            assert signal.getsignal(signal.SIGTERM) == ctx._handle_stop_signal
        assert signal.getsignal(signal.SIGTERM) == before

    def test_sigterm_stops_taking_work(self, test_logger, log_stream):
        with WorkerProcessContext(test_logger) as ctx:
            signal.raise_signal(signal.SIGTERM)
            assert not ctx.running
        assert "received SIGTERM" in log_stream.getvalue()

    def test_signals_optional(self, test_logger):
        before = signal.getsignal(signal.SIGINT)
        with WorkerProcessContext(test_logger, handle_signals=False):
            assert signal.getsignal(signal.SIGINT) == before

    def test_no_handlers_outside_main_thread(self, test_logger):
        before = signal.getsignal(signal.SIGTERM)
        seen = []

        def worker():
            with WorkerProcessContext(test_logger) as ctx:
                seen.append(signal.getsignal(signal.SIGTERM))
                seen.append(ctx.running)

        t = threading.Thread(target=worker)
        t.start()
        t.join()
        assert seen == [before, True]
