"""
Worker pool: runs test cases on N workers (spawned processes or threads).

Cases are partitioned round-robin. The pool reports every worker's start
and finish to the coordinator's barrier; a worker that dies without saying
it is done counts as finished-failed, and its unreported cases are recorded
as errors, so global teardown always gets to run.
"""

from __future__ import annotations

import multiprocessing
import queue
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from ..config.schemas import SuiteConfig
from ..diagnostics.hooks import FailureHookRegistry
from ..log import Logger, derive_lg
from ..log.mp import LogQueueListener
from ..platform.http import load_transport
from ..platform.request import Transport
from ..state import codec
from .report import OutcomeStatus, TestOutcome
from .worker import (
    MSG_DONE,
    MSG_OUTCOME,
    MSG_STARTED,
    HookSetup,
    TestCase,
    WorkerSession,
    WorkerSpec,
    run_cases,
    worker_process_main,
)

if TYPE_CHECKING:
    from .coordinator import SuiteCoordinator

MSG_CRASHED = "crashed"

WorkerMode = Literal["process", "thread"]


def partition(cases: Sequence[TestCase], workers: int) -> list[list[TestCase]]:
    """Distribute cases round-robin over ``workers`` lists."""
    parts: list[list[TestCase]] = [[] for _ in range(max(1, workers))]
    for i, case in enumerate(cases):
        parts[i % len(parts)].append(case)
    return parts


@dataclass
class PoolResult:
    outcomes: list[TestOutcome] = field(default_factory=list)
    crashed: list[str] = field(default_factory=list)


class WorkerPool:
    """
    Runs partitions of test cases in parallel and reports to a coordinator.

    Example:
        pool = WorkerPool(coordinator, state_data, lg, config)
        result = pool.run(cases, workers=4, mode="process")
    """

    def __init__(
        self,
        coordinator: SuiteCoordinator,
        state_data: bytes,
        lg: Logger,
        config: SuiteConfig,
        transport: Transport | None = None,
        registry: FailureHookRegistry | None = None,
        hook_setup: HookSetup | None = None,
        log_config: dict[str, Any] | None = None,
        poll_interval: float = 0.5,
        join_timeout: float = 30.0,
    ) -> None:
        """
        Args:
            coordinator: Barrier to report worker start/finish to
            state_data: Encoded shared suite state
            lg: Leader logger
            config: Suite configuration
            transport: Transport for workers (must be picklable in process mode)
            registry: Frozen hook registry shared by thread-mode workers
            hook_setup: Registers hooks in each process-mode worker's registry
            log_config: Serialized LogConfig for process-mode workers
            poll_interval: How often to check for dead workers
            join_timeout: Grace period for worker processes to exit
        """
        self._coordinator = coordinator
        self._state_data = state_data
        self._lg = derive_lg(lg, "pool")
        self._config = config
        self._transport = transport
        self._registry = registry
        self._hook_setup = hook_setup
        self._log_config = log_config or {}
        self._poll_interval = poll_interval
        self._join_timeout = join_timeout
        self._stop = threading.Event()
        self._procs: dict[str, Any] = {}

    def stop(self) -> None:
        """Ask every worker to finish its current case and stop."""
        self._stop.set()
        for proc in self._procs.values():
            if proc.is_alive():
                proc.terminate()

    def run(
        self, cases: Sequence[TestCase], workers: int = 1, mode: WorkerMode = "process"
    ) -> PoolResult:
        """
        Run every case and return the outcomes.

        Raises:
            ValueError: If ``mode`` is unknown
        """
        parts = {f"gw{i}": part for i, part in enumerate(partition(cases, workers))}
        self._lg.info(
            "starting workers",
            extra={"workers": len(parts), "mode": mode, "cases": len(cases)},
        )

        # Register every worker before any can finish, so the barrier cannot
        # release while a worker is still starting.
        for worker_id in parts:
            self._coordinator.worker_started(worker_id)

        if mode == "thread":
            return self._run_threads(parts)
        if mode == "process":
            return self._run_processes(parts)
        raise ValueError(f"unknown worker mode: {mode}")

    # Thread mode

    def _run_threads(self, parts: dict[str, list[TestCase]]) -> PoolResult:
        results: queue.Queue = queue.Queue()
        threads = {
            worker_id: threading.Thread(
                target=self._thread_worker,
                args=(worker_id, part, results),
                name=f"e2e-{worker_id}",
                daemon=True,
            )
            for worker_id, part in parts.items()
        }
        for thread in threads.values():
            thread.start()

        result = self._collect(
            results, parts, alive=lambda w: threads[w].is_alive()
        )
        for thread in threads.values():
            thread.join(self._join_timeout)
        return result

    def _thread_worker(
        self, worker_id: str, cases: list[TestCase], results: queue.Queue
    ) -> None:
        # Always report, so the leader's barrier releases whatever the worker
        # died of
        try:
            session = WorkerSession(
                worker_id,
                self._config,
                codec.decode(self._state_data),
                self._transport_for_thread(),
                self._lg,
                registry=self._registry,
                hook_setup=self._hook_setup,
            )
            results.put((MSG_STARTED, worker_id))
            ok = run_cases(session, cases, results.put, lambda: not self._stop.is_set())
        except BaseException as e:
            self._lg.error("worker failed", extra={"worker": worker_id, "exception": e})
            results.put((MSG_CRASHED, worker_id, f"{e.__class__.__name__}: {e}"))
            return
        results.put((MSG_DONE, worker_id, ok))

    def _transport_for_thread(self) -> Transport:
        if self._transport is not None:
            return self._transport
        return load_transport(self._config.transport)

    # Process mode

    def _run_processes(self, parts: dict[str, list[TestCase]]) -> PoolResult:
        ctx = multiprocessing.get_context("spawn")
        results = ctx.Queue()
        log_queue = ctx.Queue()
        listener = LogQueueListener(log_queue, self._lg)
        listener.start()

        try:
            for worker_id, part in parts.items():
                spec = WorkerSpec(
                    worker_id=worker_id,
                    config=self._config,
                    state_data=self._state_data,
                    cases=tuple(part),
                    log_config=self._log_config,
                    transport=self._transport,
                    hook_setup=self._hook_setup,
                )
                proc = ctx.Process(
                    target=worker_process_main,
                    args=(spec, results, log_queue),
                    name=f"e2e-{worker_id}",
                )
                proc.start()
                self._procs[worker_id] = proc
                self._lg.debug("worker spawned", extra={"worker": worker_id, "pid": proc.pid})

            result = self._collect(
                results, parts, alive=lambda w: self._procs[w].is_alive()
            )
        finally:
            for worker_id, proc in self._procs.items():
                proc.join(self._join_timeout)
                if proc.is_alive():
                    self._lg.warning("killing worker", extra={"worker": worker_id})
                    proc.kill()
                    proc.join()
            listener.stop()
        return result

    # Result collection

    def _collect(
        self,
        results: Any,
        parts: dict[str, list[TestCase]],
        alive: Callable[[str], bool] | None,
    ) -> PoolResult:
        result = PoolResult()
        pending = set(parts)
        reported: dict[str, set[str]] = {w: set() for w in parts}

        try:
            self._collect_loop(results, pending, reported, result, alive)
        except KeyboardInterrupt:
            self._lg.warning("interrupted, stopping workers")
            self.stop()
            self._collect_loop(results, pending, reported, result, alive)

        for worker_id, cases in parts.items():
            reason = "worker crashed" if worker_id in result.crashed else "worker stopped"
            for case in cases:
                if case.name not in reported[worker_id]:
                    result.outcomes.append(
                        TestOutcome(
                            name=case.name,
                            worker_id=worker_id,
                            status=OutcomeStatus.ERROR,
                            message=f"not run: {reason}",
                        )
                    )
        return result

    def _collect_loop(
        self,
        results: Any,
        pending: set[str],
        reported: dict[str, set[str]],
        result: PoolResult,
        alive: Callable[[str], bool] | None,
    ) -> None:
        while pending:
            try:
                msg = results.get(timeout=self._poll_interval)
            except queue.Empty:
                msg = self._check_alive(results, pending, result, alive)
                if msg is None:
                    continue

            kind = msg[0]
            if kind == MSG_STARTED:
                self._lg.debug("worker started", extra={"worker": msg[1]})
            elif kind == MSG_OUTCOME:
                outcome: TestOutcome = msg[1]
                result.outcomes.append(outcome)
                reported[outcome.worker_id].add(outcome.name)
            elif kind == MSG_DONE:
                worker_id, ok = msg[1], msg[2]
                pending.discard(worker_id)
                self._lg.info("worker done", extra={"worker": worker_id, "ok": ok})
                self._coordinator.worker_finished(worker_id, ok)
            elif kind == MSG_CRASHED:
                self._worker_crashed(msg[1], msg[2], pending, result)

    def _check_alive(
        self,
        results: Any,
        pending: set[str],
        result: PoolResult,
        alive: Callable[[str], bool] | None,
    ) -> tuple | None:
        if alive is None:
            return None
        dead = [w for w in sorted(pending) if not alive(w)]
        if not dead:
            return None

        # A worker's last message is queued before it exits, so only an
        # empty queue after the exit was seen proves it never reported.
        try:
            return results.get(timeout=self._poll_interval)
        except queue.Empty:
            for worker_id in dead:
                self._worker_crashed(
                    worker_id, "exited without reporting", pending, result
                )
            return None

    def _worker_crashed(
        self, worker_id: str, reason: str, pending: set[str], result: PoolResult
    ) -> None:
        if worker_id not in pending:
            return
        pending.discard(worker_id)
        result.crashed.append(worker_id)
        exitcode = getattr(self._procs.get(worker_id), "exitcode", None)
        self._lg.error(
            "worker crashed",
            extra={"worker": worker_id, "reason": reason, "exitcode": exitcode},
        )
        self._coordinator.worker_finished(worker_id, False)
