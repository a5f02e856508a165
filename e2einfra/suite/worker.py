"""
Worker side of a distributed run.

A worker adopts the leader's state snapshot once, then runs its share of
test cases. Every case runs under its own correlation context and resource
scope; failures are offered to the failure-hook registry before the case's
resources are removed, so diagnostics see the environment as it failed.
"""

from __future__ import annotations

import time
import traceback
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..config.schemas import SuiteConfig
from ..diagnostics.collectors import register_default_hooks
from ..diagnostics.hooks import (
    ConnectionInfo,
    DispatchOutcome,
    FailureHookRegistry,
    FailureRecord,
    build_registry,
)
from ..exceptions import CleanupFailure
from ..log import LogConfig, Logger, LoggerFactory, derive_lg
from ..log.mp import MPQueueHandler
from ..platform.client import PlatformClient
from ..platform.http import load_transport
from ..platform.request import Transport
from ..resources.manager import ResourceLifecycleManager, ResourceScope
from ..resources.model import TrackedResource
from ..state import codec
from ..state.model import SharedSuiteState
from ..subprocess import WorkerProcessContext
from ..time import RetryPolicy, delta_str
from ..tracing.correlation import CorrelationContext, CorrelationTracer, correlation_scope
from .report import OutcomeStatus, TestOutcome

if TYPE_CHECKING:
    from multiprocessing import Queue as QueueType

# Messages workers send to the leader
MSG_STARTED = "started"
MSG_OUTCOME = "outcome"
MSG_DONE = "done"

HookSetup = Callable[[FailureHookRegistry], None]


@dataclass(frozen=True)
class CaseContext:
    """
    What a test case body receives.

    Attributes:
        state: Shared suite state
        client: Platform client (requests carry the case's correlation id)
        resources: Scope owning every resource the case creates
        correlation: The case's correlation context
        lg: Logger carrying the case's correlation id
    """

    state: SharedSuiteState
    client: PlatformClient
    resources: ResourceScope
    correlation: CorrelationContext
    lg: Logger


@dataclass(frozen=True)
class TestCase:
    """
    A named test body run by a worker.

    In process mode ``fn`` must be importable (module-level) so it can be
    sent to a spawned worker.
    """

    __test__ = False

    name: str
    fn: Callable[[CaseContext], Any]


@dataclass(frozen=True)
class WorkerSpec:
    """Everything a spawned worker process needs; must be picklable."""

    worker_id: str
    config: SuiteConfig
    state_data: bytes
    cases: tuple[TestCase, ...] = ()
    log_config: dict[str, Any] = field(default_factory=dict)
    transport: Transport | None = None
    hook_setup: HookSetup | None = None


def build_worker_registry(
    config: SuiteConfig,
    lg: Logger,
    client: PlatformClient | None = None,
    hook_setup: HookSetup | None = None,
) -> FailureHookRegistry:
    """Registry configured from the diagnostics config, frozen for the run."""
    registry = build_registry(
        lg,
        client=client,
        dispatch=config.diagnostics.dispatch,
        handler_timeout=config.diagnostics.handler_timeout,
    )
    if config.diagnostics.default_hooks:
        register_default_hooks(registry)
    if hook_setup is not None:
        hook_setup(registry)
    registry.freeze()
    return registry


class WorkerSession:
    """
    Runs test cases against an adopted suite state.

    Owns the worker's platform client, resource manager and tracer.
    """

    def __init__(
        self,
        worker_id: str,
        config: SuiteConfig,
        state: SharedSuiteState,
        transport: Transport,
        lg: Logger,
        registry: FailureHookRegistry | None = None,
        hook_setup: HookSetup | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.worker_id = worker_id
        self.state = state
        self._config = config
        self._lg = derive_lg(lg, ["worker", worker_id])
        self.tracer = CorrelationTracer(self._lg, header=config.correlation_header)
        self.client = PlatformClient(
            state.api_endpoint,
            state.admin_token,
            transport,
            tracer=self.tracer,
            lg=derive_lg(self._lg, "client"),
            timeout=config.request_timeout,
        )
        self.manager = ResourceLifecycleManager(
            self.client,
            state.run_id,
            state.root_namespace,
            policy=RetryPolicy.from_config(config.retry),
            lg=derive_lg(self._lg, "resources"),
            sleep=sleep,
        )
        if registry is None:
            registry = build_worker_registry(config, lg, self.client, hook_setup)
        self.registry = registry
        self.connection = ConnectionInfo(
            state.api_endpoint, state.apps_domain, state.admin_token
        )

    def run_case(self, case: TestCase) -> TestOutcome:
        """
        Run one case in its own correlation context and resource scope.

        Never raises for failures of the case itself. KeyboardInterrupt and
        SystemExit propagate once the case's resources are cleaned up.
        """
        correlation = self.tracer.new_context(case.name)
        case_lg = derive_lg(
            self._lg, "case", extra={"correlation_id": correlation.id}
        )
        start = time.monotonic()
        error: BaseException | None = None
        involved: list[TrackedResource] = []
        diagnostics: list[DispatchOutcome] = []

        with correlation_scope(correlation):
            scope = self.manager.scope(correlation)
            case_lg.info("case started", extra={"case": case.name})
            try:
                case.fn(CaseContext(self.state, self.client, scope, correlation, case_lg))
            except BaseException as e:
                # Cleanup below runs on every exit path, interrupts included
                error = e
                involved = scope.resources
                if _is_failure(e):
                    diagnostics += self._diagnose(case, correlation, e, involved)

            failures = scope.close()
            if failures:
                cleanup_error = CleanupFailure(
                    f"{len(failures)} resource(s) could not be removed",
                    failures,
                    correlation_id=correlation.id,
                )
                diagnostics += self._diagnose(
                    case,
                    correlation,
                    cleanup_error,
                    [f.resource for f in failures if isinstance(f.resource, TrackedResource)],
                )
                if error is None or not (_is_failure(error) or _is_interrupt(error)):
                    error = cleanup_error
                else:
                    error.add_note(str(cleanup_error))
                    for note in getattr(cleanup_error, "__notes__", []):
                        error.add_note(note)

        if _is_interrupt(error):
            case_lg.warning(
                "case interrupted",
                extra={"case": case.name, "exception": error.__class__.__name__},
            )
            raise error

        duration = time.monotonic() - start
        outcome = TestOutcome(
            name=case.name,
            worker_id=self.worker_id,
            status=_status_of(error),
            correlation_id=correlation.id,
            duration=duration,
            message=_summary(error),
            resources=tuple(r.describe() for r in involved),
            diagnostics=tuple(f"{d.hook}:{d.status.value}" for d in diagnostics),
        )

        fields = {
            "case": case.name,
            "status": outcome.status.value,
            "after": delta_str(duration),
        }
        if not outcome.failed:
            case_lg.info("case finished", extra=fields)
        else:
            case_lg.error("case finished", extra={**fields, "exception": error})
        return outcome

    def _diagnose(
        self,
        case: TestCase,
        correlation: CorrelationContext,
        error: BaseException,
        involved: list[TrackedResource],
    ) -> list[DispatchOutcome]:
        record = FailureRecord(
            message="".join(traceback.format_exception(error)),
            test_id=case.name,
            correlation_id=correlation.id,
            resources=tuple(involved),
            connection=self.connection,
        )
        return self.registry.dispatch(record)


# Test framework outcome exceptions (pytest.fail, pytest.skip, pytest.xfail)
# derive from BaseException and are recognized by class name
_FRAMEWORK_OUTCOMES = {
    "Failed": OutcomeStatus.FAILED,
    "Skipped": OutcomeStatus.SKIPPED,
    "XFailed": OutcomeStatus.SKIPPED,
}


def _is_interrupt(error: BaseException | None) -> bool:
    return isinstance(error, (KeyboardInterrupt, SystemExit))


def _is_failure(error: BaseException) -> bool:
    if _is_interrupt(error):
        return False
    return _status_of(error) in (OutcomeStatus.FAILED, OutcomeStatus.ERROR)


def _status_of(error: BaseException | None) -> OutcomeStatus:
    if error is None:
        return OutcomeStatus.PASSED
    if isinstance(error, AssertionError):
        return OutcomeStatus.FAILED
    if not isinstance(error, Exception):
        return _FRAMEWORK_OUTCOMES.get(type(error).__name__, OutcomeStatus.ERROR)
    return OutcomeStatus.ERROR


def _summary(error: BaseException | None) -> str | None:
    if error is None:
        return None
    text = str(error).strip().splitlines()
    return f"{error.__class__.__name__}: {text[0] if text else ''}".rstrip(": ")


def run_cases(
    session: WorkerSession,
    cases: Iterable[TestCase],
    send: Callable[[tuple], None],
    running: Callable[[], bool] = lambda: True,
) -> bool:
    """
    Run cases in order and report each outcome through ``send``.

    Stops taking new cases once ``running()`` turns false.

    Returns:
        True when every case that ran passed
    """
    ok = True
    for case in cases:
        if not running():
            break
        outcome = session.run_case(case)
        ok = ok and not outcome.failed
        send((MSG_OUTCOME, outcome))
    return ok


def _worker_logger(log_config: dict[str, Any], log_queue: QueueType | None) -> Logger:
    config = LogConfig.from_dict(log_config) if log_config else LogConfig()
    lg = LoggerFactory.create_root(config)
    if log_queue is not None:
        for handler in list(lg.handlers):
            lg.removeHandler(handler)
        lg.addHandler(MPQueueHandler(log_queue))
    return lg


def worker_process_main(
    spec: WorkerSpec, results: QueueType, log_queue: QueueType | None = None
) -> None:
    """
    Entry point of a spawned worker process.

    Sends (MSG_STARTED, id), one (MSG_OUTCOME, outcome) per case and finally
    (MSG_DONE, id, ok). A process that dies without MSG_DONE is treated by
    the leader as finished-failed.
    """
    lg = _worker_logger(spec.log_config, log_queue)
    state = codec.decode(spec.state_data)
    transport = spec.transport or load_transport(spec.config.transport)

    with WorkerProcessContext(lg) as proc:
        session = WorkerSession(
            spec.worker_id,
            spec.config,
            state,
            transport,
            lg,
            hook_setup=spec.hook_setup,
        )
        results.put((MSG_STARTED, spec.worker_id))
        ok = run_cases(session, spec.cases, results.put, lambda: proc.running)
        results.put((MSG_DONE, spec.worker_id, ok))
