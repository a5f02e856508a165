"""
Suite lifecycle controller for distributed e2e runs.

The leader performs global setup exactly once, distributes an immutable
state snapshot to the workers, waits for every worker to signal
completion, and then performs global teardown exactly once, even when
workers failed or crashed.

Example Usage:
    coordinator = SuiteCoordinator(load_suite_config("etc/e2e.yaml"), lg)
    coordinator.add_fixture("buildpack", provision_buildpack)
    report = coordinator.run(cases, workers=4)
    report.render()
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..config.schemas import SuiteConfig
from ..diagnostics.hooks import FailureHookRegistry
from ..exceptions import PhaseError, ResourceOperationFailure, SetupFailure
from ..log import LogConfig, Logger, derive_lg
from ..platform.client import PlatformClient
from ..platform.http import load_transport
from ..platform.request import Transport
from ..resources.manager import ResourceLifecycleManager
from ..resources.model import ResourceKind, TrackedResource
from ..state.codec import SharedStateCodec
from ..state.model import SharedSuiteState
from ..time import RetryPolicy, delta_str
from ..tracing.correlation import CorrelationTracer
from .phases import PhaseMachine, SuitePhase
from .pool import WorkerMode, WorkerPool
from .report import RunReport, TeardownIssue, TeardownReport
from .worker import HookSetup, TestCase, build_worker_registry


class Deployer(Protocol):
    """Brings the platform under test up and down (external automation)."""

    def deploy(self, lg: Logger) -> None: ...

    def teardown(self, lg: Logger) -> None: ...


CredentialProvider = Callable[[SuiteConfig, Logger], "str | None"]


@dataclass
class SetupContext:
    """
    Handed to fixture provisioners during global setup.

    Resources created through ``create`` are suite-shared: they are part of
    the distributed state and removed by global teardown.
    """

    config: SuiteConfig
    manager: ResourceLifecycleManager
    organization: TrackedResource
    space: TrackedResource
    lg: Logger
    created: list[TrackedResource] = field(default_factory=list)

    @property
    def client(self) -> PlatformClient:
        return self.manager.client

    def create(
        self,
        kind: ResourceKind,
        parent: TrackedResource | None = None,
        suffix: str | None = None,
        **attributes: Any,
    ) -> TrackedResource:
        resource = self.manager.create(
            kind,
            parent=parent,
            name=self.manager.resource_name(kind, suffix),
            shared=True,
            **attributes,
        )
        self.created.append(resource)
        return resource


FixtureProvisioner = Callable[[SetupContext], Any]


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


class SuiteCoordinator:
    """
    Leader-side controller of one distributed run.

    Phases advance strictly forward (see ``SuitePhase``); operations called
    in the wrong phase raise PhaseError.
    """

    def __init__(
        self,
        config: SuiteConfig,
        lg: Logger,
        transport: Transport | None = None,
        deployer: Deployer | None = None,
        credentials: CredentialProvider | None = None,
        hook_setup: HookSetup | None = None,
        codec: SharedStateCodec | None = None,
        run_id: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            config: Validated suite configuration
            lg: Leader logger
            transport: Transport for platform calls (loaded from config if None)
            deployer: Platform deployment automation (skipped with skip_deploy)
            credentials: Provides the admin token (defaults to config.admin_token)
            hook_setup: Registers failure hooks; run in every worker
            codec: State codec
            run_id: Identifier of this run (random if None)
            sleep: Sleep function used by retries (injectable for tests)
        """
        self.config = config
        self.run_id = run_id or new_run_id()
        self._lg = derive_lg(lg, "suite")
        self._transport = transport
        self._deployer = deployer
        self._credentials = credentials
        self._hook_setup = hook_setup
        self._codec = codec or SharedStateCodec()
        self._sleep = sleep
        self._phases = PhaseMachine(self._lg)
        self._fixtures: list[tuple[str, FixtureProvisioner]] = []
        self._state: SharedSuiteState | None = None
        self._manager: ResourceLifecycleManager | None = None
        self._setup_error: BaseException | None = None
        self._registry: FailureHookRegistry | None = None

        self._lock = threading.Lock()
        self._started: set[str] = set()
        self._finished: dict[str, bool] = {}

    @property
    def phase(self) -> SuitePhase:
        return self._phases.phase

    @property
    def state(self) -> SharedSuiteState | None:
        return self._state

    @property
    def setup_error(self) -> BaseException | None:
        return self._setup_error

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            self._transport = load_transport(self.config.transport)
        return self._transport

    @property
    def workers_finished(self) -> dict[str, bool]:
        """Finished workers and whether each succeeded."""
        with self._lock:
            return dict(self._finished)

    def add_fixture(self, name: str, provisioner: FixtureProvisioner) -> None:
        """
        Register a fixture provisioner run during global setup.

        Raises:
            PhaseError: If global setup already started
        """
        self._phases.require(SuitePhase.IDLE, operation="add_fixture")
        self._fixtures.append((name, provisioner))

    def make_client(self, token: str | None) -> PlatformClient:
        return PlatformClient(
            self.config.api_endpoint,
            token,
            self.transport,
            tracer=CorrelationTracer(self._lg, header=self.config.correlation_header),
            lg=derive_lg(self._lg, "client"),
            timeout=self.config.request_timeout,
        )

    def make_manager(self, client: PlatformClient) -> ResourceLifecycleManager:
        return ResourceLifecycleManager(
            client,
            self.run_id,
            self.config.root_namespace,
            policy=RetryPolicy.from_config(self.config.retry),
            lg=derive_lg(self._lg, "resources"),
            sleep=self._sleep,
        )

    def registry(self) -> FailureHookRegistry:
        """Frozen hook registry for in-process (thread-mode) workers."""
        if self._registry is None:
            client = self._manager.client if self._manager is not None else None
            self._registry = build_worker_registry(
                self.config, self._lg, client, self._hook_setup
            )
        return self._registry

    # Global setup

    def run_global_setup(self) -> SharedSuiteState:
        """
        Deploy, provision credentials and shared resources, run fixture provisioners.

        Runs exactly once per coordinator.

        Raises:
            PhaseError: If setup already ran
            SetupFailure: If any step failed; already created resources were
                removed best-effort and no worker may start
        """
        self._phases.transition(SuitePhase.LEADER_SETUP_RUNNING)
        start = time.monotonic()
        self._lg.info(
            "global setup started",
            extra={"run_id": self.run_id, "skip_deploy": self.config.skip_deploy},
        )

        manager: ResourceLifecycleManager | None = None
        try:
            if self._deployer is not None and not self.config.skip_deploy:
                self._deployer.deploy(self._lg)

            token = self._provision_credentials()
            manager = self.make_manager(self.make_client(token))
            self._manager = manager

            org = manager.create(
                ResourceKind.ORGANIZATION,
                name=manager.resource_name(ResourceKind.ORGANIZATION, "shared"),
                shared=True,
            )
            space = manager.create(
                ResourceKind.SPACE,
                parent=org,
                name=manager.resource_name(ResourceKind.SPACE, "shared"),
                shared=True,
            )

            setup = SetupContext(self.config, manager, org, space, self._lg)
            fixtures: dict[str, Any] = {}
            for name, provisioner in self._fixtures:
                self._lg.debug("provisioning fixture", extra={"fixture": name})
                fixtures[name] = provisioner(setup)

            state = SharedSuiteState(
                run_id=self.run_id,
                api_endpoint=self.config.api_endpoint,
                apps_domain=self.config.apps_domain,
                root_namespace=self.config.root_namespace,
                admin_token=token,
                shared_resources=(org, space, *setup.created),
                fixtures=fixtures,
            )
        except Exception as e:
            self._setup_error = e
            self._lg.error("global setup failed", extra={"exception": e})
            if manager is not None:
                self._abort_setup(manager)
            self._phases.transition(SuitePhase.COMPLETE)
            raise SetupFailure("global setup failed", run_id=self.run_id) from e

        self._state = state
        self._lg.info(
            "global setup done",
            extra={
                "run_id": self.run_id,
                "shared": len(state.shared_resources),
                "after": delta_str(time.monotonic() - start),
            },
        )
        return state

    def _provision_credentials(self) -> str | None:
        if self._credentials is not None:
            return self._credentials(self.config, self._lg)
        return self.config.admin_token

    def _abort_setup(self, manager: ResourceLifecycleManager) -> None:
        for failure in manager.cleanup_many(manager.live):
            self._lg.warning(
                "could not remove resource after failed setup",
                extra={"exception": failure},
            )

    # State distribution

    def distribute_state(self, state: SharedSuiteState | None = None) -> bytes:
        """
        Serialize the state snapshot for the workers.

        The first call after a successful setup moves the suite to
        STATE_DISTRIBUTED.
        """
        state = state or self._state
        if state is None:
            raise PhaseError("no state to distribute", phase=self.phase.value)

        data = self._codec.encode(state)
        if self.phase is SuitePhase.LEADER_SETUP_RUNNING and self._state is not None:
            self._phases.transition(SuitePhase.STATE_DISTRIBUTED)
        return data

    def adopt_state(self, data: bytes) -> SharedSuiteState:
        """Deserialize a state snapshot (worker side)."""
        return self._codec.decode(data)

    # Barrier

    def worker_started(self, worker_id: str) -> None:
        """
        Register a worker.

        Raises:
            PhaseError: If the state was not distributed yet or the barrier
                already released
        """
        with self._lock:
            self._phases.require(
                SuitePhase.STATE_DISTRIBUTED,
                SuitePhase.WORKERS_RUNNING,
                operation="worker_started",
            )
            if self.phase is SuitePhase.STATE_DISTRIBUTED:
                self._phases.transition(SuitePhase.WORKERS_RUNNING)
            self._started.add(worker_id)
        self._lg.debug("worker registered", extra={"worker": worker_id})

    def worker_finished(self, worker_id: str, ok: bool = True) -> None:
        """
        Record a worker's completion; the last one releases the barrier.

        Raises:
            PhaseError: If the worker never started
        """
        with self._lock:
            if worker_id not in self._started:
                raise PhaseError("unknown worker finished", worker=worker_id)
            self._finished[worker_id] = ok
            done = len(self._finished) == len(self._started)
            if done and self.phase is SuitePhase.WORKERS_RUNNING:
                self._phases.transition(SuitePhase.ALL_WORKERS_DONE)

        self._lg.debug("worker finished", extra={"worker": worker_id, "ok": ok})
        if done:
            self._lg.info(
                "all workers done",
                extra={
                    "workers": len(self._finished),
                    "failed": sum(1 for v in self._finished.values() if not v),
                },
            )

    def wait_for_workers(self, timeout: float | None = None) -> bool:
        """Block until every started worker finished; False on timeout."""
        return self._phases.wait_for(SuitePhase.ALL_WORKERS_DONE, timeout)

    # Global teardown

    def run_global_teardown(self, state: SharedSuiteState | None = None) -> TeardownReport:
        """
        Remove shared resources, sweep leaks and tear the deployment down.

        Runs exactly once, after every worker finished. Every step is
        attempted; failures become issues in the returned report.

        Raises:
            PhaseError: If not every worker has finished, or teardown already ran
        """
        self._phases.require(SuitePhase.ALL_WORKERS_DONE, operation="global teardown")
        self._phases.transition(SuitePhase.TEARDOWN_RUNNING)

        state = state or self._state
        start = time.monotonic()
        report = TeardownReport()
        self._lg.info("global teardown started", extra={"run_id": self.run_id})

        if state is not None:
            manager = self._manager or self.make_manager(self.make_client(state.admin_token))
            self._teardown_shared(manager, state, report)
            self._teardown_sweep(manager, state, report)

        if self._deployer is not None and not self.config.skip_deploy:
            try:
                self._deployer.teardown(self._lg)
            except Exception as e:
                self._lg.error("deployer teardown failed", extra={"exception": e})
                report.add(TeardownIssue("deployer", f"{e.__class__.__name__}: {e}"))

        self._phases.transition(SuitePhase.COMPLETE)
        log = self._lg.info if report.ok else self._lg.warning
        log(
            "global teardown done",
            extra={
                "deleted": len(report.deleted),
                "leaked": len(report.leaked),
                "issues": len(report.issues),
                "after": delta_str(time.monotonic() - start),
            },
        )
        return report

    def _teardown_shared(
        self,
        manager: ResourceLifecycleManager,
        state: SharedSuiteState,
        report: TeardownReport,
    ) -> None:
        for resource in reversed(state.shared_resources):
            try:
                manager.cleanup(resource)
                report.deleted.append(resource.describe())
            except ResourceOperationFailure as e:
                self._lg.error(
                    "cannot remove shared resource",
                    extra={"resource": resource.describe(), "exception": e},
                )
                report.add(
                    TeardownIssue(
                        "shared_resources",
                        str(e),
                        resource.describe(),
                        correlation_id=e.correlation_id,
                    )
                )

    def _teardown_sweep(
        self,
        manager: ResourceLifecycleManager,
        state: SharedSuiteState,
        report: TeardownReport,
    ) -> None:
        try:
            result = manager.sweep(
                state.prefix, exclude={r.id for r in state.shared_resources}
            )
        except Exception as e:
            self._lg.error("leak sweep failed", extra={"exception": e})
            report.add(TeardownIssue("leak_sweep", f"{e.__class__.__name__}: {e}"))
            return

        for leaked in result.found:
            report.leaked.append(leaked.describe())
            report.add(
                TeardownIssue(
                    "leak_sweep",
                    "resource leaked by a test",
                    leaked.describe(),
                    leaked=True,
                )
            )
        for failure in result.failures:
            report.add(
                TeardownIssue(
                    "leak_sweep",
                    str(failure),
                    failure.context.get("resource"),
                    leaked=True,
                    correlation_id=failure.correlation_id,
                )
            )

    # Whole run

    def run(
        self,
        cases: Sequence[TestCase],
        workers: int | None = None,
        mode: WorkerMode | None = None,
    ) -> RunReport:
        """
        Drive a complete run: setup, workers, barrier, teardown.

        Args:
            cases: Test cases to distribute
            workers: Worker count (defaults to config.workers)
            mode: "process" or "thread" (defaults to config.worker_mode)

        Returns:
            The run report; a failed setup is reported, not raised
        """
        workers = workers or self.config.workers
        mode = mode or self.config.worker_mode
        report = RunReport(self.run_id)

        try:
            state = self.run_global_setup()
        except SetupFailure as e:
            report.setup_error = f"{e}: {e.__cause__}" if e.__cause__ else str(e)
            report.finished_at = time.time()
            return report

        data = self.distribute_state(state)
        pool = WorkerPool(
            self,
            data,
            self._lg,
            self.config,
            transport=self.transport,
            registry=self.registry() if mode == "thread" else None,
            hook_setup=self._hook_setup,
            log_config=LogConfig.from_config(self.config.logging).to_dict(),
        )
        try:
            result = pool.run(cases, workers, mode)
            report.outcomes = result.outcomes
            report.crashed_workers = result.crashed
        finally:
            self.release_unfinished()
            report.teardown = self.run_global_teardown(state)
            report.finished_at = time.time()
        return report

    def release_unfinished(self) -> None:
        """Count started workers that never reported as finished-failed."""
        with self._lock:
            missing = self._started - set(self._finished)
        for worker_id in sorted(missing):
            self._lg.warning("worker never finished", extra={"worker": worker_id})
            self.worker_finished(worker_id, False)
        if self.phase is SuitePhase.STATE_DISTRIBUTED:
            # No worker ever started
            self._phases.transition(SuitePhase.WORKERS_RUNNING)
            self._phases.transition(SuitePhase.ALL_WORKERS_DONE)
