"""
pytest integration for distributed e2e runs.

The controller process is the leader: it runs global setup in
``pytest_configure``, hands the encoded state to pytest-xdist workers through
``workerinput``, counts workers in and out, and runs global teardown in
``pytest_unconfigure``. Without xdist the controller is also the only
worker ("main").

The plugin stays inert unless ``--e2e-config`` is given.

Example Usage:
    pytest --e2e-config etc/e2e.yaml -n 4

    def test_push(resources, e2e_state):
        space = resources.create(ResourceKind.SPACE, parent=e2e_state.organization)
        ...
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from . import hookspecs
from .config.schemas import SuiteConfig, load_suite_config
from .diagnostics.hooks import FailureHookRegistry, FailureRecord
from .exceptions import CleanupFailure, HarnessError, SetupFailure
from .log import LogConfig, Logger, LoggerFactory
from .platform.client import PlatformClient
from .platform.http import load_transport
from .platform.request import Transport
from .resources.manager import ResourceScope
from .resources.model import TrackedResource
from .state import codec
from .state.model import SharedSuiteState
from .suite.coordinator import SuiteCoordinator
from .suite.phases import SuitePhase
from .suite.worker import WorkerSession
from .tracing.correlation import CorrelationContext, correlation_scope

STATE_KEY = "e2e_state"
LOCAL_WORKER = "main"

plugin_key = pytest.StashKey["E2EPlugin"]()
correlation_key = pytest.StashKey[CorrelationContext]()
scope_key = pytest.StashKey[ResourceScope]()


def _is_xdist_worker(config: pytest.Config) -> bool:
    return hasattr(config, "workerinput")


def _is_xdist_controller(config: pytest.Config) -> bool:
    return not _is_xdist_worker(config) and getattr(config.option, "dist", "no") != "no"


class E2EPlugin:
    """Harness state of one pytest process, kept in ``config.stash``."""

    def __init__(self, config: pytest.Config, suite: SuiteConfig, lg: Logger) -> None:
        self.config = config
        self.suite = suite
        self.lg = lg
        self.coordinator: SuiteCoordinator | None = None
        self.state_data: str | None = None
        self.session: WorkerSession | None = None

    def register_hooks(self, registry: FailureHookRegistry) -> None:
        self.config.hook.pytest_e2e_register_hooks(registry=registry)

    # Leader

    def start_leader(self) -> None:
        """
        Run global setup; exits pytest if it fails so no test ever runs.
        """
        coordinator = SuiteCoordinator(
            self.suite,
            self.lg,
            deployer=self.config.hook.pytest_e2e_deployer(suite_config=self.suite),
            hook_setup=self.register_hooks,
        )
        self.config.hook.pytest_e2e_setup(coordinator=coordinator)
        self.coordinator = coordinator

        try:
            state = coordinator.run_global_setup()
        except SetupFailure as e:
            pytest.exit(
                f"e2e global setup failed: {e.__cause__ or e}",
                returncode=pytest.ExitCode.INTERNAL_ERROR,
            )
        self.state_data = coordinator.distribute_state(state).decode()

        if not _is_xdist_controller(self.config):
            coordinator.worker_started(LOCAL_WORKER)
            self.start_worker(LOCAL_WORKER, state, coordinator.transport)

    def finish_local(self, ok: bool) -> None:
        coordinator = self.coordinator
        if coordinator is None or self.session is None:
            return
        if LOCAL_WORKER not in coordinator.workers_finished:
            coordinator.worker_finished(LOCAL_WORKER, ok)

    def finish_leader(self) -> None:
        coordinator = self.coordinator
        if coordinator is None or coordinator.phase is SuitePhase.COMPLETE:
            return
        coordinator.release_unfinished()
        report = coordinator.run_global_teardown()
        for issue in report.issues:
            self.lg.warning("teardown issue", extra={"issue": str(issue)})

    # Worker

    def start_worker(
        self, worker_id: str, state: SharedSuiteState, transport: Transport
    ) -> None:
        self.session = WorkerSession(
            worker_id,
            self.suite,
            state,
            transport,
            self.lg,
            hook_setup=self.register_hooks,
        )

    def diagnose(self, item: pytest.Item, call: pytest.CallInfo, report: pytest.TestReport) -> None:
        """
        Offer a failed test report to the failure hooks.

        Raises:
            HarnessError: If this process never started a worker session
        """
        if self.session is None:
            raise HarnessError("no worker session to diagnose with", test=item.nodeid)
        correlation = item.stash.get(correlation_key, None)
        scope = item.stash.get(scope_key, None)

        involved: list[TrackedResource] = scope.resources if scope is not None else []
        error = call.excinfo.value if call.excinfo is not None else None
        if isinstance(error, CleanupFailure):
            involved = [
                f.resource for f in error.failures if isinstance(f.resource, TrackedResource)
            ]

        record = FailureRecord(
            message=report.longreprtext,
            test_id=item.nodeid,
            correlation_id=correlation.id if correlation is not None else None,
            resources=tuple(involved),
            connection=self.session.connection,
        )
        outcomes = self.session.registry.dispatch(record)
        if outcomes:
            report.sections.append(
                (
                    "e2e diagnostics",
                    "\n".join(f"{o.hook}: {o.status.value}" for o in outcomes),
                )
            )


def _plugin(config: pytest.Config) -> E2EPlugin | None:
    return config.stash.get(plugin_key, None)


def _session(config: pytest.Config) -> WorkerSession:
    plugin = _plugin(config)
    if plugin is None or plugin.session is None:
        pytest.skip("e2e harness not enabled (use --e2e-config)")
    return plugin.session


# Hooks


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("e2einfra", "distributed e2e harness")
    group.addoption(
        "--e2e-config",
        action="store",
        default=None,
        metavar="PATH",
        help="suite configuration file; enables the e2e harness",
    )
    group.addoption(
        "--e2e-skip-deploy",
        action="store_true",
        default=False,
        help="test against an already deployed platform",
    )


def pytest_addhooks(pluginmanager: pytest.PytestPluginManager) -> None:
    pluginmanager.add_hookspecs(hookspecs)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "e2e: test runs against the platform under test"
    )
    path = config.getoption("e2e_config")
    if not path:
        return

    overrides = {"skip_deploy": True} if config.getoption("e2e_skip_deploy") else None
    suite = load_suite_config(path, overrides=overrides)
    lg = LoggerFactory.create_root(LogConfig.from_config(suite.logging))
    plugin = E2EPlugin(config, suite, lg)
    config.stash[plugin_key] = plugin

    if not _is_xdist_worker(config):
        plugin.start_leader()
        return

    data = config.workerinput.get(STATE_KEY)  # type: ignore[attr-defined]
    if data is None:
        lg.warning("no suite state from the leader, e2e fixtures disabled")
        return
    plugin.start_worker(
        config.workerinput["workerid"],  # type: ignore[attr-defined]
        codec.decode(data),
        load_transport(suite.transport),
    )


@pytest.hookimpl(optionalhook=True)
def pytest_configure_node(node: Any) -> None:
    """xdist: hand the state to a worker and count it in."""
    plugin = _plugin(node.config)
    if plugin is None or plugin.coordinator is None:
        return
    node.workerinput[STATE_KEY] = plugin.state_data
    plugin.coordinator.worker_started(node.gateway.id)


@pytest.hookimpl(optionalhook=True)
def pytest_testnodedown(node: Any, error: Any) -> None:
    """xdist: count a worker out; a crashed worker counts as failed."""
    plugin = _plugin(node.config)
    if plugin is None or plugin.coordinator is None:
        return
    plugin.coordinator.worker_finished(node.gateway.id, ok=error is None)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    plugin = _plugin(session.config)
    if plugin is not None:
        plugin.finish_local(exitstatus == pytest.ExitCode.OK)


def pytest_unconfigure(config: pytest.Config) -> None:
    plugin = _plugin(config)
    if plugin is None:
        return
    plugin.finish_local(False)
    plugin.finish_leader()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    outcome = yield
    report = outcome.get_result()
    if not report.failed:
        return
    plugin = _plugin(item.config)
    if plugin is not None and plugin.session is not None:
        plugin.diagnose(item, call, report)


# Fixtures


@pytest.fixture(scope="session")
def e2e_state(pytestconfig: pytest.Config) -> SharedSuiteState:
    """Suite state adopted from the leader."""
    return _session(pytestconfig).state


@pytest.fixture(scope="session")
def e2e_client(pytestconfig: pytest.Config) -> PlatformClient:
    """Platform client; requests carry the current test's correlation id."""
    return _session(pytestconfig).client


@pytest.fixture
def correlation(request: pytest.FixtureRequest) -> Iterator[CorrelationContext]:
    """Fresh correlation context, active for the whole test."""
    session = _session(request.config)
    ctx = session.tracer.new_context(request.node.nodeid)
    request.node.stash[correlation_key] = ctx
    with correlation_scope(ctx):
        yield ctx


@pytest.fixture
def resources(
    request: pytest.FixtureRequest, correlation: CorrelationContext
) -> Iterator[ResourceScope]:
    """
    Resource scope of the test.

    Everything created through it is removed newest first after the test;
    removal failures error the test in its teardown phase.
    """
    session = _session(request.config)
    scope = session.manager.scope(correlation)
    request.node.stash[scope_key] = scope
    yield scope

    failures = scope.close()
    if failures:
        raise CleanupFailure(
            f"{len(failures)} resource(s) could not be removed",
            failures,
            correlation_id=correlation.id,
        )
