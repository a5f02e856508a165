"""
Failure hooks: pattern-matched diagnostic collection on test failure.

A hook is a (matcher, handler) pair. When a test fails, its FailureRecord
is offered to every hook in registration order; handlers of matching hooks
collect diagnostics (resource snapshots, app droplets, ...) while the
failing environment still exists.

Handlers never affect the outcome of the test that failed: errors are
logged, and a handler that outlives its time budget is abandoned with a
"diagnostics incomplete" log line.

Example Usage:
    registry = FailureHookRegistry(lg)

    @registry.on("Droplet not found")
    def droplets(ctx):
        for app in ctx.apps:
            ctx.lg.info("droplets", extra={"droplets": ctx.client.list(...)})

    registry.freeze()
    registry.dispatch(FailureRecord(message=report_text, test_id=nodeid, ...))
"""

from __future__ import annotations

import contextvars
import enum
import re
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import DiagnosticHandlerError, RegistryFrozenError
from ..log import Logger, derive_lg
from ..regex_utils import safe_compile
from ..resources.model import ResourceKind, TrackedResource
from ..time import delta_str

DEFAULT_HANDLER_TIMEOUT = 30.0


@dataclass(frozen=True)
class ConnectionInfo:
    """Read-only platform connection details handed to diagnostic handlers."""

    api_endpoint: str
    apps_domain: str
    token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class FailureRecord:
    """
    A test failure offered to the registry.

    Consumed exactly once: dispatching the same record twice is refused.

    Attributes:
        message: Failure text matchers inspect (assertion message, traceback)
        test_id: Identifier of the failing test
        correlation_id: Correlation id of the failing test
        resources: Resources the test had created when it failed
        connection: Platform connection details
        record_id: Unique id of this record
    """

    message: str
    test_id: str | None = None
    correlation_id: str | None = None
    resources: tuple[TrackedResource, ...] = ()
    connection: ConnectionInfo | None = None
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    _claimed: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "resources", tuple(self.resources))

    def claim(self) -> bool:
        """Mark the record dispatched. False if it already was."""
        return self._claimed.acquire(blocking=False)

    def of_kind(self, kind: ResourceKind) -> list[TrackedResource]:
        return [r for r in self.resources if r.kind is kind]


@dataclass(frozen=True)
class DiagnosticContext:
    """
    Everything a handler gets to work with.

    Attributes:
        record: The failure being diagnosed
        connection: Read-only connection details
        client: Platform client (None when dispatching without one)
        lg: Logger carrying the failure's correlation id on every record
    """

    record: FailureRecord
    connection: ConnectionInfo | None
    client: Any
    lg: Logger

    @property
    def apps(self) -> list[TrackedResource]:
        return self.record.of_kind(ResourceKind.APP)


Predicate = Callable[[FailureRecord], bool]
Matcher = str | re.Pattern | Predicate
Handler = Callable[[DiagnosticContext], Any]


def contains(text: str, ignore_case: bool = False) -> Predicate:
    """Matcher accepting records whose message contains ``text``."""
    if ignore_case:
        needle = text.lower()
        return lambda record: needle in record.message.lower()
    return lambda record: text in record.message


def matches(pattern: str | re.Pattern, flags: int = 0) -> Predicate:
    """
    Matcher accepting records whose message matches ``pattern`` anywhere.

    String patterns are validated against catastrophic backtracking.
    """
    compiled = safe_compile(pattern, flags) if isinstance(pattern, str) else pattern
    return lambda record: compiled.search(record.message) is not None


def any_of(*matchers: Matcher) -> Predicate:
    """Matcher accepting records accepted by any of ``matchers``."""
    predicates = [as_predicate(m) for m in matchers]
    return lambda record: any(p(record) for p in predicates)


def as_predicate(matcher: Matcher) -> Predicate:
    """Normalize a substring, compiled regex or predicate into a predicate."""
    if isinstance(matcher, str):
        return contains(matcher)
    if isinstance(matcher, re.Pattern):
        return matches(matcher)
    if callable(matcher):
        return matcher
    raise TypeError(f"unsupported matcher type: {type(matcher).__name__}")


def _matcher_name(matcher: Matcher, handler: Handler) -> str:
    name = getattr(handler, "__name__", None)
    if name and name != "<lambda>":
        return name
    if isinstance(matcher, str):
        return matcher
    if isinstance(matcher, re.Pattern):
        return matcher.pattern
    return repr(handler)


@dataclass(frozen=True)
class HookEntry:
    """A registered (matcher, handler) pair."""

    name: str
    matcher: Predicate
    handler: Handler
    timeout: float | None = None


class DispatchPolicy(enum.Enum):
    """Which matching hooks a dispatch invokes."""

    ALL_MATCHES = "all"
    FIRST_MATCH = "first"


class HookStatus(enum.Enum):
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    MATCHER_FAILED = "matcher_failed"


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of invoking (or failing to evaluate) one hook."""

    hook: str
    status: HookStatus
    duration: float = 0.0
    error: DiagnosticHandlerError | None = None

    @property
    def ok(self) -> bool:
        return self.status is HookStatus.OK


class FailureHookRegistry:
    """
    Ordered registry of failure hooks.

    Hooks are registered during suite initialization; ``freeze()`` makes the
    registry read-only once the run starts.
    """

    def __init__(
        self,
        lg: Logger,
        client: Any = None,
        policy: DispatchPolicy = DispatchPolicy.ALL_MATCHES,
        default_timeout: float = DEFAULT_HANDLER_TIMEOUT,
    ) -> None:
        """
        Args:
            lg: Logger (handlers get a derived logger)
            client: Platform client handed to handlers
            policy: Invoke every matching hook, or only the first
            default_timeout: Time budget of handlers registered without one
        """
        self._lg = derive_lg(lg, "diagnostics")
        self._client = client
        self._policy = policy
        self._default_timeout = default_timeout
        self._entries: list[HookEntry] = []
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def entries(self) -> list[HookEntry]:
        return list(self._entries)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def policy(self) -> DispatchPolicy:
        return self._policy

    def bind_client(self, client: Any) -> None:
        """Set the platform client handed to handlers."""
        self._client = client

    def register(
        self,
        matcher: Matcher,
        handler: Handler,
        name: str | None = None,
        timeout: float | None = None,
    ) -> HookEntry:
        """
        Append a hook.

        Args:
            matcher: Substring, compiled regex, or predicate over FailureRecord
            handler: Callable receiving a DiagnosticContext
            name: Hook name for logs (defaults to the handler's name)
            timeout: Time budget for the handler (defaults to the registry's)

        Raises:
            RegistryFrozenError: If the registry was frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    "cannot register hooks after the run started",
                    hook=name or _matcher_name(matcher, handler),
                )
            entry = HookEntry(
                name=name or _matcher_name(matcher, handler),
                matcher=as_predicate(matcher),
                handler=handler,
                timeout=timeout,
            )
            self._entries.append(entry)

        self._lg.debug("registered failure hook", extra={"hook": entry.name})
        return entry

    def on(
        self, matcher: Matcher, name: str | None = None, timeout: float | None = None
    ) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(handler: Handler) -> Handler:
            self.register(matcher, handler, name=name, timeout=timeout)
            return handler

        return decorator

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    def dispatch(self, record: FailureRecord) -> list[DispatchOutcome]:
        """
        Offer a failure record to the hooks in registration order.

        Never raises for handler or matcher errors.

        Returns:
            One outcome per hook invoked (or whose matcher failed); empty when
            nothing matched or the record was already dispatched
        """
        if not record.claim():
            self._lg.warning(
                "failure record already dispatched",
                extra={
                    "record": record.record_id,
                    "correlation_id": record.correlation_id,
                },
            )
            return []
        with self._lock:
            entries = list(self._entries)

        outcomes: list[DispatchOutcome] = []
        for entry in entries:
            try:
                matched = bool(entry.matcher(record))
            except Exception as e:
                error = DiagnosticHandlerError(
                    "failure hook matcher raised",
                    hook=entry.name,
                    correlation_id=record.correlation_id,
                )
                error.__cause__ = e
                self._lg.error(
                    "matcher failed",
                    extra={
                        "hook": entry.name,
                        "correlation_id": record.correlation_id,
                        "exception": e,
                    },
                )
                outcomes.append(
                    DispatchOutcome(entry.name, HookStatus.MATCHER_FAILED, error=error)
                )
                continue

            if not matched:
                continue

            outcomes.append(self._invoke(entry, record))
            if self._policy is DispatchPolicy.FIRST_MATCH:
                break

        if not outcomes:
            self._lg.debug(
                "no failure hook matched",
                extra={"test": record.test_id, "correlation_id": record.correlation_id},
            )
        return outcomes

    def _invoke(self, entry: HookEntry, record: FailureRecord) -> DispatchOutcome:
        timeout = entry.timeout if entry.timeout is not None else self._default_timeout
        hook_lg = derive_lg(
            self._lg,
            entry.name.replace("/", "_"),
            extra={"correlation_id": record.correlation_id},
        )
        ctx = DiagnosticContext(
            record=record, connection=record.connection, client=self._client, lg=hook_lg
        )

        raised: list[BaseException] = []

        def run() -> None:
            try:
                entry.handler(ctx)
            except Exception as e:
                raised.append(e)

        self._lg.info(
            "collecting diagnostics",
            extra={
                "hook": entry.name,
                "test": record.test_id,
                "correlation_id": record.correlation_id,
            },
        )
        start = time.monotonic()
        # Handlers see the failing test's correlation context
        thread = threading.Thread(
            target=contextvars.copy_context().run,
            args=(run,),
            name=f"diag-{entry.name}",
            daemon=True,
        )
        thread.start()
        thread.join(timeout)
        duration = time.monotonic() - start

        if thread.is_alive():
            error = DiagnosticHandlerError(
                "diagnostics incomplete",
                hook=entry.name,
                timeout=timeout,
                correlation_id=record.correlation_id,
            )
            self._lg.warning(
                "diagnostics incomplete",
                extra={
                    "hook": entry.name,
                    "after": delta_str(duration),
                    "correlation_id": record.correlation_id,
                },
            )
            return DispatchOutcome(entry.name, HookStatus.TIMED_OUT, duration, error)

        if raised:
            error = DiagnosticHandlerError(
                "failure hook handler raised",
                hook=entry.name,
                correlation_id=record.correlation_id,
            )
            error.__cause__ = raised[0]
            self._lg.error(
                "diagnostic handler failed",
                extra={
                    "hook": entry.name,
                    "correlation_id": record.correlation_id,
                    "exception": raised[0],
                },
            )
            return DispatchOutcome(entry.name, HookStatus.FAILED, duration, error)

        self._lg.debug(
            "diagnostics collected",
            extra={"hook": entry.name, "after": delta_str(duration)},
        )
        return DispatchOutcome(entry.name, HookStatus.OK, duration)


def build_registry(
    lg: Logger,
    client: Any = None,
    dispatch: str = "all",
    handler_timeout: float = DEFAULT_HANDLER_TIMEOUT,
    hooks: Iterable[tuple[Matcher, Handler]] = (),
) -> FailureHookRegistry:
    """Create a registry from diagnostics config values and (matcher, handler) pairs."""
    registry = FailureHookRegistry(
        lg,
        client=client,
        policy=DispatchPolicy(dispatch),
        default_timeout=handler_timeout,
    )
    for matcher, handler in hooks:
        registry.register(matcher, handler)
    return registry
