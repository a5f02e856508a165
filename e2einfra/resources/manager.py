"""
Creation and guaranteed cleanup of ephemeral platform resources.

Every resource the harness creates is registered before ``create`` returns,
carries the run's name prefix, and is removed either by the ResourceScope it
was created in (reverse creation order) or by the leader's teardown.
Deletion is idempotent: a resource that is already gone counts as removed.

Example Usage:
    manager = ResourceLifecycleManager(client, state.run_id, lg=lg)
    with manager.scope(ctx) as scope:
        space = scope.create(ResourceKind.SPACE, parent=state.organization)
        app = scope.create(ResourceKind.APP, parent=space)
        ...
    # app, then space, removed here even if the block raised
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from ..exceptions import CleanupFailure, ResourceOperationFailure, TimeoutFailure
from ..platform.client import JOB_FAILED, JOB_TERMINAL_STATES, PlatformClient, job_error
from ..platform.exceptions import (
    NotFoundError,
    PlatformError,
    TransientPlatformError,
    is_transient,
)
from ..time import (
    Deadline,
    PollTimeout,
    RetryDeadlineExceeded,
    RetryError,
    RetryPolicy,
    delta_str,
    poll_until,
    retry_call,
)
from ..tracing.correlation import CorrelationContext, correlation_scope, current_context
from .model import ResourceKind, TrackedResource

T = TypeVar("T")

# Deletion order for the leak sweep: children before parents
SWEEP_ORDER = (
    ResourceKind.APP,
    ResourceKind.SERVICE_ACCOUNT,
    ResourceKind.SPACE,
    ResourceKind.ORGANIZATION,
)


def _correlation_id() -> str | None:
    ctx = current_context()
    return ctx.id if ctx is not None else None


@dataclass
class SweepResult:
    """Outcome of a leak sweep: leftovers found and the ones that could not be removed."""

    found: list[TrackedResource] = field(default_factory=list)
    failures: list[ResourceOperationFailure] = field(default_factory=list)


class ResourceLifecycleManager:
    """
    Creates platform resources and guarantees their cleanup.

    Thread-safe: worker threads of one process may share a manager.
    """

    def __init__(
        self,
        client: PlatformClient,
        run_id: str,
        root_namespace: str = "e2e",
        policy: RetryPolicy | None = None,
        lg: Any = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            client: Platform API client
            run_id: Identifier of the current run (part of every resource name)
            root_namespace: Prefix of every resource name
            policy: Retry, backoff and deadline limits
            lg: Logger
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self._client = client
        self._run_id = run_id
        self._root_namespace = root_namespace
        self._policy = policy or RetryPolicy()
        self._lg = lg
        self._sleep = sleep
        self._clock = clock
        self._live: list[TrackedResource] = []
        self._lock = threading.Lock()

    @property
    def client(self) -> PlatformClient:
        return self._client

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def prefix(self) -> str:
        """Name prefix carried by every resource of this run."""
        return f"{self._root_namespace}-{self._run_id}"

    @property
    def live(self) -> list[TrackedResource]:
        """Resources created and not yet removed, in creation order."""
        with self._lock:
            return list(self._live)

    def resource_name(self, kind: ResourceKind, suffix: str | None = None) -> str:
        """Generated name: ``<root_namespace>-<run_id>-<kind>-<suffix>``."""
        return f"{self.prefix}-{kind.value}-{suffix or uuid.uuid4().hex[:8]}"

    # Creation

    def create(
        self,
        kind: ResourceKind,
        parent: TrackedResource | None = None,
        name: str | None = None,
        shared: bool = False,
        **attributes: Any,
    ) -> TrackedResource:
        """
        Create a resource and register it before returning.

        Args:
            kind: Kind of resource to create
            parent: Resource to create it under (required for spaces and apps)
            name: Platform-side name (generated from the run prefix if omitted)
            shared: Mark as suite-shared (excluded from ``cleanup_all``)
            **attributes: Extra fields of the create request body

        Raises:
            ResourceOperationFailure: If the platform rejected the request or
                retries were exhausted
            TimeoutFailure: If the operation missed its deadline
        """
        name = name or self.resource_name(kind)
        self._check_parent(kind, parent, name)

        body: dict[str, Any] = {"name": name, **attributes}
        if parent is not None and kind.parent_relation is not None:
            body["relationships"] = {
                kind.parent_relation: {"data": {"guid": parent.id}}
            }

        data = self._call(
            lambda: self._client.create(kind.collection, body),
            f"create {kind.value}",
            f"{kind.value}/{name}",
        )
        guid = data.get("guid")
        if not guid:
            raise ResourceOperationFailure(
                "platform returned no guid for created resource",
                resource=f"{kind.value}/{name}",
                correlation_id=_correlation_id(),
            )

        resource = TrackedResource(
            id=guid, kind=kind, name=name, parent=parent, shared=shared
        )
        with self._lock:
            self._live.append(resource)

        if self._lg is not None:
            self._lg.info(
                "resource created",
                extra={
                    "resource": resource.describe(),
                    "correlation_id": _correlation_id(),
                },
            )
        return resource

    def _check_parent(
        self, kind: ResourceKind, parent: TrackedResource | None, name: str
    ) -> None:
        expected = kind.parent_kind
        if expected is None:
            return
        if parent is None or parent.kind is not expected:
            raise ResourceOperationFailure(
                f"{kind.value} requires a parent {expected.value}",
                resource=f"{kind.value}/{name}",
                parent=parent.describe() if parent is not None else None,
            )

    def track(self, resource: TrackedResource) -> TrackedResource:
        """Register a resource created outside this manager."""
        with self._lock:
            if resource not in self._live:
                self._live.append(resource)
        return resource

    # Removal

    def cleanup(self, resource: TrackedResource) -> None:
        """
        Remove a resource; a resource that no longer exists counts as removed.

        Asynchronous deletions are polled until the job is COMPLETE or FAILED.

        Raises:
            ResourceOperationFailure: If the platform refused the deletion or the
                deletion job failed
            TimeoutFailure: If the deletion did not finish before the deadline
        """
        deadline = Deadline(self._policy.deadline, self._clock)
        try:
            location = self._call(
                lambda: self._client.delete(resource.kind.collection, resource.id),
                f"delete {resource.kind.value}",
                resource,
                deadline,
                missing_ok=True,
            )
        except NotFoundError:
            location = None
            if self._lg is not None:
                self._lg.debug(
                    "resource already gone", extra={"resource": resource.describe()}
                )

        if location:
            self._await_job(location, resource, deadline)

        self._forget(resource)
        if self._lg is not None:
            self._lg.info(
                "resource deleted",
                extra={
                    "resource": resource.describe(),
                    "after": delta_str(deadline.elapsed),
                    "correlation_id": _correlation_id(),
                },
            )

    def _await_job(
        self, location: str, resource: TrackedResource, deadline: Deadline
    ) -> None:
        def fetch() -> dict[str, Any]:
            try:
                return self._client.get_job(location)
            except TransientPlatformError as e:
                # Keep polling; the state stays unknown until the API answers
                return {"state": "UNKNOWN", "error": str(e)}

        try:
            job = poll_until(
                fetch,
                lambda j: j.get("state") in JOB_TERMINAL_STATES,
                interval=self._policy.poll_interval,
                deadline=deadline,
                lg=self._lg,
                label=f"delete {resource.kind.value}",
                sleep=self._sleep,
            )
        except PollTimeout as e:
            raise TimeoutFailure(
                "deletion did not complete before deadline",
                resource=resource,
                last_state=(e.last_value or {}).get("state"),
                deadline=deadline.secs,
                job=location,
                correlation_id=_correlation_id(),
            ) from e
        except PlatformError as e:
            raise ResourceOperationFailure(
                "cannot read deletion job",
                resource=resource,
                job=location,
                correlation_id=_correlation_id(),
            ) from e

        if job.get("state") == JOB_FAILED:
            raise ResourceOperationFailure(
                "deletion job failed",
                resource=resource,
                job=location,
                detail=job_error(job),
                correlation_id=_correlation_id(),
            )

    def _forget(self, resource: TrackedResource) -> None:
        with self._lock:
            if resource in self._live:
                self._live.remove(resource)

    def cleanup_many(
        self, resources: list[TrackedResource]
    ) -> list[ResourceOperationFailure]:
        """
        Remove resources in reverse list order, attempting every one.

        Returns:
            Failures in the order they occurred
        """
        failures: list[ResourceOperationFailure] = []
        for resource in reversed(resources):
            try:
                self.cleanup(resource)
            except ResourceOperationFailure as e:
                failures.append(e)
                self._log_cleanup_failure(resource, e)
            except Exception as e:
                failure = ResourceOperationFailure(
                    "unexpected error during cleanup",
                    resource=resource,
                    error=f"{e.__class__.__name__}: {e}",
                    correlation_id=_correlation_id(),
                )
                failure.__cause__ = e
                failures.append(failure)
                self._log_cleanup_failure(resource, e)
        return failures

    def _log_cleanup_failure(self, resource: TrackedResource, e: Exception) -> None:
        if self._lg is not None:
            self._lg.error(
                "cleanup failed",
                extra={
                    "resource": resource.describe(),
                    "correlation_id": _correlation_id(),
                    "exception": e,
                },
            )

    def cleanup_all(self) -> list[ResourceOperationFailure]:
        """Remove every live non-shared resource, newest first."""
        return self.cleanup_many([r for r in self.live if not r.shared])

    def scope(self, context: CorrelationContext | None = None) -> ResourceScope:
        """Open a scope whose resources are removed when it exits."""
        return ResourceScope(self, context)

    # Leak sweep

    def sweep(
        self,
        prefix: str | None = None,
        exclude: set[str] | None = None,
    ) -> SweepResult:
        """
        Delete platform resources whose name starts with ``prefix``.

        Args:
            prefix: Name prefix (defaults to this run's prefix)
            exclude: Resource ids to leave alone

        Returns:
            Leftovers found and failures to remove them
        """
        prefix = prefix or self.prefix
        exclude = exclude or set()
        result = SweepResult()

        for kind in SWEEP_ORDER:
            try:
                listed = self._call(
                    lambda kind=kind: self._client.list(kind.collection),
                    f"list {kind.collection}",
                    kind.collection,
                )
            except ResourceOperationFailure as e:
                result.failures.append(e)
                continue

            for item in listed:
                name = item.get("name") or ""
                guid = item.get("guid")
                if not guid or guid in exclude or not name.startswith(prefix):
                    continue
                leaked = TrackedResource(id=guid, kind=kind, name=name)
                result.found.append(leaked)
                if self._lg is not None:
                    self._lg.warning(
                        "leaked resource", extra={"resource": leaked.describe()}
                    )
                result.failures.extend(self.cleanup_many([leaked]))

        return result

    # Retry plumbing

    def _call(
        self,
        fn: Callable[[], T],
        label: str,
        resource: Any,
        deadline: Deadline | None = None,
        missing_ok: bool = False,
    ) -> T:
        """
        Run one platform call under the retry policy and map its errors.

        With ``missing_ok`` NotFoundError propagates unchanged (deletion treats
        a missing resource as removed); otherwise a 404 is a
        ResourceOperationFailure like any other rejection.
        """
        deadline = deadline or Deadline(self._policy.deadline, self._clock)
        try:
            return retry_call(
                fn,
                self._policy,
                is_transient,
                lg=self._lg,
                label=label,
                deadline=deadline,
                sleep=self._sleep,
                clock=self._clock,
            )
        except NotFoundError as e:
            if missing_ok:
                raise
            raise ResourceOperationFailure(
                f"{label} failed: not found",
                resource=resource,
                status=e.status,
                error=e.message,
                correlation_id=_correlation_id(),
            ) from e
        except RetryDeadlineExceeded as e:
            raise TimeoutFailure(
                f"{label} exceeded deadline",
                resource=resource,
                last_state=str(e.last_error),
                deadline=deadline.secs,
                attempts=e.attempts,
                correlation_id=_correlation_id(),
            ) from e
        except RetryError as e:
            raise ResourceOperationFailure(
                f"{label} failed after retries",
                resource=resource,
                attempts=e.attempts,
                error=str(e.last_error),
                correlation_id=_correlation_id(),
            ) from e
        except PlatformError as e:
            raise ResourceOperationFailure(
                f"{label} rejected",
                resource=resource,
                status=e.status,
                error=e.message,
                correlation_id=_correlation_id(),
            ) from e


class ResourceScope:
    """
    Explicit scoped acquisition of test resources.

    Resources created through the scope are removed in strict reverse
    creation order when the scope exits, on every exit path. All removals
    are attempted even when one fails. Failures raise CleanupFailure, or,
    when the block itself raised, are added as notes to the in-flight
    exception so the original failure stays the reported one.
    """

    def __init__(
        self,
        manager: ResourceLifecycleManager,
        context: CorrelationContext | None = None,
    ) -> None:
        self._manager = manager
        self._context = context
        self._owned: list[TrackedResource] = []
        self._closed = False

    @property
    def resources(self) -> list[TrackedResource]:
        """Resources owned by the scope, in creation order."""
        return list(self._owned)

    @property
    def context(self) -> CorrelationContext | None:
        return self._context

    @contextmanager
    def _activated(self) -> Iterator[None]:
        if self._context is None or current_context() is self._context:
            yield
            return
        with correlation_scope(self._context):
            yield

    def create(
        self,
        kind: ResourceKind,
        parent: TrackedResource | None = None,
        name: str | None = None,
        **attributes: Any,
    ) -> TrackedResource:
        """Create a resource owned by this scope."""
        if self._closed:
            raise ResourceOperationFailure("scope already closed", resource=kind.value)
        with self._activated():
            resource = self._manager.create(kind, parent, name, **attributes)
        self._owned.append(resource)
        return resource

    def adopt(self, resource: TrackedResource) -> TrackedResource:
        """Make the scope responsible for removing an existing resource."""
        self._manager.track(resource)
        self._owned.append(resource)
        return resource

    def close(self) -> list[ResourceOperationFailure]:
        """Remove owned resources newest first; returns the failures."""
        self._closed = True
        owned, self._owned = self._owned, []
        with self._activated():
            return self._manager.cleanup_many(owned)

    def __enter__(self) -> ResourceScope:
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        failures = self.close()
        if not failures:
            return False

        error = CleanupFailure(
            f"{len(failures)} resource(s) could not be removed",
            failures,
            correlation_id=self._context.id if self._context is not None else None,
        )
        if exc is not None:
            exc.add_note(str(error))
            for note in getattr(error, "__notes__", []):
                exc.add_note(note)
            return False
        raise error
