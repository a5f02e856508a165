"""
Unified exception hierarchy for the e2e harness.

Failures are classified by the scope they affect:

- run scope: SetupFailure aborts the whole run before any worker starts
- test scope: ResourceOperationFailure (and TimeoutFailure) fail only the
  owning test
- cleanup scope: TeardownFailure is aggregated and reported at run end
  without altering individual test results
- DiagnosticHandlerError is logged by the hook registry and never escalated
"""

from typing import Any


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Carries keyword context (correlation id, resource, last state, ...) that
    is rendered next to the message so failure reports can be correlated with
    platform-side logs.

    Example:
        try:
            coordinator.run(cases)
        except HarnessError as e:
            lg.error("run failed", extra={"exception": e})
    """

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize the exception with a message and optional context.

        Args:
            message: Human-readable error message
            **context: Additional context information (stored in self.context)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """String representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    @property
    def correlation_id(self) -> str | None:
        """Correlation id of the test or request that failed, if known."""
        return self.context.get("correlation_id")


class ConfigError(HarnessError):
    """
    Configuration-related errors.

    Examples:
        - Config file not found
        - Invalid YAML syntax
        - Missing required value (api_endpoint, apps_domain)
        - Transport import path cannot be resolved
    """

    pass


class SetupFailure(HarnessError):
    """
    Global setup failed.

    Fatal for the whole run: raised by the leader before any worker starts.
    """

    pass


class ResourceOperationFailure(HarnessError):
    """
    A create, read or delete against the platform failed.

    Raised after transient retries are exhausted, or immediately for
    non-transient errors. Fails only the owning test.
    """

    def __init__(self, message: str, resource: Any = None, **context: Any) -> None:
        if resource is not None:
            context.setdefault("resource", _describe(resource))
        super().__init__(message, **context)
        self.resource = resource


class TimeoutFailure(ResourceOperationFailure):
    """
    An asynchronous platform operation did not reach a terminal state in time.

    Always names the resource and the last observed state.
    """

    def __init__(
        self,
        message: str,
        resource: Any = None,
        last_state: Any = None,
        deadline: float | None = None,
        **context: Any,
    ) -> None:
        context["last_state"] = last_state
        if deadline is not None:
            context["deadline"] = deadline
        super().__init__(message, resource=resource, **context)
        self.last_state = last_state
        self.deadline = deadline


class CleanupFailure(ResourceOperationFailure):
    """
    One or more resources in a scope could not be removed.

    The individual failures are kept in ``failures`` in cleanup order.
    """

    def __init__(
        self,
        message: str,
        failures: list[ResourceOperationFailure],
        **context: Any,
    ) -> None:
        context.setdefault(
            "resources", ",".join(_describe(f.resource) for f in failures)
        )
        super().__init__(message, **context)
        self.failures = failures
        for failure in failures:
            self.add_note(f"  {failure.__class__.__name__}: {failure}")


class TeardownFailure(HarnessError):
    """
    Global teardown left issues behind (leaked or undeletable resources).

    Non-fatal to the run's pass/fail status. The issues are kept in
    ``issues`` so leaked resources stay visible.
    """

    def __init__(self, message: str, issues: list[Any], **context: Any) -> None:
        super().__init__(message, count=len(issues), **context)
        self.issues = issues


class DiagnosticHandlerError(HarnessError):
    """
    A failure-hook handler raised or timed out.

    Never escalated: the hook registry logs it and records it in the
    dispatch outcome.
    """

    pass


class RegistryFrozenError(HarnessError):
    """A failure hook was registered after the registry was frozen for the run."""

    pass


class CodecError(HarnessError):
    """Shared suite state could not be encoded or decoded."""

    pass


class PhaseError(HarnessError):
    """An operation was attempted in the wrong suite lifecycle phase."""

    pass


def _describe(resource: Any) -> str:
    describe = getattr(resource, "describe", None)
    if callable(describe):
        return str(describe())
    return str(resource)
