"""
Tests for the failure hook registry.
"""

import re
import threading

import pytest

from e2einfra.diagnostics import (
    DispatchPolicy,
    FailureHookRegistry,
    FailureRecord,
    HookStatus,
    any_of,
    build_registry,
    contains,
    matches,
)
from e2einfra.exceptions import DiagnosticHandlerError, RegistryFrozenError
from e2einfra.regex_utils import RegexComplexityError
from e2einfra.tracing import CorrelationContext, correlation_scope, current_context


@pytest.fixture
def registry(test_logger):
    return FailureHookRegistry(test_logger, default_timeout=2.0)


def record(message: str, **kwargs) -> FailureRecord:
    return FailureRecord(message=message, test_id="tests/test_push.py::test_push", **kwargs)


# =============================================================================
# Matchers
# =============================================================================


@pytest.mark.unit
class TestMatchers:
    def test_contains(self):
        assert contains("Droplet")(record("Droplet not found"))
        assert not contains("droplet")(record("Droplet not found"))
        assert contains("droplet", ignore_case=True)(record("Droplet not found"))

    def test_matches(self):
        assert matches(r"status \d{3}")(record("got status 503"))
        assert matches(re.compile("^boom"))(record("boom!"))
        assert not matches(r"^boom")(record("no boom"))

    def test_matches_rejects_dangerous_pattern(self):
        with pytest.raises(RegexComplexityError):
            matches(r"(a+)+b")

    def test_any_of(self):
        m = any_of("Droplet", re.compile("timed out"), lambda r: r.test_id is None)
        assert m(record("request timed out"))
        assert not m(record("ok"))
        assert m(FailureRecord(message="x"))

    def test_unsupported_matcher(self, registry):
        with pytest.raises(TypeError, match="unsupported matcher"):
            registry.register(42, lambda ctx: None)


# =============================================================================
# Registration
# =============================================================================


@pytest.mark.unit
class TestRegistration:
    def test_order_and_names(self, registry):
        def dump_droplets(ctx):
            pass

        registry.register("Droplet", dump_droplets)
        registry.register("timeout", lambda ctx: None)
        registry.register(re.compile("x+"), lambda ctx: None, name="named")

        assert [e.name for e in registry.entries] == ["dump_droplets", "timeout", "named"]

    def test_decorator(self, registry):
        @registry.on("Droplet")
        def droplets(ctx):
            pass

        assert registry.entries[0].handler is droplets

    def test_frozen_refuses_registration(self, registry):
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError, match="after the run started"):
            registry.register("Droplet", lambda ctx: None)

    def test_build_registry(self, test_logger):
        registry = build_registry(
            test_logger, dispatch="first", handler_timeout=5, hooks=[("a", lambda ctx: None)]
        )
        assert registry.policy is DispatchPolicy.FIRST_MATCH
        assert len(registry.entries) == 1


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.unit
class TestDispatch:
    def test_every_match_invoked_in_order(self, registry):
        calls = []
        registry.register("Droplet", lambda ctx: calls.append("a"), name="a")
        registry.register("not found", lambda ctx: calls.append("b"), name="b")
        registry.register("unrelated", lambda ctx: calls.append("c"), name="c")

        outcomes = registry.dispatch(record("Droplet not found"))

        assert calls == ["a", "b"]
        assert [(o.hook, o.status) for o in outcomes] == [
            ("a", HookStatus.OK),
            ("b", HookStatus.OK),
        ]

    def test_no_match_invokes_nothing(self, registry, log_stream):
        called = []
        registry.register("Droplet", lambda ctx: called.append(1))

        assert registry.dispatch(record("route not registered")) == []
        assert called == []
        assert "no failure hook matched" in log_stream.getvalue()

    def test_first_match_policy(self, test_logger):
        registry = FailureHookRegistry(test_logger, policy=DispatchPolicy.FIRST_MATCH)
        calls = []
        registry.register("Droplet", lambda ctx: calls.append("a"))
        registry.register("Droplet", lambda ctx: calls.append("b"))

        assert len(registry.dispatch(record("Droplet not found"))) == 1
        assert calls == ["a"]

    def test_record_consumed_once(self, registry, log_stream):
        calls = []
        registry.register("x", lambda ctx: calls.append(1))
        rec = record("x")

        registry.dispatch(rec)
        assert registry.dispatch(rec) == []
        assert calls == [1]
        assert "already dispatched" in log_stream.getvalue()

    def test_consumption_lives_on_the_record(self, registry, test_logger):
        other = FailureHookRegistry(test_logger)
        calls = []
        other.register("x", lambda ctx: calls.append(1))
        rec = record("x")

        registry.dispatch(rec)
        assert other.dispatch(rec) == []
        assert calls == []

    def test_concurrent_dispatch_runs_handler_once(self, registry):
        calls = []
        registry.register("x", lambda ctx: calls.append(1))
        rec = record("x")

        threads = [threading.Thread(target=registry.dispatch, args=(rec,)) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert calls == [1]

    def test_handler_context(self, registry):
        seen = {}

        def handler(ctx):
            seen["record"] = ctx.record
            seen["client"] = ctx.client

        registry.bind_client("client")
        registry.register("x", handler)
        rec = record("x")
        registry.dispatch(rec)

        assert seen == {"record": rec, "client": "client"}

    def test_handler_error_contained(self, registry, log_stream):
        def broken(ctx):
            raise RuntimeError("handler bug")

        after = []
        registry.register("x", broken)
        registry.register("x", lambda ctx: after.append(1), name="after")

        outcomes = registry.dispatch(record("x", correlation_id="abc"))

        assert outcomes[0].status is HookStatus.FAILED
        assert isinstance(outcomes[0].error, DiagnosticHandlerError)
        assert isinstance(outcomes[0].error.__cause__, RuntimeError)
        assert outcomes[1].ok
        assert after == [1]
        assert "diagnostic handler failed" in log_stream.getvalue()

    def test_matcher_error_contained(self, registry):
        def bad_matcher(rec):
            raise KeyError("nope")

        registry.register(bad_matcher, lambda ctx: None, name="bad")
        registry.register("x", lambda ctx: None, name="good")

        outcomes = registry.dispatch(record("x"))

        assert [(o.hook, o.status) for o in outcomes] == [
            ("bad", HookStatus.MATCHER_FAILED),
            ("good", HookStatus.OK),
        ]

    def test_handler_time_budget(self, registry, log_stream):
        release = threading.Event()
        registry.register("x", lambda ctx: release.wait(5), name="slow", timeout=0.05)
        registry.register("x", lambda ctx: None, name="fast")

        try:
            outcomes = registry.dispatch(record("x"))
        finally:
            release.set()

        assert outcomes[0].status is HookStatus.TIMED_OUT
        assert "diagnostics incomplete" in str(outcomes[0].error)
        assert outcomes[1].ok
        assert "diagnostics incomplete" in log_stream.getvalue()

    def test_handler_sees_correlation(self, registry, log_stream):
        seen = []

        def handler(ctx):
            seen.append(current_context())
            ctx.lg.info("collected")

        registry.register("x", handler)
        ctx = CorrelationContext(id="abc123")
        with correlation_scope(ctx):
            registry.dispatch(record("x", correlation_id=ctx.id))

        assert seen == [ctx]
        lines = [line for line in log_stream.getvalue().splitlines() if "collected" in line]
        assert "correlation_id:abc123" in lines[0]
