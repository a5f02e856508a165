"""
Tests for correlation contexts and request tagging.
"""

import threading
import uuid
from unittest.mock import patch

import pytest

from e2einfra.exceptions import HarnessError
from e2einfra.platform import OutboundRequest
from e2einfra.tracing import (
    CorrelationContext,
    CorrelationTracer,
    correlation_scope,
    current_context,
)


@pytest.mark.unit
class TestNewContext:
    def test_fresh_128_bit_hex_ids(self):
        tracer = CorrelationTracer()
        ids = {tracer.new_context().id for _ in range(200)}
        assert len(ids) == 200
        assert all(len(i) == 32 and int(i, 16) >= 0 for i in ids)

    def test_keeps_test_name(self):
        ctx = CorrelationTracer().new_context("test_push")
        assert ctx.test_name == "test_push"
        assert str(ctx) == ctx.id

    def test_refuses_to_issue_an_id_twice(self):
        tracer = CorrelationTracer()
        fixed = uuid.UUID(int=42)
        with patch("e2einfra.tracing.correlation.uuid.uuid4", return_value=fixed):
            tracer.new_context()
            with pytest.raises(HarnessError, match="issued twice"):
                tracer.new_context()

    def test_unique_across_threads(self):
        tracer = CorrelationTracer()
        seen: list[str] = []
        lock = threading.Lock()

        def issue():
            for _ in range(50):
                ctx = tracer.new_context()
                with lock:
                    seen.append(ctx.id)

        threads = [threading.Thread(target=issue) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(seen)) == 200


@pytest.mark.unit
class TestAttach:
    def test_sets_header_and_changes_nothing_else(self):
        tracer = CorrelationTracer()
        ctx = CorrelationContext(id="abc")
        req = OutboundRequest("POST", "https://api/v3/spaces", {"Accept": "json"}, {"name": "s"})

        tagged = tracer.attach(ctx, req)

        assert tagged.header("x-correlation-id") == "abc"
        assert tagged.method == req.method
        assert tagged.url == req.url
        assert tagged.body == req.body
        assert tagged.header("Accept") == "json"
        assert req.header("X-Correlation-ID") is None

    def test_configurable_header(self):
        tracer = CorrelationTracer(header="X-Vcap-Request-Id")
        tagged = tracer.attach(CorrelationContext(id="abc"), OutboundRequest("GET", "u"))
        assert tagged.header("X-Vcap-Request-Id") == "abc"
        assert tracer.header == "X-Vcap-Request-Id"

    def test_pure(self):
        tracer = CorrelationTracer()
        ctx = CorrelationContext(id="abc")
        req = OutboundRequest("GET", "u")
        assert tracer.attach(ctx, req) == tracer.attach(ctx, req)


@pytest.mark.unit
class TestScope:
    def test_current_context_inside_scope_only(self):
        ctx = CorrelationContext(id="abc")
        assert current_context() is None
        with correlation_scope(ctx):
            assert current_context() is ctx
        assert current_context() is None

    def test_nested_scopes_restore(self):
        outer, inner = CorrelationContext(id="a"), CorrelationContext(id="b")
        with correlation_scope(outer):
            with correlation_scope(inner):
                assert current_context() is inner
            assert current_context() is outer

    def test_isolated_per_thread(self):
        seen = []
        with correlation_scope(CorrelationContext(id="main")):
            t = threading.Thread(target=lambda: seen.append(current_context()))
            t.start()
            t.join()
        assert seen == [None]
