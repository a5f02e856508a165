"""
Per-test correlation identifiers attached to every outbound request.

Each test case gets a fresh CorrelationContext. While a context is active
(``correlation_scope``), the platform client tags every request with it, so a
failing test can be matched with platform-side logs by a single id.

Example Usage:
    tracer = CorrelationTracer(lg)
    ctx = tracer.new_context("test_push_app")
    with correlation_scope(ctx):
        client.create("spaces", {...})   # carries X-Correlation-ID: <ctx.id>
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..exceptions import HarnessError

if TYPE_CHECKING:
    from ..platform.request import OutboundRequest

DEFAULT_HEADER = "X-Correlation-ID"

_current: ContextVar[CorrelationContext | None] = ContextVar(
    "e2einfra_correlation", default=None
)


@dataclass(frozen=True)
class CorrelationContext:
    """
    Identifier of one test case.

    Attributes:
        id: 128-bit random identifier rendered as 32 hex characters
        test_name: Test the context belongs to (optional)
        created_at: Wall clock creation time
    """

    id: str
    test_name: str | None = None
    created_at: float = field(default_factory=time.time)

    def __str__(self) -> str:
        return self.id


class CorrelationTracer:
    """
    Issues correlation contexts and tags requests with them.

    The tracer remembers every identifier it issued and refuses to issue
    one twice. ``attach`` is a pure function of its inputs.
    """

    def __init__(self, lg: Any = None, header: str = DEFAULT_HEADER) -> None:
        self._lg = lg
        self._header = header
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    @property
    def header(self) -> str:
        return self._header

    def new_context(self, test_name: str | None = None) -> CorrelationContext:
        """
        Create a context with a fresh random identifier.

        Raises:
            HarnessError: If the random source repeats an issued identifier
        """
        ident = uuid.uuid4().hex
        with self._lock:
            if ident in self._issued:
                raise HarnessError("correlation id issued twice", correlation_id=ident)
            self._issued.add(ident)

        ctx = CorrelationContext(id=ident, test_name=test_name)
        if self._lg is not None:
            self._lg.trace(
                "new correlation context",
                extra={"correlation_id": ident, "test": test_name},
            )
        return ctx

    def attach(
        self, context: CorrelationContext, request: OutboundRequest
    ) -> OutboundRequest:
        """Return a copy of ``request`` carrying the correlation header."""
        return request.with_header(self._header, context.id)


def current_context() -> CorrelationContext | None:
    """Context of the test running in this thread or task, if any."""
    return _current.get()


@contextmanager
def correlation_scope(context: CorrelationContext) -> Iterator[CorrelationContext]:
    """Make ``context`` the current context for the duration of the block."""
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)
