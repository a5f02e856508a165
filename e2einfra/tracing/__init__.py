"""Request correlation across test code, the platform client and diagnostics."""

from .correlation import (
    DEFAULT_HEADER,
    CorrelationContext,
    CorrelationTracer,
    correlation_scope,
    current_context,
)

__all__ = [
    "DEFAULT_HEADER",
    "CorrelationContext",
    "CorrelationTracer",
    "correlation_scope",
    "current_context",
]
