"""Failure hooks and built-in diagnostic collectors."""

from .collectors import droplet_report, register_default_hooks, resource_snapshot
from .hooks import (
    ConnectionInfo,
    DiagnosticContext,
    DispatchOutcome,
    DispatchPolicy,
    FailureHookRegistry,
    FailureRecord,
    HookEntry,
    HookStatus,
    any_of,
    build_registry,
    contains,
    matches,
)

__all__ = [
    "ConnectionInfo",
    "DiagnosticContext",
    "DispatchOutcome",
    "DispatchPolicy",
    "FailureHookRegistry",
    "FailureRecord",
    "HookEntry",
    "HookStatus",
    "any_of",
    "contains",
    "matches",
    "build_registry",
    # Collectors
    "resource_snapshot",
    "droplet_report",
    "register_default_hooks",
]
