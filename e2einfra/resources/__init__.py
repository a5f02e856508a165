"""Platform resources created by tests: model, lifecycle manager and scopes."""

from .manager import ResourceLifecycleManager, ResourceScope, SweepResult
from .model import ResourceKind, TrackedResource

__all__ = [
    "ResourceKind",
    "TrackedResource",
    "ResourceLifecycleManager",
    "ResourceScope",
    "SweepResult",
]
