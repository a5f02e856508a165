"""
Resource kinds and the tracked-resource record.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class ResourceKind(enum.Enum):
    """
    Platform resource kinds the harness creates.

    The value is the kind's short name used in generated resource names.
    """

    ORGANIZATION = "organization"
    SPACE = "space"
    SERVICE_ACCOUNT = "service-account"
    APP = "app"

    @property
    def collection(self) -> str:
        """API collection the kind lives in."""
        return _COLLECTIONS[self]

    @property
    def parent_kind(self) -> ResourceKind | None:
        """Kind a resource of this kind must be created under, if any."""
        return _PARENTS.get(self)

    @property
    def parent_relation(self) -> str | None:
        """Relationship key the parent guid is sent under."""
        parent = self.parent_kind
        return parent.value if parent is not None else None


_COLLECTIONS = {
    ResourceKind.ORGANIZATION: "organizations",
    ResourceKind.SPACE: "spaces",
    ResourceKind.SERVICE_ACCOUNT: "service_accounts",
    ResourceKind.APP: "apps",
}

_PARENTS = {
    ResourceKind.SPACE: ResourceKind.ORGANIZATION,
    ResourceKind.APP: ResourceKind.SPACE,
}


@dataclass(frozen=True)
class TrackedResource:
    """
    A platform resource created by the harness.

    Attributes:
        id: Opaque platform identifier (guid)
        kind: Resource kind
        name: Platform-side name, prefixed with the run's namespace
        parent: Resource this one was created under
        shared: Suite-shared (owned by the leader) rather than test-owned
    """

    id: str
    kind: ResourceKind
    name: str
    parent: TrackedResource | None = None
    shared: bool = False

    def describe(self) -> str:
        """Short human-readable form used in logs and error context."""
        return f"{self.kind.value}/{self.name}({self.id})"

    def __str__(self) -> str:
        return self.describe()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "parent": self.parent.to_dict() if self.parent is not None else None,
            "shared": self.shared,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrackedResource:
        parent = d.get("parent")
        return cls(
            id=d["id"],
            kind=ResourceKind(d["kind"]),
            name=d["name"],
            parent=cls.from_dict(parent) if parent is not None else None,
            shared=bool(d.get("shared", False)),
        )
