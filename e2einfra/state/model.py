"""
Immutable snapshot of everything the leader's global setup produced.
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..exceptions import CodecError, HarnessError
from ..resources.model import ResourceKind, TrackedResource


@dataclass(frozen=True)
class SharedSuiteState:
    """
    State distributed once from the leader to every worker.

    Never mutated after distribution and never reused after global teardown.

    Attributes:
        run_id: Identifier of this run (part of every resource name)
        api_endpoint: Base URL of the platform API
        apps_domain: Domain test app routes live under
        root_namespace: Prefix of every resource name
        admin_token: Administrative bearer token (hidden from repr)
        shared_resources: Suite-shared resources in creation order
        fixtures: Other fixture values keyed by fixture name, deeply
            read-only (mappings become MappingProxyType, lists and tuples
            become tuples)
        created_at: Wall clock time the leader finished setup
    """

    run_id: str
    api_endpoint: str
    apps_domain: str
    root_namespace: str = "e2e"
    admin_token: str | None = field(default=None, repr=False)
    shared_resources: tuple[TrackedResource, ...] = ()
    fixtures: Mapping[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shared_resources", tuple(self.shared_resources))
        object.__setattr__(self, "fixtures", freeze_fixtures(self.fixtures))

    def __hash__(self) -> int:
        return hash((self.run_id, self.created_at))

    @property
    def prefix(self) -> str:
        """Name prefix carried by every resource of this run."""
        return f"{self.root_namespace}-{self.run_id}"

    def shared(self, kind: ResourceKind) -> TrackedResource:
        """
        First suite-shared resource of ``kind``.

        Raises:
            HarnessError: If setup provisioned no resource of that kind
        """
        for resource in self.shared_resources:
            if resource.kind is kind:
                return resource
        raise HarnessError("no shared resource of kind", kind=kind.value)

    @property
    def organization(self) -> TrackedResource:
        return self.shared(ResourceKind.ORGANIZATION)

    @property
    def space(self) -> TrackedResource:
        return self.shared(ResourceKind.SPACE)

    def fixture(self, key: str) -> Any:
        """
        Value of a provisioned fixture.

        Raises:
            HarnessError: If no fixture of that name was provisioned
        """
        if key not in self.fixtures:
            raise HarnessError("unknown fixture", fixture=key)
        return self.fixtures[key]


def freeze_fixtures(fixtures: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Deeply read-only copy of fixture values.

    Only JSON-native values are accepted, so a snapshot decoded in a worker
    compares equal to the one the leader distributed.

    Raises:
        CodecError: If a value is not JSON-native (non-str mapping key,
            non-finite float, arbitrary object)
    """
    return _freeze(fixtures, "fixtures")


def _freeze(value: Any, path: str) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CodecError("fixture is not serializable", path=path, value=value)
        return value
    if isinstance(value, Mapping):
        frozen = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise CodecError("fixture is not serializable", path=path, key=key)
            frozen[key] = _freeze(item, f"{path}.{key}")
        return MappingProxyType(frozen)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item, f"{path}[{i}]") for i, item in enumerate(value))
    raise CodecError(
        "fixture is not serializable", path=path, type=type(value).__name__
    )


def thaw_fixtures(value: Any) -> Any:
    """Plain dict/list form of frozen fixture values."""
    if isinstance(value, Mapping):
        return {key: thaw_fixtures(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw_fixtures(item) for item in value]
    return value
