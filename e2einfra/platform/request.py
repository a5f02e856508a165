"""
Request and response values exchanged with a Transport.

A Transport is any callable ``(OutboundRequest, timeout) -> Response``. The
harness never talks HTTP itself; tests inject in-memory transports and real
runs use ``UrllibTransport`` or a configured factory.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any


def _freeze(headers: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(headers or {}))


@dataclass(frozen=True)
class OutboundRequest:
    """
    An immutable outbound API request.

    Attributes:
        method: HTTP method
        url: Absolute URL
        headers: Read-only header mapping
        body: JSON-serializable payload or None
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze(self.headers))

    def with_header(self, name: str, value: str) -> "OutboundRequest":
        """Return a copy with ``name`` set to ``value``; nothing else changes."""
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lname = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lname:
                return v
        return None


@dataclass(frozen=True)
class Response:
    """A platform API response with a decoded JSON body (or None)."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze(self.headers))

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lname = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lname:
                return v
        return None


Transport = Callable[[OutboundRequest, float], Response]
