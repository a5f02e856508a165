"""
Serialization of SharedSuiteState for hand-off to worker processes.

Wire format (UTF-8 JSON):

    {
      "format": "e2einfra.state",
      "version": 1,
      "checksum": "<sha256 of the canonical state JSON>",
      "state": {...}
    }

Decoding verifies format, version and checksum, so a truncated or
foreign payload fails loudly in the worker instead of producing a subtly
wrong state. Fixture values are restricted to JSON-native types when the
state is built (see freeze_fixtures), so decoding always yields an equal
snapshot.
"""

import hashlib
import json
from typing import Any

from ..exceptions import CodecError
from ..resources.model import TrackedResource
from .model import SharedSuiteState, thaw_fixtures

FORMAT = "e2einfra.state"
VERSION = 1


def _canonical(obj: Any) -> str:
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    )


def _checksum(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def state_to_dict(state: SharedSuiteState) -> dict[str, Any]:
    return {
        "run_id": state.run_id,
        "api_endpoint": state.api_endpoint,
        "apps_domain": state.apps_domain,
        "root_namespace": state.root_namespace,
        "admin_token": state.admin_token,
        "shared_resources": [r.to_dict() for r in state.shared_resources],
        "fixtures": thaw_fixtures(state.fixtures),
        "created_at": state.created_at,
    }


def state_from_dict(d: dict[str, Any]) -> SharedSuiteState:
    return SharedSuiteState(
        run_id=d["run_id"],
        api_endpoint=d["api_endpoint"],
        apps_domain=d["apps_domain"],
        root_namespace=d["root_namespace"],
        admin_token=d.get("admin_token"),
        shared_resources=tuple(
            TrackedResource.from_dict(r) for r in d.get("shared_resources", [])
        ),
        fixtures=d.get("fixtures") or {},
        created_at=d["created_at"],
    )


def encode(state: SharedSuiteState) -> bytes:
    """
    Serialize a state snapshot.

    Raises:
        CodecError: If the state cannot be rendered as JSON
    """
    try:
        body = state_to_dict(state)
        payload = _canonical(body)
    except (TypeError, ValueError) as e:
        raise CodecError("state is not serializable", run_id=state.run_id) from e

    envelope = {
        "format": FORMAT,
        "version": VERSION,
        "checksum": _checksum(payload),
        "state": body,
    }
    return _canonical(envelope).encode("utf-8")


def decode(data: bytes | str) -> SharedSuiteState:
    """
    Rebuild a state snapshot serialized with encode().

    Raises:
        CodecError: If the payload is malformed, foreign, of an unsupported
            version, or fails its checksum
    """
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        envelope = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise CodecError("state payload is not valid JSON") from e

    if not isinstance(envelope, dict) or envelope.get("format") != FORMAT:
        raise CodecError("not a suite state payload")
    if envelope.get("version") != VERSION:
        raise CodecError(
            "unsupported state version",
            version=envelope.get("version"),
            supported=VERSION,
        )

    body = envelope.get("state")
    if not isinstance(body, dict):
        raise CodecError("state payload has no state body")
    if _checksum(_canonical(body)) != envelope.get("checksum"):
        raise CodecError("state checksum mismatch", run_id=body.get("run_id"))

    try:
        return state_from_dict(body)
    except (KeyError, TypeError, ValueError) as e:
        raise CodecError("state body is incomplete", run_id=body.get("run_id")) from e


class SharedStateCodec:
    """Object form of encode()/decode() for injection into the coordinator."""

    format = FORMAT
    version = VERSION

    def encode(self, state: SharedSuiteState) -> bytes:
        return encode(state)

    def decode(self, data: bytes | str) -> SharedSuiteState:
        return decode(data)
