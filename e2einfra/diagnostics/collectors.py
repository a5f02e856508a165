"""
Built-in diagnostic collectors.

Collectors read platform state for the resources a failing test touched and
log it with the failure's correlation id, so the output lands next to the
failure in the run log.
"""

import re
from typing import Any

from ..platform.exceptions import PlatformError
from ..resources.model import ResourceKind
from .hooks import DiagnosticContext, FailureHookRegistry, any_of, contains, matches

DROPLET_NOT_FOUND = "Droplet not found"

# TimeoutFailure renders as "... (resource=..., last_state=..., deadline=...)"
TIMEOUT_PATTERN = re.compile(r"TimeoutFailure|did not complete before deadline")


def resource_snapshot(ctx: DiagnosticContext) -> dict[str, Any]:
    """
    Read the current platform state of every resource involved in the failure.

    Resources that no longer exist are reported as missing.
    """
    snapshot: dict[str, Any] = {}
    if ctx.client is None:
        ctx.lg.warning("no platform client, skipping resource snapshot")
        return snapshot

    for resource in ctx.record.resources:
        key = resource.describe()
        try:
            snapshot[key] = ctx.client.get(resource.kind.collection, resource.id)
        except PlatformError as e:
            snapshot[key] = {"error": e.message, "status": e.status}
        ctx.lg.info(
            "resource snapshot",
            extra={"resource": key, "state": _summary(snapshot[key])},
        )
    return snapshot


def droplet_report(ctx: DiagnosticContext) -> dict[str, Any]:
    """List the droplets and current droplet of every app involved in the failure."""
    report: dict[str, Any] = {}
    if ctx.client is None:
        ctx.lg.warning("no platform client, skipping droplet report")
        return report

    apps = ctx.record.of_kind(ResourceKind.APP)
    if not apps:
        ctx.lg.info("no apps involved in failure")
        return report

    for app in apps:
        entry: dict[str, Any] = {}
        try:
            entry["droplets"] = ctx.client.list(f"apps/{app.id}/droplets")
        except PlatformError as e:
            entry["droplets_error"] = e.message
        try:
            entry["current"] = ctx.client.request(
                "GET", f"apps/{app.id}/droplets/current"
            ).body
        except PlatformError as e:
            entry["current_error"] = e.message

        report[app.describe()] = entry
        ctx.lg.info(
            "droplet report",
            extra={
                "resource": app.describe(),
                "droplets": [d.get("guid") for d in entry.get("droplets", [])],
                "current": (entry.get("current") or {}).get("guid"),
            },
        )
    return report


def _summary(data: Any) -> str:
    if not isinstance(data, dict):
        return str(data)
    for key in ("state", "status", "error"):
        if key in data:
            return str(data[key])
    return "present"


def register_default_hooks(registry: FailureHookRegistry) -> None:
    """
    Register the built-in collectors.

    "Droplet not found" failures get a droplet report; timeouts against
    eventually-consistent resources get a resource snapshot.
    """
    registry.register(contains(DROPLET_NOT_FOUND), droplet_report, name="droplet_report")
    registry.register(
        any_of(matches(TIMEOUT_PATTERN), contains("timed out", ignore_case=True)),
        resource_snapshot,
        name="resource_snapshot",
    )
