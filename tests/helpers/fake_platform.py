"""
In-memory stand-in for the platform's v3 API.

Implements the subset of the API the harness uses: create, get, paginated
list and (optionally asynchronous) delete for organizations, spaces,
service accounts and apps, plus job polling. Deleting a parent removes
its children. Failures can be injected per method and path.

The platform is a Transport: pass it wherever a transport is expected.
Instances pickle (the lock is recreated), so process-mode workers get a
copy of the state as it was when they were spawned.
"""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

from e2einfra.platform.request import OutboundRequest, Response

COLLECTIONS = ("organizations", "spaces", "service_accounts", "apps")

# Relationship key -> collection of the parent
PARENTS = {"spaces": ("organization", "organizations"), "apps": ("space", "spaces")}


@dataclass
class Injection:
    """A canned failure returned for matching requests."""

    method: str
    path: str
    status: int | None = None
    body: Any = None
    times: int | None = 1
    os_error: bool = False

    def matches(self, method: str, path: str) -> bool:
        return self.method in ("*", method) and self.path in path


@dataclass
class Job:
    guid: str
    target: tuple[str, str]
    polls_left: int
    state: str = "PROCESSING"
    fail: bool = False
    stuck: bool = False


@dataclass
class Call:
    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


class FakePlatform:
    """
    In-memory platform API.

    Args:
        async_delete: Answer DELETE with 202 and a job instead of 204
        job_polls: Polls a deletion job stays PROCESSING before completing
        page_size: Resources per list page
    """

    def __init__(self, async_delete: bool = True, job_polls: int = 1, page_size: int = 50):
        self.async_delete = async_delete
        self.job_polls = job_polls
        self.page_size = page_size
        self.resources: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self.jobs: dict[str, Job] = {}
        self.calls: list[Call] = []
        self.injections: list[Injection] = []
        self.stuck_deletes: set[str] = set()
        self.failing_deletes: set[str] = set()
        self._lock = threading.RLock()

    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        del state["_lock"]
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._lock = threading.RLock()

    # Test controls

    def fail(
        self,
        method: str,
        path: str,
        status: int = 500,
        times: int | None = 1,
        detail: str | None = None,
    ) -> None:
        """Answer the next ``times`` matching requests with ``status`` (None: forever)."""
        body = {"errors": [{"detail": detail}]} if detail else None
        self.injections.append(Injection(method, path, status, body, times))

    def drop_connection(self, method: str, path: str, times: int | None = 1) -> None:
        """Raise ConnectionError for matching requests."""
        self.injections.append(Injection(method, path, times=times, os_error=True))

    def seed(self, collection: str, name: str, parent: str | None = None) -> str:
        """Create a resource directly, bypassing the API."""
        with self._lock:
            return self._store(collection, name, parent)

    def names(self, collection: str) -> list[str]:
        with self._lock:
            return sorted(r["name"] for r in self.resources[collection].values())

    def exists(self, collection: str, guid: str) -> bool:
        with self._lock:
            return guid in self.resources[collection]

    def calls_to(self, method: str, collection: str) -> list[Call]:
        with self._lock:
            return [
                c
                for c in self.calls
                if c.method == method and c.path.startswith(f"/v3/{collection}")
            ]

    def deleted_order(self) -> list[str]:
        """Paths of DELETE requests in the order they were received."""
        with self._lock:
            return [c.path for c in self.calls if c.method == "DELETE"]

    # Transport

    def __call__(self, request: OutboundRequest, timeout: float) -> Response:
        url = urlsplit(request.url)
        with self._lock:
            self.calls.append(
                Call(request.method, url.path, dict(request.headers), request.body)
            )
            injected = self._injected(request.method, url.path)
            if injected is not None:
                if injected.os_error:
                    raise ConnectionError(f"connection reset: {url.path}")
                return Response(injected.status or 500, {}, injected.body)
            return self._route(request.method, url.path, parse_qs(url.query), request.body)

    def _injected(self, method: str, path: str) -> Injection | None:
        for injection in self.injections:
            if not injection.matches(method, path):
                continue
            if injection.times is not None:
                injection.times -= 1
                if injection.times <= 0:
                    self.injections.remove(injection)
            return injection
        return None

    def _route(
        self, method: str, path: str, query: dict[str, list[str]], body: Any
    ) -> Response:
        parts = [p for p in path.split("/") if p]
        if len(parts) < 2 or parts[0] != "v3":
            return _error(404, "unknown path")

        collection = parts[1]
        guid = parts[2] if len(parts) > 2 else None

        if collection == "jobs" and guid and method == "GET":
            return self._get_job(guid)
        if collection not in COLLECTIONS:
            return _error(404, "unknown collection")

        if method == "POST" and guid is None:
            return self._create(collection, body or {})
        if method == "GET" and guid is None:
            page = int(query.get("page", ["1"])[0])
            return self._list(collection, page)
        if method == "GET":
            found = self.resources[collection].get(guid)
            return Response(200, {}, dict(found)) if found else _error(404, "not found")
        if method == "DELETE":
            return self._delete(collection, guid)
        return _error(405, "method not allowed")

    def _create(self, collection: str, body: dict[str, Any]) -> Response:
        name = body.get("name")
        if not name:
            return _error(422, "name is required")
        if any(r["name"] == name for r in self.resources[collection].values()):
            return _error(422, f"name {name} is taken")

        parent_guid = None
        if collection in PARENTS:
            relation, parent_collection = PARENTS[collection]
            rel = (body.get("relationships") or {}).get(relation) or {}
            parent_guid = (rel.get("data") or {}).get("guid")
            if parent_guid not in self.resources[parent_collection]:
                return _error(422, f"invalid {relation} relationship")

        guid = self._store(collection, name, parent_guid)
        return Response(201, {}, dict(self.resources[collection][guid]))

    def _store(self, collection: str, name: str, parent: str | None) -> str:
        guid = str(uuid.uuid4())
        self.resources[collection][guid] = {"guid": guid, "name": name, "parent": parent}
        return guid

    def _list(self, collection: str, page: int) -> Response:
        items = sorted(self.resources[collection].values(), key=lambda r: r["name"])
        start = (page - 1) * self.page_size
        chunk = items[start : start + self.page_size]
        has_next = start + self.page_size < len(items)
        pagination = {
            "total_results": len(items),
            "next": (
                {"href": f"https://api.fake.test/v3/{collection}?page={page + 1}"}
                if has_next
                else None
            ),
        }
        return Response(200, {}, {"pagination": pagination, "resources": [dict(r) for r in chunk]})

    def _delete(self, collection: str, guid: str) -> Response:
        if guid not in self.resources[collection]:
            return _error(404, "not found")
        if not self.async_delete:
            self._remove(collection, guid)
            return Response(204)

        job = Job(
            guid=str(uuid.uuid4()),
            target=(collection, guid),
            polls_left=self.job_polls,
            fail=collection in self.failing_deletes,
            stuck=collection in self.stuck_deletes,
        )
        self.jobs[job.guid] = job
        return Response(202, {"Location": f"https://api.fake.test/v3/jobs/{job.guid}"})

    def _get_job(self, guid: str) -> Response:
        job = self.jobs.get(guid)
        if job is None:
            return _error(404, "job not found")
        if job.state == "PROCESSING" and not job.stuck:
            job.polls_left -= 1
            if job.polls_left < 0:
                if job.fail:
                    job.state = "FAILED"
                else:
                    job.state = "COMPLETE"
                    self._remove(*job.target)
        body: dict[str, Any] = {"guid": job.guid, "state": job.state}
        if job.state == "FAILED":
            body["errors"] = [{"detail": "deletion failed on the platform"}]
        return Response(200, {}, body)

    def _remove(self, collection: str, guid: str) -> None:
        self.resources[collection].pop(guid, None)
        for child_collection, (_, parent_collection) in PARENTS.items():
            if parent_collection != collection:
                continue
            for child in list(self.resources[child_collection].values()):
                if child["parent"] == guid:
                    self._remove(child_collection, child["guid"])


def _error(status: int, detail: str) -> Response:
    return Response(status, {}, {"errors": [{"detail": detail}]})


def make_platform() -> FakePlatform:
    """Transport factory usable as ``transport: tests.helpers.fake_platform:make_platform``."""
    return FakePlatform()
