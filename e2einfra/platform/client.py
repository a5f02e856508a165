"""
Thin client for the platform's public v3 API.

Builds authenticated JSON requests, tags them with the active correlation
context, hands them to an injected Transport and maps response statuses to
the platform exception classes. Retrying is left to callers (see
ResourceLifecycleManager), so every call here is a single attempt.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from ..tracing.correlation import CorrelationTracer, current_context
from .exceptions import NotFoundError, PlatformError, TransientPlatformError
from .request import OutboundRequest, Response, Transport

API_PREFIX = "/v3"

JOB_PROCESSING = "PROCESSING"
JOB_COMPLETE = "COMPLETE"
JOB_FAILED = "FAILED"
JOB_TERMINAL_STATES = frozenset({JOB_COMPLETE, JOB_FAILED})


class PlatformClient:
    """
    Platform API client over an injectable transport.

    Example:
        client = PlatformClient(cfg.api_endpoint, token, transport, tracer, lg)
        org = client.create("organizations", {"name": "e2e-1a2b-organization-x1"})
        job = client.delete("organizations", org["guid"])
    """

    def __init__(
        self,
        endpoint: str,
        token: str | None,
        transport: Transport,
        tracer: CorrelationTracer | None = None,
        lg: Any = None,
        timeout: float = 30.0,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._token = token
        self._transport = transport
        self._tracer = tracer or CorrelationTracer()
        self._lg = lg
        self._timeout = timeout

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def url(self, path: str, params: dict[str, Any] | None = None) -> str:
        """Absolute URL for an API path (paths not starting with /v3 get it prefixed)."""
        if path.startswith(("http://", "https://")):
            url = path
        else:
            if not path.startswith(API_PREFIX):
                path = f"{API_PREFIX}/{path.lstrip('/')}"
            url = self._endpoint + path
        if params:
            url += ("&" if "?" in url else "?") + urlencode(params)
        return url

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Response:
        """
        Send one request and map its status.

        Raises:
            NotFoundError: HTTP 404
            TransientPlatformError: HTTP 429/5xx or a transport OSError
            PlatformError: Any other non-2xx status
        """
        headers = {"Accept": "application/json"}
        if body is not None:
            headers["Content-Type"] = "application/json"
        if self._token:
            headers["Authorization"] = f"bearer {self._token}"

        req = OutboundRequest(method, self.url(path, params), headers, body)
        ctx = current_context()
        if ctx is not None:
            req = self._tracer.attach(ctx, req)

        if self._lg is not None:
            self._lg.trace2(
                "request",
                extra={
                    "method": method,
                    "url": req.url,
                    "correlation_id": ctx.id if ctx else None,
                },
            )

        try:
            resp = self._transport(req, self._timeout)
        except OSError as e:
            raise TransientPlatformError(
                "transport error", method=method, url=req.url
            ) from e

        self._check(req, resp)
        return resp

    def _check(self, req: OutboundRequest, resp: Response) -> None:
        if resp.ok:
            return

        detail = _error_detail(resp.body)
        message = f"platform returned {resp.status}"
        if detail:
            message += f": {detail}"

        if resp.status == 404:
            raise NotFoundError(message, resp.status, req.method, req.url)
        if resp.status == 429 or resp.status >= 500:
            raise TransientPlatformError(message, resp.status, req.method, req.url)
        raise PlatformError(message, resp.status, req.method, req.url)

    def create(self, collection: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a new resource to ``collection`` and return its representation."""
        return self.request("POST", collection, body).body or {}

    def get(self, collection: str, guid: str) -> dict[str, Any]:
        """GET one resource by guid."""
        return self.request("GET", f"{collection}/{guid}").body or {}

    def list(
        self, collection: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """
        GET every resource of ``collection``, following pagination links.
        """
        resources: list[dict[str, Any]] = []
        path: str | None = collection
        while path is not None:
            body = self.request("GET", path, params=params).body or {}
            resources.extend(body.get("resources", []))
            path = ((body.get("pagination") or {}).get("next") or {}).get("href")
            # Next links carry their own query string
            params = None
        return resources

    def delete(self, collection: str, guid: str) -> str | None:
        """
        DELETE a resource.

        Returns:
            The job location for asynchronous deletions (HTTP 202), else None

        Raises:
            NotFoundError: The resource does not exist
        """
        resp = self.request("DELETE", f"{collection}/{guid}")
        if resp.status == 202:
            return resp.header("Location") or _job_href(resp.body)
        return None

    def get_job(self, location: str) -> dict[str, Any]:
        """GET an asynchronous job by its location (absolute URL or path)."""
        return self.request("GET", location).body or {}


def _job_href(body: Any) -> str | None:
    if isinstance(body, dict):
        guid = body.get("guid")
        if guid:
            return f"{API_PREFIX}/jobs/{guid}"
    return None


def _error_detail(body: Any) -> str | None:
    """First error detail of a v3 error body ({"errors": [{"detail": ...}]})."""
    if not isinstance(body, dict):
        return None
    errors = body.get("errors") or []
    if errors and isinstance(errors[0], dict):
        return errors[0].get("detail") or errors[0].get("title")
    return None


def job_error(job: dict[str, Any]) -> str | None:
    """Error detail of a FAILED job, if the platform gave one."""
    return _error_detail(job)
