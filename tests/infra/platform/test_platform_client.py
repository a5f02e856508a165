"""
Tests for the platform API client.
"""

import pytest

from e2einfra.platform import (
    NotFoundError,
    OutboundRequest,
    PlatformClient,
    PlatformError,
    Response,
    TransientPlatformError,
    is_transient,
)
from e2einfra.tracing import CorrelationContext, CorrelationTracer, correlation_scope
from tests.helpers.fake_platform import FakePlatform


class Recorder:
    """Transport answering every request with a canned response."""

    def __init__(self, response=None, error=None):
        self.response = response or Response(200, {}, {})
        self.error = error
        self.requests: list[OutboundRequest] = []
        self.timeouts: list[float] = []

    def __call__(self, request, timeout):
        self.requests.append(request)
        self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error
        return self.response


# =============================================================================
# Requests
# =============================================================================


@pytest.mark.unit
class TestRequest:
    def test_url_building(self):
        client = PlatformClient("https://api/", None, Recorder())
        assert client.url("spaces") == "https://api/v3/spaces"
        assert client.url("/v3/jobs/1") == "https://api/v3/jobs/1"
        assert client.url("https://other/v3/jobs/1") == "https://other/v3/jobs/1"
        assert client.url("apps", {"page": 2}) == "https://api/v3/apps?page=2"

    def test_bearer_token_and_json_headers(self):
        transport = Recorder()
        PlatformClient("https://api", "tok", transport, timeout=7).create("spaces", {"name": "s"})

        req = transport.requests[0]
        assert req.method == "POST"
        assert req.header("Authorization") == "bearer tok"
        assert req.header("Content-Type") == "application/json"
        assert req.body == {"name": "s"}
        assert transport.timeouts == [7]

    def test_no_correlation_header_outside_scope(self):
        transport = Recorder()
        PlatformClient("https://api", None, transport).get("spaces", "g")
        assert transport.requests[0].header("X-Correlation-ID") is None

    def test_correlation_header_inside_scope(self):
        transport = Recorder()
        client = PlatformClient("https://api", None, transport, tracer=CorrelationTracer())
        with correlation_scope(CorrelationContext(id="c0ffee")):
            client.get("spaces", "g")
        assert transport.requests[0].header("X-Correlation-ID") == "c0ffee"


# =============================================================================
# Status mapping
# =============================================================================


@pytest.mark.unit
class TestStatusMapping:
    def test_not_found(self):
        client = PlatformClient("https://api", None, Recorder(Response(404)))
        with pytest.raises(NotFoundError) as exc_info:
            client.get("spaces", "g")
        assert exc_info.value.status == 404

    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_transient(self, status):
        client = PlatformClient("https://api", None, Recorder(Response(status)))
        with pytest.raises(TransientPlatformError) as exc_info:
            client.get("spaces", "g")
        assert is_transient(exc_info.value)

    def test_other_client_errors(self):
        body = {"errors": [{"detail": "name is taken", "title": "CF-UnprocessableEntity"}]}
        client = PlatformClient("https://api", None, Recorder(Response(422, {}, body)))
        with pytest.raises(PlatformError) as exc_info:
            client.create("spaces", {"name": "s"})
        assert not isinstance(exc_info.value, TransientPlatformError)
        assert not is_transient(exc_info.value)
        assert "platform returned 422: name is taken" in str(exc_info.value)
        assert "method=POST" in str(exc_info.value)

    def test_transport_os_error_is_transient(self):
        client = PlatformClient("https://api", None, Recorder(error=ConnectionResetError()))
        with pytest.raises(TransientPlatformError) as exc_info:
            client.get("spaces", "g")
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)


# =============================================================================
# Collections against the fake platform
# =============================================================================


@pytest.mark.unit
class TestCollections:
    def test_list_follows_pagination(self):
        platform = FakePlatform(page_size=2)
        for i in range(5):
            platform.seed("organizations", f"org-{i}")
        client = PlatformClient("https://api.fake.test", None, platform)

        names = [o["name"] for o in client.list("organizations")]

        assert names == [f"org-{i}" for i in range(5)]
        assert len(platform.calls_to("GET", "organizations")) == 3

    def test_async_delete_returns_job_location(self):
        platform = FakePlatform(async_delete=True)
        guid = platform.seed("organizations", "org")
        client = PlatformClient("https://api.fake.test", None, platform)

        location = client.delete("organizations", guid)

        assert location is not None and "/v3/jobs/" in location
        assert client.get_job(location)["state"] in ("PROCESSING", "COMPLETE")

    def test_sync_delete_returns_none(self):
        platform = FakePlatform(async_delete=False)
        guid = platform.seed("organizations", "org")
        client = PlatformClient("https://api.fake.test", None, platform)

        assert client.delete("organizations", guid) is None
        assert not platform.exists("organizations", guid)

    def test_delete_202_without_location_uses_job_guid(self):
        transport = Recorder(Response(202, {}, {"guid": "job-1"}))
        client = PlatformClient("https://api", None, transport)
        assert client.delete("apps", "g") == "/v3/jobs/job-1"
