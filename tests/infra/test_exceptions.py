"""
Tests for the harness exception hierarchy.
"""

import pytest

from e2einfra.exceptions import (
    CleanupFailure,
    HarnessError,
    ResourceOperationFailure,
    SetupFailure,
    TeardownFailure,
    TimeoutFailure,
)
from e2einfra.resources import ResourceKind, TrackedResource

SPACE = TrackedResource(id="g-1", kind=ResourceKind.SPACE, name="e2e-r1-space-a")


@pytest.mark.unit
class TestHarnessError:
    def test_message_only(self):
        e = HarnessError("boom")
        assert str(e) == "boom"
        assert e.context == {}
        assert e.correlation_id is None

    def test_context_rendered_after_message(self):
        e = HarnessError("boom", correlation_id="abc", step="deploy")
        assert str(e) == "boom (correlation_id=abc, step=deploy)"
        assert e.correlation_id == "abc"

    def test_subclasses_share_base(self):
        assert issubclass(SetupFailure, HarnessError)
        assert issubclass(TimeoutFailure, ResourceOperationFailure)
        assert issubclass(CleanupFailure, ResourceOperationFailure)


@pytest.mark.unit
class TestResourceOperationFailure:
    def test_resource_described_in_context(self):
        e = ResourceOperationFailure("delete space rejected", resource=SPACE)
        assert e.resource is SPACE
        assert "resource=space/e2e-r1-space-a(g-1)" in str(e)

    def test_plain_string_resource(self):
        e = ResourceOperationFailure("create failed", resource="app/x")
        assert e.context["resource"] == "app/x"


@pytest.mark.unit
class TestTimeoutFailure:
    def test_names_resource_and_last_state(self):
        e = TimeoutFailure(
            "deletion did not complete before deadline",
            resource=SPACE,
            last_state="PROCESSING",
            deadline=30.0,
        )
        text = str(e)
        assert "space/e2e-r1-space-a(g-1)" in text
        assert "last_state=PROCESSING" in text
        assert e.last_state == "PROCESSING"
        assert e.deadline == 30.0


@pytest.mark.unit
class TestCleanupFailure:
    def test_collects_failures_and_notes(self):
        inner = [
            TimeoutFailure("slow", resource=SPACE, last_state="PROCESSING"),
            ResourceOperationFailure("rejected", resource="app/a"),
        ]
        e = CleanupFailure("2 resource(s) could not be removed", inner)

        assert e.failures == inner
        assert "space/e2e-r1-space-a(g-1),app/a" in str(e)
        assert any("TimeoutFailure" in note for note in e.__notes__)
        assert len(e.__notes__) == 2


@pytest.mark.unit
class TestTeardownFailure:
    def test_counts_issues(self):
        e = TeardownFailure("teardown left issues", ["a", "b"])
        assert e.issues == ["a", "b"]
        assert "count=2" in str(e)
