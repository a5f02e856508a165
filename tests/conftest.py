"""
Pytest configuration and shared fixtures.

This module provides central pytest configuration, custom markers,
and shared fixtures for the harness test suite.
"""

import pytest

from e2einfra.config import SuiteConfig
from e2einfra.log import Logger
from e2einfra.platform import PlatformClient
from e2einfra.resources import ResourceLifecycleManager
from e2einfra.time import RetryPolicy
from e2einfra.tracing import CorrelationTracer
from tests.helpers.clock import FakeClock
from tests.helpers.fake_platform import FakePlatform

# =============================================================================
# Plugin Registration
# =============================================================================

pytest_plugins = [
    "tests.fixtures.logging",
]


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests (several components against the fake platform)",
    )
    config.addinivalue_line("markers", "e2e: End-to-end tests (full distributed run)")
    config.addinivalue_line("markers", "property: Property-based tests (hypothesis)")
    config.addinivalue_line("markers", "slow: Tests that take >1 second to run")


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def platform() -> FakePlatform:
    """In-memory platform API answering deletions asynchronously."""
    return FakePlatform()


@pytest.fixture
def clock() -> FakeClock:
    """Monotonic clock that only advances when slept on."""
    return FakeClock()


@pytest.fixture
def suite_config() -> SuiteConfig:
    """Minimal valid suite configuration with fast retry limits."""
    return SuiteConfig(
        api_endpoint="https://api.fake.test",
        apps_domain="apps.fake.test",
        admin_token="admin-token",
        retry={"attempts": 3, "initial_delay": 0.01, "deadline": 5.0, "poll_interval": 0.01},
        diagnostics={"handler_timeout": 2.0},
        logging={"level": "debug", "colors": False},
    )


@pytest.fixture
def client(platform: FakePlatform, test_logger: Logger) -> PlatformClient:
    """Platform client talking to the fake platform."""
    return PlatformClient(
        "https://api.fake.test",
        "admin-token",
        platform,
        tracer=CorrelationTracer(test_logger),
        lg=test_logger,
    )


@pytest.fixture
def manager(
    client: PlatformClient, clock: FakeClock, test_logger: Logger
) -> ResourceLifecycleManager:
    """Resource manager with a fake clock (retries and polls never really sleep)."""
    return ResourceLifecycleManager(
        client,
        "run1",
        policy=RetryPolicy(attempts=3, initial_delay=0.5, deadline=10.0, poll_interval=1.0),
        lg=test_logger,
        sleep=clock.sleep,
        clock=clock,
    )


# =============================================================================
# Test Collection Hooks
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Add 'unit' marker to tests without other markers."""
    for item in items:
        if not any(
            mark.name in ["integration", "e2e", "property"]
            for mark in item.iter_markers()
        ):
            item.add_marker(pytest.mark.unit)
