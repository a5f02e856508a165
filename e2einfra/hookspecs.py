"""pytest hook specifications added by the e2einfra plugin."""

from typing import Any

import pytest


def pytest_e2e_register_hooks(registry: Any) -> None:
    """
    Register failure hooks on the run's FailureHookRegistry.

    Called once per process that runs tests, before the registry is frozen.

    Example (conftest.py):
        def pytest_e2e_register_hooks(registry):
            registry.register("Droplet not found", dump_droplets)
    """


def pytest_e2e_setup(coordinator: Any) -> None:
    """
    Add fixture provisioners to the coordinator before global setup runs.

    Only called on the leader.

    Example (conftest.py):
        def pytest_e2e_setup(coordinator):
            coordinator.add_fixture("buildpack", provision_buildpack)
    """


@pytest.hookspec(firstresult=True)
def pytest_e2e_deployer(suite_config: Any) -> Any:
    """
    Return the Deployer used to bring the platform up and down.

    Only called on the leader; ignored when skip_deploy is set.
    """
