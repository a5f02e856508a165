"""
Unit tests for the pytest plugin's per-process harness object.

Whole-session behavior is covered by tests/e2e/test_pytest_plugin.py.
"""

from unittest.mock import Mock

import pytest

from e2einfra.exceptions import HarnessError
from e2einfra.pytest_plugin import E2EPlugin


@pytest.mark.unit
class TestE2EPlugin:
    def test_diagnose_without_worker_session(self, suite_config, test_logger):
        plugin = E2EPlugin(Mock(), suite_config, test_logger)
        item = Mock(nodeid="tests/test_app.py::test_push")

        with pytest.raises(HarnessError, match="no worker session") as exc_info:
            plugin.diagnose(item, Mock(), Mock())
        assert exc_info.value.context["test"] == "tests/test_app.py::test_push"
