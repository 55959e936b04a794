"""
Tests for health polling.
"""

from unittest.mock import MagicMock, call

import pytest

from dropletpilot.models import HealthState
from dropletpilot.monitoring import HealthMonitor


class TestHealthMonitor:
    """Test the health gate polling loop."""

    @pytest.fixture
    def container_manager(self):
        return MagicMock()

    @pytest.fixture
    def monitor(self, container_manager, console, logger, sleep):
        return HealthMonitor(container_manager, console, logger, sleep=sleep)

    def test_sleeps_before_first_poll(self, monitor, container_manager, sleep):
        order = []
        sleep.side_effect = lambda s: order.append("sleep")
        container_manager.inspect_health.side_effect = lambda name: order.append("poll") or HealthState.HEALTHY

        assert monitor.wait_until_healthy("webapp-new") is True
        assert order == ["sleep", "poll"]
        sleep.assert_called_once_with(5)

    def test_healthy_after_starting(self, monitor, container_manager, sleep):
        container_manager.inspect_health.side_effect = [
            HealthState.STARTING, HealthState.STARTING, HealthState.HEALTHY,
        ]

        assert monitor.wait_until_healthy("webapp-new", max_attempts=10, interval=5) is True
        assert container_manager.inspect_health.call_count == 3
        assert sleep.call_args_list == [call(5)] * 3

    def test_times_out_after_max_attempts(self, monitor, container_manager, sleep):
        container_manager.inspect_health.return_value = HealthState.UNHEALTHY

        assert monitor.wait_until_healthy("webapp-new", max_attempts=10, interval=5) is False
        assert container_manager.inspect_health.call_count == 10
        assert sum(c.args[0] for c in sleep.call_args_list) == 50

    def test_missing_container_is_not_healthy(self, monitor, container_manager):
        container_manager.inspect_health.return_value = HealthState.UNKNOWN

        assert monitor.wait_until_healthy("webapp-new", max_attempts=2, interval=1) is False
        container_manager.inspect_health.assert_called_with("webapp-new")
