"""
Tests for bounded exponential backoff.
"""

from unittest.mock import MagicMock, call

import pytest

from dropletpilot.errors import RetryExhausted
from dropletpilot.retry import backoff_delays, retry_with_backoff


def test_backoff_delays():
    assert list(backoff_delays(3, 5, 2)) == [5, 10]
    assert list(backoff_delays(4, 1, 3)) == [1, 3, 9]
    assert list(backoff_delays(1)) == []


def test_success_on_first_attempt(logger, sleep):
    operation = MagicMock(return_value="ok")

    assert retry_with_backoff(operation, "pull", logger, sleep=sleep) == "ok"
    operation.assert_called_once()
    sleep.assert_not_called()


def test_recovers_after_failures(logger, sleep):
    operation = MagicMock(side_effect=[OSError("reset"), OSError("reset"), "ok"])

    assert retry_with_backoff(operation, "pull", logger, sleep=sleep) == "ok"
    assert sleep.call_args_list == [call(5.0), call(10.0)]


def test_exhausted_keeps_last_error(logger, sleep):
    last = OSError("still down")
    operation = MagicMock(side_effect=[OSError("down"), OSError("down"), last])

    with pytest.raises(RetryExhausted) as excinfo:
        retry_with_backoff(operation, "push", logger, sleep=sleep)

    assert excinfo.value.attempts == 3
    assert excinfo.value.last_error is last
    assert "push failed after 3 attempts" in str(excinfo.value)
    # no sleep after the final attempt
    assert sleep.call_count == 2


def test_unlisted_errors_propagate(logger, sleep):
    operation = MagicMock(side_effect=KeyError("bug"))

    with pytest.raises(KeyError):
        retry_with_backoff(operation, "pull", logger, retry_on=(OSError,), sleep=sleep)

    operation.assert_called_once()
    sleep.assert_not_called()
