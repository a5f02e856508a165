"""
Tests for bounded retry, deadlines and polling.
"""

from unittest.mock import Mock

import pytest

from e2einfra.log import LogConfig, LoggerFactory
from e2einfra.time import (
    Deadline,
    PollTimeout,
    RetryDeadlineExceeded,
    RetryError,
    RetryPolicy,
    poll_until,
    retry_call,
)
from tests.helpers.clock import FakeClock


class Flaky(Exception):
    pass


def is_flaky(e: BaseException) -> bool:
    return isinstance(e, Flaky)


# =============================================================================
# RetryPolicy / Deadline
# =============================================================================


@pytest.mark.unit
class TestRetryPolicy:
    def test_delays_grow_and_cap(self):
        policy = RetryPolicy(attempts=6, initial_delay=1.0, max_delay=5.0, multiplier=2.0)
        assert list(policy.delays()) == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_single_attempt_has_no_delays(self):
        assert list(RetryPolicy(attempts=1).delays()) == []

    def test_from_config_dict_ignores_unknown(self):
        policy = RetryPolicy.from_config({"attempts": 2, "deadline": 9, "other": 1})
        assert policy.attempts == 2
        assert policy.deadline == 9

    def test_from_config_pydantic(self):
        from e2einfra.config import RetryConfig

        policy = RetryPolicy.from_config(RetryConfig(attempts=7))
        assert policy.attempts == 7
        assert policy.poll_interval == 1.0


@pytest.mark.unit
class TestDeadline:
    def test_remaining_and_expired(self):
        clock = FakeClock()
        deadline = Deadline(10, clock)
        assert deadline.remaining() == 10
        clock.advance(4)
        assert deadline.elapsed == 4
        assert deadline.remaining() == 6
        clock.advance(7)
        assert deadline.remaining() == 0
        assert deadline.expired


# =============================================================================
# retry_call
# =============================================================================


@pytest.mark.unit
class TestRetryCall:
    def test_returns_first_success(self):
        clock = FakeClock()
        fn = Mock(side_effect=[Flaky(), Flaky(), "ok"])
        policy = RetryPolicy(attempts=5, initial_delay=1.0, multiplier=2.0)

        result = retry_call(fn, policy, is_flaky, sleep=clock.sleep, clock=clock)

        assert result == "ok"
        assert fn.call_count == 3
        assert clock.sleeps == [1.0, 2.0]

    def test_non_transient_propagates_immediately(self):
        clock = FakeClock()
        fn = Mock(side_effect=KeyError("nope"))

        with pytest.raises(KeyError):
            retry_call(fn, RetryPolicy(), is_flaky, sleep=clock.sleep, clock=clock)
        assert fn.call_count == 1
        assert clock.sleeps == []

    def test_attempts_exhausted(self):
        clock = FakeClock()
        fn = Mock(side_effect=Flaky("down"))

        with pytest.raises(RetryError) as exc_info:
            retry_call(
                fn,
                RetryPolicy(attempts=3, initial_delay=0.1),
                is_flaky,
                label="create space",
                sleep=clock.sleep,
                clock=clock,
            )

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, Flaky)
        assert "create space failed after 3 attempts" in str(exc_info.value)
        assert not isinstance(exc_info.value, RetryDeadlineExceeded)

    def test_deadline_stops_retrying(self):
        clock = FakeClock()
        fn = Mock(side_effect=Flaky())
        policy = RetryPolicy(attempts=10, initial_delay=4.0, multiplier=1.0, deadline=10.0)

        with pytest.raises(RetryDeadlineExceeded) as exc_info:
            retry_call(fn, policy, is_flaky, sleep=clock.sleep, clock=clock)

        # 0s, 4s, 8s: the next 4s wait would pass the 10s deadline
        assert exc_info.value.attempts == 3
        assert sum(clock.sleeps) <= 10.0

    def test_retries_traced(self, log_stream):
        clock = FakeClock()
        lg = LoggerFactory.create(
            "test_trace", LogConfig.from_params("trace", colors=False), stream=log_stream
        )
        fn = Mock(side_effect=[Flaky("blip"), "ok"])

        retry_call(
            fn,
            RetryPolicy(initial_delay=0.5),
            is_flaky,
            lg=lg,
            label="list apps",
            sleep=clock.sleep,
            clock=clock,
        )

        output = log_stream.getvalue()
        assert "retrying after transient error" in output
        assert "[operation:list apps]" in output


# =============================================================================
# poll_until
# =============================================================================


@pytest.mark.unit
class TestPollUntil:
    def test_returns_terminal_value(self):
        clock = FakeClock()
        states = iter(["PROCESSING", "PROCESSING", "COMPLETE"])

        value = poll_until(
            lambda: next(states),
            lambda s: s == "COMPLETE",
            interval=2.0,
            deadline=Deadline(30, clock),
            sleep=clock.sleep,
        )

        assert value == "COMPLETE"
        assert clock.sleeps == [2.0, 2.0]

    def test_timeout_carries_last_value(self):
        clock = FakeClock()

        with pytest.raises(PollTimeout) as exc_info:
            poll_until(
                lambda: {"state": "PROCESSING"},
                lambda j: j["state"] == "COMPLETE",
                interval=3.0,
                deadline=Deadline(10, clock),
                label="delete org",
                sleep=clock.sleep,
            )

        assert exc_info.value.last_value == {"state": "PROCESSING"}
        assert exc_info.value.elapsed == pytest.approx(10.0)
        assert "delete org did not complete" in str(exc_info.value)

    def test_last_sleep_clipped_to_deadline(self):
        clock = FakeClock()

        with pytest.raises(PollTimeout):
            poll_until(
                lambda: None,
                lambda v: False,
                interval=4.0,
                deadline=Deadline(10, clock),
                sleep=clock.sleep,
            )

        assert clock.sleeps == [4.0, 4.0, 2.0]
