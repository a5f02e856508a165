"""
Bounded retry and polling against eventually-consistent infrastructure.

Retries are an explicit, observable policy rather than an implicit wait:
every operation gets a fixed number of attempts with exponential backoff
and a hard deadline, and polling stops at the deadline with the last
observed value attached to the error.

Example Usage:
    policy = RetryPolicy(attempts=5, initial_delay=0.5, deadline=60)
    org = retry_call(lambda: client.create(kind, name), policy, is_transient)

    job = poll_until(
        lambda: client.get_job(location),
        lambda j: j["state"] in ("COMPLETE", "FAILED"),
        interval=policy.poll_interval,
        deadline=Deadline(policy.deadline),
    )
"""

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

from .delta import delta_str

T = TypeVar("T")


class RetryError(Exception):
    """Raised when all attempts of a retried operation failed transiently."""

    def __init__(self, message: str, last_error: BaseException | None, attempts: int):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class RetryDeadlineExceeded(RetryError):
    """Raised when the next retry would overrun the operation's deadline."""

    pass


class PollTimeout(Exception):
    """Raised when a polled value did not reach a terminal state in time."""

    def __init__(self, message: str, last_value: Any, elapsed: float):
        super().__init__(message)
        self.last_value = last_value
        self.elapsed = elapsed


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry and polling limits for one platform operation.

    Attributes:
        attempts: Maximum number of attempts (first call included)
        initial_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for a single backoff delay
        multiplier: Growth factor between consecutive delays
        deadline: Hard limit for the whole operation, in seconds
        poll_interval: Interval between polls of an asynchronous job
    """

    attempts: int = 5
    initial_delay: float = 0.5
    max_delay: float = 8.0
    multiplier: float = 2.0
    deadline: float = 120.0
    poll_interval: float = 1.0

    def delays(self) -> Iterator[float]:
        """Yield the backoff delays between attempts (attempts - 1 values)."""
        delay = self.initial_delay
        for _ in range(max(0, self.attempts - 1)):
            yield min(delay, self.max_delay)
            delay *= self.multiplier

    @classmethod
    def from_config(cls, cfg: Any) -> "RetryPolicy":
        """Build from a pydantic RetryConfig, DotDict or plain dict."""
        if hasattr(cfg, "model_dump"):
            cfg = cfg.model_dump()
        elif hasattr(cfg, "to_dict"):
            cfg = cfg.to_dict()
        known = {k: v for k, v in cfg.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class Deadline:
    """A point in monotonic time after which an operation must give up."""

    def __init__(self, secs: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start = clock()
        self.secs = secs

    @property
    def elapsed(self) -> float:
        return self._clock() - self._start

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.secs - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    is_transient: Callable[[BaseException], bool],
    lg: Any | None = None,
    label: str | None = None,
    deadline: Deadline | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Call ``fn`` and retry transient failures with exponential backoff.

    Non-transient exceptions propagate immediately.

    Args:
        fn: Operation to call
        policy: Attempt, backoff and deadline limits
        is_transient: Predicate classifying an exception as retryable
        lg: Logger for retry traces (optional)
        label: Operation description for logs and errors
        deadline: Shared deadline (defaults to a new one from the policy)
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock (injectable for tests)

    Raises:
        RetryError: If every attempt failed transiently
        RetryDeadlineExceeded: If waiting for the next attempt would pass the deadline
    """
    deadline = deadline or Deadline(policy.deadline, clock)
    delays = policy.delays()
    attempt = 0

    while True:
        attempt += 1
        try:
            return fn()
        except Exception as e:
            if not is_transient(e):
                raise
            last_error = e

        delay = next(delays, None)
        if delay is None:
            raise RetryError(
                f"{label or 'operation'} failed after {attempt} attempts",
                last_error,
                attempt,
            ) from last_error
        if deadline.remaining() < delay:
            raise RetryDeadlineExceeded(
                f"{label or 'operation'} exceeded deadline of {delta_str(deadline.secs)}",
                last_error,
                attempt,
            ) from last_error

        if lg is not None:
            lg.trace(
                "retrying after transient error",
                extra={
                    "operation": label,
                    "attempt": attempt,
                    "wait": delta_str(delay),
                    "error": str(last_error),
                },
            )
        sleep(delay)


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    interval: float,
    deadline: Deadline,
    lg: Any | None = None,
    label: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Poll ``fetch`` until ``is_done`` accepts its value or the deadline passes.

    Raises:
        PollTimeout: With the last fetched value if the deadline passed first
    """
    polls = 0
    while True:
        value = fetch()
        polls += 1
        if is_done(value):
            return value

        remaining = deadline.remaining()
        if remaining <= 0:
            raise PollTimeout(
                f"{label or 'poll'} did not complete within {delta_str(deadline.secs)}",
                last_value=value,
                elapsed=deadline.elapsed,
            )

        if lg is not None:
            lg.trace2(
                "waiting for terminal state",
                extra={"operation": label, "polls": polls, "last": value},
            )
        sleep(min(interval, remaining))
