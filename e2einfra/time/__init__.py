"""Time utilities: duration formatting, deadlines, bounded retry and polling."""

from .backoff import (
    Deadline,
    PollTimeout,
    RetryDeadlineExceeded,
    RetryError,
    RetryPolicy,
    poll_until,
    retry_call,
)
from .delta import InvalidDurationError, delta_str

__all__ = [
    # Duration
    "delta_str",
    "InvalidDurationError",
    # Retry / polling
    "Deadline",
    "RetryPolicy",
    "RetryError",
    "RetryDeadlineExceeded",
    "PollTimeout",
    "retry_call",
    "poll_until",
]
