"""
Duration formatting for log fields and run reports.

Example Usage:
    >>> delta_str(3661.5)
    '1h1m1s'
    >>> delta_str(0.009123)
    '9.123ms'
"""

import math

SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60
MILLISECONDS_PER_SECOND = 1000
MICROSECONDS_PER_SECOND = 1_000_000


class InvalidDurationError(Exception):
    """Raised when an invalid duration value is provided."""

    pass


def _validate_duration_input(secs: float) -> None:
    if not isinstance(secs, (int, float)):
        raise InvalidDurationError(
            f"Duration must be a number, got {type(secs).__name__}"
        )
    if math.isnan(secs):
        raise InvalidDurationError("Duration cannot be NaN")
    if math.isinf(secs):
        raise InvalidDurationError("Duration cannot be infinite")
    if secs < 0:
        raise InvalidDurationError(f"Duration cannot be negative, got {secs}")


def _format_subsecond(fractional: float) -> str:
    if fractional < 0.001:
        return f"{int(fractional * MICROSECONDS_PER_SECOND)}μs"

    msecs = fractional * MILLISECONDS_PER_SECOND
    if msecs < 10:
        return f"{msecs:.3f}".rstrip("0").rstrip(".") + "ms"

    rounded_ms = round(msecs)
    if rounded_ms >= 1000:
        return "1s"
    return f"{rounded_ms}ms"


def _format_seconds(isecs: int, fractional: float, has_higher_unit: bool) -> str:
    if has_higher_unit:
        return f"{isecs}s"

    msecs = round(fractional * MILLISECONDS_PER_SECOND)
    if msecs >= 1000:
        return f"{isecs + 1}s"
    if msecs > 0 and isecs < 10:
        return f"{isecs}.{msecs:03d}s"
    return f"{isecs}s"


def delta_str(secs: float | None) -> str:
    """
    Format a duration in seconds as a compact human-readable string.

    Rules:
        - Durations >= 60s always show seconds, without fractions ("1m0s")
        - Seconds < 10 show 3 decimals when the fraction is non-zero ("1.001s")
        - Seconds >= 10 drop the fraction ("10s")
        - Milliseconds are fractional below 10ms ("9.123ms"), integer above
        - Sub-millisecond values are shown in microseconds ("123μs")

    Args:
        secs: Duration in seconds (None renders as empty string)

    Raises:
        InvalidDurationError: If secs is negative, NaN, or infinite
    """
    if secs is None:
        return ""

    _validate_duration_input(secs)

    if secs == 0:
        return "0s"
    if secs < 1:
        return _format_subsecond(secs)

    remaining = secs
    days = int(remaining / SECONDS_PER_DAY)
    remaining -= days * SECONDS_PER_DAY
    hours = int(remaining / SECONDS_PER_HOUR)
    remaining -= hours * SECONDS_PER_HOUR
    minutes = int(remaining / SECONDS_PER_MINUTE)
    remaining -= minutes * SECONDS_PER_MINUTE
    isecs = int(remaining)
    fractional = remaining - isecs

    result = ""
    if days > 0:
        result = f"{days}d"
    if hours > 0 or result:
        result += f"{hours}h"
    if minutes > 0 or result:
        result += f"{minutes}m"

    return result + _format_seconds(isecs, fractional, has_higher_unit=bool(result))
