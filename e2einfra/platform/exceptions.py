"""
Exceptions raised by the platform API client.

Status mapping:
    2xx            ok
    404            NotFoundError
    429, 5xx       TransientPlatformError
    transport I/O  TransientPlatformError (OSError chained)
    other 4xx      PlatformError
"""

from typing import Any

from ..exceptions import HarnessError


class PlatformError(HarnessError):
    """The platform API rejected a request."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        method: str | None = None,
        url: str | None = None,
        **context: Any,
    ) -> None:
        if status is not None:
            context["status"] = status
        if method is not None:
            context["method"] = method
        if url is not None:
            context["url"] = url
        super().__init__(message, **context)
        self.status = status


class NotFoundError(PlatformError):
    """The addressed resource does not exist (HTTP 404)."""

    pass


class TransientPlatformError(PlatformError):
    """A failure worth retrying: connection errors, HTTP 429 and 5xx."""

    pass


def is_transient(exc: BaseException) -> bool:
    """Classify an exception raised by a platform call as retryable."""
    return isinstance(exc, (TransientPlatformError, OSError))
