"""
Platform API access: request values, transports, the v3 client and its errors.
"""

from .client import (
    JOB_COMPLETE,
    JOB_FAILED,
    JOB_PROCESSING,
    JOB_TERMINAL_STATES,
    PlatformClient,
    job_error,
)
from .exceptions import NotFoundError, PlatformError, TransientPlatformError, is_transient
from .http import UrllibTransport, load_transport
from .request import OutboundRequest, Response, Transport

__all__ = [
    # Values
    "OutboundRequest",
    "Response",
    "Transport",
    # Client
    "PlatformClient",
    "JOB_PROCESSING",
    "JOB_COMPLETE",
    "JOB_FAILED",
    "JOB_TERMINAL_STATES",
    "job_error",
    # Transports
    "UrllibTransport",
    "load_transport",
    # Errors
    "PlatformError",
    "NotFoundError",
    "TransientPlatformError",
    "is_transient",
]
