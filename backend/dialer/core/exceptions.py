"""
Dialer Exceptions
Structured failures surfaced by the queue, orchestrator and providers
"""
from typing import Optional


class DialerError(Exception):
    """Base error carrying a machine-readable code."""

    status_code = 500

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class ValidationError(DialerError):
    """Missing or malformed tenant / campaign / lead identifiers."""

    status_code = 400


class ConfigurationError(DialerError):
    """Calling credentials, caller number, base URL or routing config missing."""

    status_code = 400


class NotFoundError(DialerError):
    status_code = 404


class CallPlacementError(DialerError):
    """The provider failed to place an outbound call."""

    status_code = 502


class CorrelationError(DialerError):
    """Routing task attributes could not be mapped back to a queue item."""

    status_code = 400


class BatchAbortedError(DialerError):
    """
    A parallel run could not launch any call after its batch was claimed.

    Every claimed item has already been compensated to done/failed.
    """

    status_code = 500

    def __init__(self, code: str, run_id: str, picked: int, message: Optional[str] = None):
        self.run_id = run_id
        self.picked = picked
        super().__init__(code, message)


class RoutingError(DialerError):
    """The task router rejected or could not serve a worker update."""

    status_code = 502
