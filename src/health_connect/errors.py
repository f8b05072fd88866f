"""
Error taxonomy for Health Connect.

Every error carries the HTTP status the server maps it to, so handlers
never need to inspect the exception type.
"""

from typing import Optional


class HealthConnectError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(HealthConnectError):
    """Malformed or missing request input."""

    status_code = 400


class NotFoundError(HealthConnectError):
    """Unknown or expired session."""

    status_code = 404


class UpstreamError(HealthConnectError):
    """The model provider failed or returned unusable output.

    ``partial_text`` holds whatever text a stream had produced before
    failing, so callers can still persist it.
    """

    status_code = 502

    def __init__(self, message: str, partial_text: str = ""):
        super().__init__(message)
        self.partial_text = partial_text


class PersistenceError(HealthConnectError):
    """The session or history store is unavailable."""

    status_code = 500


class InternalError(HealthConnectError):
    """Anything else."""

    status_code = 500
