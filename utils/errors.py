"""Domain errors raised by the detox workflow.

Each error carries the HTTP status the API layer maps it to and a message
that is safe to show to the client.
"""

from typing import Optional


class DetoxError(Exception):
    """Base class for all workflow errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DetoxError):
    """Bad file type or size, or a missing required field."""

    status_code = 400


class QuotaExceeded(DetoxError):
    """Caller exhausted its rolling daily allowance."""

    status_code = 429

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NotFound(DetoxError):
    status_code = 404


class Forbidden(DetoxError):
    """Action is not allowed by policy (e.g. deletion window has closed)."""

    status_code = 403


class UpstreamFailure(DetoxError):
    """A model or storage call failed. `message` is already sanitized."""

    status_code = 500
