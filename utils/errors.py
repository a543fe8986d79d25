"""Error taxonomy shared by the analysis pipeline and the HTTP layer.

Every error carries the HTTP status it maps to so the API middleware can
translate it without knowing each type.
"""

from typing import Optional


class HerdHealthError(Exception):
    """Base class for errors raised by this application."""

    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(HerdHealthError):
    """A required credential or endpoint is not configured."""

    status = 503


class DetectorUnavailable(HerdHealthError):
    """A single detector call failed (timeout, non-2xx, malformed body)."""

    status = 502

    def __init__(self, model_id: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"detector {model_id} unavailable: {message}")
        self.model_id = model_id
        self.cause = cause


class AggregationFailure(HerdHealthError):
    """Unexpected internal fault while combining detector results."""

    status = 500


class ValidationError(HerdHealthError):
    status = 400


class NotFoundError(HerdHealthError):
    status = 404


class PermissionDeniedError(HerdHealthError):
    status = 403


class AuthenticationError(HerdHealthError):
    status = 401
