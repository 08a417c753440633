"""
Error taxonomy for the tracking service.

Every error carries the HTTP status it maps to; the handlers in
``piper_tracking.middleware.error_handler`` render them as ``{"error": ...}``.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base application error with structured information."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed request body or parameters."""
    status_code = 400


class MalformedTrackingToken(AppError):
    """A tracking token could not be decoded into its identifier fields."""
    status_code = 400

    def __init__(self, message: str = "Invalid tracking ID", details: Optional[dict] = None):
        super().__init__(message, details=details)


class MalformedRedirectURL(AppError):
    """The base64 destination URL of a click could not be decoded."""
    status_code = 400

    def __init__(self, message: str = "Invalid URL encoding", details: Optional[dict] = None):
        super().__init__(message, details=details)


class InvalidCampaignState(AppError):
    """Operation not legal in the campaign's current lifecycle state."""
    status_code = 400


class NotFoundError(AppError):
    """Campaign or recipient absent."""
    status_code = 404


class StorageError(AppError):
    """Persistence failure."""
    status_code = 500
