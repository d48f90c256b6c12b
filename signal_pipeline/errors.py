"""
Exceptions raised across the pipeline's network seams.
"""

from typing import Optional


class ApiError(Exception):
    """A remote call returned a non-2xx response (or never got one)."""

    def __init__(self, message: str, status: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint


class SessionExpiredError(ApiError):
    """The session could not be verified or recovered; the user must sign in."""

    def __init__(self, message: str = "Session expired. Please sign in again.", endpoint: Optional[str] = None):
        super().__init__(message, status=401, endpoint=endpoint)


class BridgeError(Exception):
    """A message could not be delivered to (or answered by) a context."""
