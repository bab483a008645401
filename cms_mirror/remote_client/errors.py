"""Typed exception hierarchy for remote store errors.

This module defines all custom exceptions raised by the remote store client.
All exceptions inherit from RemoteError (itself a SyncError) for easy catching
and include descriptive messages with context to help with debugging.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all cms-mirror errors.

    Use this to catch any application-level error from the mirror tool.
    """
    pass


class RemoteError(SyncError):
    """Base exception for all remote store errors."""
    pass


class InvalidCredentialsError(RemoteError):
    """Raised when the API token is missing or rejected by the remote store."""

    def __init__(self, endpoint: str, reason: Optional[str] = None):
        message = f"API token is invalid (endpoint: {endpoint})"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.endpoint = endpoint
        self.reason = reason


class RemoteObjectNotFoundError(RemoteError):
    """Raised when a requested remote object does not exist."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"Remote {kind} '{key}' not found")
        self.kind = kind
        self.key = key


class RemoteUnreachableError(RemoteError):
    """Raised when the remote store is not available or unreachable."""

    def __init__(self, endpoint: str):
        super().__init__(f"Remote store is not available at {endpoint}")
        self.endpoint = endpoint


class APIAccessError(RemoteError):
    """Raised when an API call fails after retries or is rejected."""

    def __init__(self, message: str = "Remote store API failure (after 3 retries)",
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
