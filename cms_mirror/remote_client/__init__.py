"""Remote store client library.

This package provides the HTTP client for the remote content store, its
credential loading and rate-limit retry logic. Only the error hierarchy is
exported here; import HTTPRemoteStore from .http_store.
"""

from .errors import (
    SyncError,
    RemoteError,
    InvalidCredentialsError,
    RemoteObjectNotFoundError,
    RemoteUnreachableError,
    APIAccessError,
)

__all__ = [
    "SyncError",
    "RemoteError",
    "InvalidCredentialsError",
    "RemoteObjectNotFoundError",
    "RemoteUnreachableError",
    "APIAccessError",
]
