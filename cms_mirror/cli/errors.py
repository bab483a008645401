"""Typed exception hierarchy for CLI-related errors."""

from cms_mirror.remote_client.errors import SyncError


class CLIError(SyncError):
    """Base exception for all CLI-related errors."""
    pass


class PathNotMirroredError(CLIError):
    """Raised when a path given on the command line is not a mirrored object."""

    def __init__(self, path: str, reason: str = "not inside any container"):
        super().__init__(f"{path} is not a mirrored object: {reason}")
        self.path = path
        self.reason = reason
