"""Typed exception hierarchy for workspace errors.

Workspace errors cover everything around the engine: the YAML config file,
the cross-process lock and the git working tree guard.
"""

from typing import Optional

from cms_mirror.remote_client.errors import SyncError


class WorkspaceError(SyncError):
    """Base exception for all workspace errors."""
    pass


class ConfigError(WorkspaceError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, config_field: Optional[str] = None):
        if config_field:
            full_message = f"Configuration error in field '{config_field}': {message}"
        else:
            full_message = f"Configuration error: {message}"
        super().__init__(full_message)
        self.config_field = config_field
        self.original_message = message


class ConfigFilesystemError(WorkspaceError):
    """Raised when the config file cannot be read or written."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"Filesystem operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason


class WorkspaceLockedError(WorkspaceError):
    """Raised when another process holds the workspace lock."""

    def __init__(self, lock_path: str):
        super().__init__(
            f"Workspace is locked by another process ({lock_path}). "
            f"Another cms-mirror command may be running."
        )
        self.lock_path = lock_path


class UncommittedChangesError(WorkspaceError):
    """Raised when a pull would overwrite uncommitted local changes."""

    def __init__(self, root: str, changed_files: Optional[list] = None):
        changed_files = changed_files or []
        message = f"Working tree at {root} has uncommitted changes"
        if changed_files:
            preview = ", ".join(changed_files[:5])
            more = f" and {len(changed_files) - 5} more" if len(changed_files) > 5 else ""
            message += f": {preview}{more}"
        super().__init__(message)
        self.root = root
        self.changed_files = changed_files
