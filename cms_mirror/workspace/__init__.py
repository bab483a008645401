"""Workspace library: config, locking and container discovery.

A workspace is the local folder mirroring one remote store. It holds the
YAML config and one folder per configured container.
"""

from .workspace import Workspace, http_remote_factory
from .models import ContainerConfig, WorkspaceConfig
from .errors import (
    WorkspaceError,
    ConfigError,
    ConfigFilesystemError,
    WorkspaceLockedError,
    UncommittedChangesError,
)
from .config_loader import ConfigLoader
from .lock import WorkspaceLock
from .git_guard import has_uncommitted_changes, uncommitted_changes

__all__ = [
    'Workspace',
    'http_remote_factory',
    'ContainerConfig',
    'WorkspaceConfig',
    'WorkspaceError',
    'ConfigError',
    'ConfigFilesystemError',
    'WorkspaceLockedError',
    'UncommittedChangesError',
    'ConfigLoader',
    'WorkspaceLock',
    'has_uncommitted_changes',
    'uncommitted_changes',
]
