"""Typed exception hierarchy for the synchronization engine.

All exceptions inherit from MirrorError so callers can catch any engine
failure in one place. Each carries the handle and/or object id it concerns
so user-facing messages always name their target.
"""

from typing import Optional

from cms_mirror.remote_client.errors import SyncError


class MirrorError(SyncError):
    """Base exception for all synchronization engine errors."""
    pass


class UnknownObjectKindError(MirrorError):
    """Raised when a content object is tagged with an unrecognized kind."""

    def __init__(self, kind: object):
        super().__init__(f"Unknown content object kind: {kind!r}")
        self.kind = kind


class LocalObjectNotFoundError(MirrorError):
    """Raised when the local files for an object are absent."""

    def __init__(self, handle: str, file_path: str):
        super().__init__(f"Local files for '{handle}' not found at {file_path}")
        self.handle = handle
        self.file_path = file_path


class HandleCollisionError(MirrorError):
    """Raised when a handle is already bound to a different object."""

    def __init__(self, kind: str, handle: str, existing_id: Optional[str] = None):
        if existing_id:
            message = f"Handle '{handle}' is already bound to {kind} {existing_id}"
        else:
            message = f"Handle '{handle}' already exists locally for kind {kind}"
        super().__init__(message)
        self.kind = kind
        self.handle = handle
        self.existing_id = existing_id


class InvalidHandleError(MirrorError):
    """Raised when a handle is not a safe filesystem name."""

    def __init__(self, handle: str, reason: str):
        super().__init__(f"Invalid handle '{handle}': {reason}")
        self.handle = handle
        self.reason = reason


class UnsyncedObjectError(MirrorError):
    """Raised when an operation needs a remote id but the object is local-only."""

    def __init__(self, handle: str, operation: str):
        super().__init__(
            f"Cannot {operation} '{handle}': object has never been saved remotely"
        )
        self.handle = handle
        self.operation = operation


class PipelineAbortedError(MirrorError):
    """Raised when a pull batch fails; no metadata has been committed."""

    def __init__(self, container: str, batch_index: int, batch_count: int, reason: str):
        super().__init__(
            f"Pull of '{container}' aborted at batch {batch_index + 1}/{batch_count}: "
            f"{reason}"
        )
        self.container = container
        self.batch_index = batch_index
        self.batch_count = batch_count
        self.reason = reason


class PartialBatchFailure(MirrorError):
    """Failure of a single item in a save queue drain pass.

    Collected into DrainReport.failures rather than raised, so one failing
    item never aborts its siblings.
    """

    def __init__(self, handle: str, object_id: Optional[str], cause: BaseException):
        target = f"'{handle}'" if not object_id else f"'{handle}' ({object_id})"
        super().__init__(f"Save failed for {target}: {cause}")
        self.handle = handle
        self.object_id = object_id
        self.cause = cause


class InconsistentStateError(MirrorError):
    """Raised when local state failed to follow a remote mutation that succeeded.

    Local and remote now diverge; the message summarizes how.
    """

    def __init__(self, handle: str, object_id: Optional[str], divergence: str):
        super().__init__(
            f"Inconsistent state for '{handle}' (id {object_id}): {divergence}"
        )
        self.handle = handle
        self.object_id = object_id
        self.divergence = divergence


class SaveInProgressError(MirrorError):
    """Raised when an operation would race the container's save queue."""

    def __init__(self, container: str, operation: str):
        super().__init__(
            f"Cannot {operation} in '{container}' while saves are in progress"
        )
        self.container = container
        self.operation = operation


class MetadataError(MirrorError):
    """Raised when a metadata file is malformed."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        if file_path:
            full_message = f"Metadata error in {file_path}: {message}"
        else:
            full_message = f"Metadata error: {message}"
        super().__init__(full_message)
        self.file_path = file_path
        self.original_message = message


class MetadataFilesystemError(MirrorError):
    """Raised when metadata file filesystem operations fail."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"Metadata file operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason


class LayoutError(MirrorError):
    """Raised when local content files cannot be read, parsed or written."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"Local file operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason
