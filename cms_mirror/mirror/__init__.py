"""Synchronization engine for mirroring remote content objects locally.

This package holds the per-container engine: content object models and
checksums, the local metadata store, the pull pipeline, the save queue and
the transactional rename/clone/delete operations.
"""

from .container import Container, local_folder_name
from .models import (
    ObjectKind,
    Component,
    Style,
    Controller,
    HandleKey,
    MapKind,
    ObjectRef,
    RemoteSnapshot,
    PullResult,
    DrainReport,
    ReconcileOutcome,
    ReconcileResult,
    PageInfo,
)
from .errors import (
    MirrorError,
    UnknownObjectKindError,
    LocalObjectNotFoundError,
    HandleCollisionError,
    InvalidHandleError,
    UnsyncedObjectError,
    PipelineAbortedError,
    PartialBatchFailure,
    InconsistentStateError,
    SaveInProgressError,
    MetadataError,
    MetadataFilesystemError,
    LayoutError,
)
from .checksum import checksum
from .layout import LayoutConfig, ObjectLayout
from .metadata_store import MetadataStore
from .save_queue import DrainState, SaveQueue

__all__ = [
    'Container',
    'local_folder_name',
    'ObjectKind',
    'Component',
    'Style',
    'Controller',
    'HandleKey',
    'MapKind',
    'ObjectRef',
    'RemoteSnapshot',
    'PullResult',
    'DrainReport',
    'ReconcileOutcome',
    'ReconcileResult',
    'PageInfo',
    'MirrorError',
    'UnknownObjectKindError',
    'LocalObjectNotFoundError',
    'HandleCollisionError',
    'InvalidHandleError',
    'UnsyncedObjectError',
    'PipelineAbortedError',
    'PartialBatchFailure',
    'InconsistentStateError',
    'SaveInProgressError',
    'MetadataError',
    'MetadataFilesystemError',
    'LayoutError',
    'checksum',
    'LayoutConfig',
    'ObjectLayout',
    'MetadataStore',
    'DrainState',
    'SaveQueue',
]
