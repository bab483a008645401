"""Rename, clone and delete of synced content objects.

Each operation touches three places: the remote store, the local files and
the metadata store. Preconditions are checked before anything is mutated.
Once the remote mutation has succeeded, a local failure can no longer be
rolled back and surfaces as InconsistentStateError describing the divergence.

Delete removes the remote object first, then the metadata, then the files,
so a failed remote call leaves local state untouched.
"""

import logging
from dataclasses import replace

from cms_mirror.remote_client.errors import RemoteObjectNotFoundError

from .checksum import checksum
from .errors import (
    HandleCollisionError,
    InconsistentStateError,
    InvalidHandleError,
    LocalObjectNotFoundError,
    MirrorError,
    UnsyncedObjectError,
)
from .layout import ObjectLayout, validate_handle
from .metadata_store import MetadataStore
from .models import Component, ObjectRef
from .remote_protocol import RemoteStore

logger = logging.getLogger(__name__)


class ObjectOperations:
    """Transactional rename/clone/delete for one container."""

    def __init__(
        self,
        container: str,
        store: MetadataStore,
        layout: ObjectLayout,
        remote: RemoteStore,
    ):
        self.container = container
        self.store = store
        self.layout = layout
        self.remote = remote

    def _check_target(self, ref: ObjectRef, new_handle: str, operation: str) -> None:
        if ref.id is None:
            raise UnsyncedObjectError(ref.handle, operation)
        validate_handle(new_handle)
        if new_handle == ref.handle:
            raise InvalidHandleError(new_handle, f"cannot {operation} an object onto its own handle")
        bound_id = self.store.get_id(ref.kind, new_handle)
        if bound_id is not None:
            raise HandleCollisionError(ref.kind.value, new_handle, bound_id)
        if self.layout.object_path(ref.kind, new_handle).exists():
            raise HandleCollisionError(ref.kind.value, new_handle)
        if not self.layout.object_path(ref.kind, ref.handle).exists():
            raise LocalObjectNotFoundError(
                ref.handle, str(self.layout.object_path(ref.kind, ref.handle))
            )

    def rename(self, ref: ObjectRef, new_handle: str) -> ObjectRef:
        """Rename an object remotely and locally.

        Args:
            ref: Synced object to rename
            new_handle: Handle to rename to

        Returns:
            Reference under the new handle

        Raises:
            UnsyncedObjectError: If ref has no remote id
            InvalidHandleError: If new_handle is not filesystem-safe or is the
                current handle
            HandleCollisionError: If new_handle is already taken
            LocalObjectNotFoundError: If the object's files are missing
            RemoteError: If the remote update fails (nothing changed)
            InconsistentStateError: If the local rename or its recording fails
                after the remote update; files are moved back in the latter case
        """
        self._check_target(ref, new_handle, "rename")
        obj = self.layout.build_object(
            ref.kind, new_handle, ref.id, ref.revision, source_handle=ref.handle
        )

        logger.info(
            f"{self.container}: renaming {ref.kind.value} '{ref.handle}' -> '{new_handle}' ({ref.id})"
        )
        confirmed = self.remote.client(ref.kind).update(obj)

        try:
            new_path = self.layout.rename_object(ref.kind, ref.handle, new_handle)
        except MirrorError as e:
            logger.error(f"Local rename of '{ref.handle}' failed after remote update: {e}")
            raise InconsistentStateError(
                ref.handle, ref.id,
                "remote updated but local rename failed: source directory unchanged",
            ) from e

        try:
            self.store.record_rename(ref.kind, ref.id, new_handle, confirmed.revision)
        except MirrorError as e:
            logger.error(f"Recording rename of '{ref.handle}' failed after remote update: {e}")
            raise InconsistentStateError(
                ref.handle, ref.id,
                f"remote renamed but metadata not updated ({e}); {self._move_back(ref, new_handle)}",
            ) from e

        return ObjectRef(
            kind=ref.kind,
            handle=new_handle,
            id=ref.id,
            revision=confirmed.revision,
            checksum=self.store.get_checksum(ref.id),
            local_path=new_path,
        )

    def _move_back(self, ref: ObjectRef, new_handle: str) -> str:
        """Move renamed files back to the old handle and describe the result."""
        try:
            self.layout.rename_object(ref.kind, new_handle, ref.handle)
        except MirrorError as e:
            logger.error(f"Could not move '{new_handle}' back to '{ref.handle}': {e}")
            return f"local files left under '{new_handle}'"
        return f"local files moved back to '{ref.handle}'"

    def clone(self, ref: ObjectRef, new_handle: str) -> ObjectRef:
        """Create a remote copy of an object under a new handle.

        The copy gets a fresh id; a component's page path is cleared so the
        clone is not mounted on the same page.

        Raises:
            UnsyncedObjectError, InvalidHandleError, HandleCollisionError,
            LocalObjectNotFoundError: Before any mutation
            RemoteError: If the remote create fails (nothing changed)
            InconsistentStateError: If local files or metadata cannot be
                written after the remote create
        """
        self._check_target(ref, new_handle, "clone")
        obj = self.layout.build_object(ref.kind, new_handle, source_handle=ref.handle)
        obj = replace(obj, id=None, revision=None)
        if isinstance(obj, Component):
            obj = replace(obj, path="")

        logger.info(f"{self.container}: cloning {ref.kind.value} '{ref.handle}' as '{new_handle}'")
        created = self.remote.client(ref.kind).create(obj)

        digest = checksum(created)
        try:
            new_path = self.layout.write_object(created)
            self.store.record_save(ref.kind, created.id, new_handle, created.revision, digest)
        except MirrorError as e:
            logger.error(f"Local write of clone '{new_handle}' failed after remote create: {e}")
            raise InconsistentStateError(
                new_handle, created.id,
                f"remote clone created but local copy not recorded: {e}",
            ) from e

        return ObjectRef(
            kind=ref.kind,
            handle=new_handle,
            id=created.id,
            revision=created.revision,
            checksum=digest,
            local_path=new_path,
        )

    def delete(self, ref: ObjectRef) -> None:
        """Delete an object remotely, then its metadata, then its files.

        Raises:
            UnsyncedObjectError: If ref has no remote id
            RemoteError: If the remote delete fails (nothing changed locally)
            InconsistentStateError: If local cleanup fails after the remote delete
        """
        if ref.id is None:
            raise UnsyncedObjectError(ref.handle, "delete")

        logger.info(f"{self.container}: deleting {ref.kind.value} '{ref.handle}' ({ref.id})")
        try:
            self.remote.client(ref.kind).delete(ref.id)
        except RemoteObjectNotFoundError:
            logger.warning(f"{ref.kind.value} {ref.id} already gone remotely, cleaning up locally")

        try:
            self.store.record_delete(ref.kind, ref.id, ref.handle)
        except MirrorError as e:
            raise InconsistentStateError(
                ref.handle, ref.id, f"remote deleted but metadata not purged: {e}"
            ) from e

        try:
            self.layout.remove_object(ref.kind, ref.handle)
        except MirrorError as e:
            raise InconsistentStateError(
                ref.handle, ref.id,
                f"remote deleted but local files remain as a local-only object: {e}",
            ) from e

