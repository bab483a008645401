"""Sync-revision: reconcile one local object against its remote version."""

import logging
from dataclasses import replace
from typing import Callable

from .checksum import checksum
from .errors import UnsyncedObjectError
from .layout import ObjectLayout
from .metadata_store import MetadataStore
from .models import ObjectRef, ReconcileOutcome, ReconcileResult
from .remote_protocol import RemoteStore

logger = logging.getLogger(__name__)

# Asked when local and remote content differ; True overwrites local files
ConfirmOverwrite = Callable[[ReconcileResult], bool]


class Reconciler:
    """Brings the recorded revision of a local object up to date.

    Never writes to the remote store. When the remote content matches what
    was last synced, only the revision is refreshed. Otherwise the caller
    decides whether the remote version replaces the local files.
    """

    def __init__(self, store: MetadataStore, layout: ObjectLayout, remote: RemoteStore):
        self.store = store
        self.layout = layout
        self.remote = remote

    def sync_revision(self, ref: ObjectRef, confirm_overwrite: ConfirmOverwrite) -> ReconcileResult:
        """Reconcile ref with the remote object of the same id.

        Args:
            ref: Synced local object
            confirm_overwrite: Called with a CHECKSUM_MISMATCH result; return
                True to overwrite local files with the remote version

        Returns:
            ReconcileResult describing what happened

        Raises:
            UnsyncedObjectError: If ref has no remote id
            RemoteObjectNotFoundError: If the object no longer exists remotely
        """
        if ref.id is None:
            raise UnsyncedObjectError(ref.handle, "sync revision of")

        remote_obj = self.remote.client(ref.kind).get(ref.id)
        remote_checksum = checksum(remote_obj)
        local_checksum = self.store.get_checksum(ref.id)
        remote_revision = remote_obj.revision or remote_obj.id

        if remote_checksum == local_checksum:
            self.store.record_save(ref.kind, ref.id, ref.handle, remote_revision, remote_checksum)
            logger.info(
                f"{ref.kind.value} '{ref.handle}' unchanged remotely, "
                f"revision {ref.revision} -> {remote_revision}"
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.REVISION_REFRESHED,
                ref=self._updated(ref, remote_revision, remote_checksum),
                local_checksum=local_checksum,
                remote_checksum=remote_checksum,
                remote_revision=remote_revision,
            )

        mismatch = ReconcileResult(
            outcome=ReconcileOutcome.CHECKSUM_MISMATCH,
            ref=ref,
            local_checksum=local_checksum,
            remote_checksum=remote_checksum,
            remote_revision=remote_revision,
        )
        if not confirm_overwrite(mismatch):
            logger.info(f"Kept local {ref.kind.value} '{ref.handle}' despite remote changes")
            return mismatch

        # The remote object is written under the local handle
        remote_obj.handle = ref.handle
        self.layout.write_object(remote_obj)
        self.store.record_save(ref.kind, ref.id, ref.handle, remote_revision, remote_checksum)
        logger.info(f"Overwrote local {ref.kind.value} '{ref.handle}' with revision {remote_revision}")
        return ReconcileResult(
            outcome=ReconcileOutcome.OVERWRITTEN,
            ref=self._updated(ref, remote_revision, remote_checksum),
            local_checksum=local_checksum,
            remote_checksum=remote_checksum,
            remote_revision=remote_revision,
        )

    @staticmethod
    def _updated(ref: ObjectRef, revision: str, digest: str) -> ObjectRef:
        return replace(ref, revision=revision, checksum=digest)
