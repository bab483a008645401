"""A container: one remote content scope mirrored into one local folder.

The Container owns one instance of every engine part (metadata store, file
layout, locator, pull pipeline, save queue, object operations, reconciler)
and is the entry point the workspace and the CLI talk to.
"""

import logging
from pathlib import Path, PurePath
from typing import List, Optional, Union

from .errors import SaveInProgressError
from .layout import LayoutConfig, ObjectLayout
from .locator import ObjectLocator
from .metadata_store import MetadataStore
from .models import ObjectKind, ObjectRef, PageInfo, PullResult, ReconcileResult
from .object_operations import ObjectOperations
from .pull_pipeline import BATCH_SIZE, ProgressCallback, PullPipeline
from .reconciler import ConfirmOverwrite, Reconciler
from .remote_protocol import RemoteStore
from .save_queue import SaveQueue

logger = logging.getLogger(__name__)

ROOT_FOLDER = "__root"


def local_folder_name(remote_path: str) -> str:
    """Name of the local folder mirroring a remote container path.

    Example:
        >>> local_folder_name("/")
        '__root'
        >>> local_folder_name("/shop")
        'shop'
    """
    name = remote_path.strip("/")
    return name or ROOT_FOLDER


class Container:
    """One mirrored container.

    Example:
        >>> container = Container("main", Path("site/__root"), remote)
        >>> container.load()
        >>> container.pull()
        >>> container.enqueue_save(container.ref(ObjectKind.STYLE, "base"))
    """

    def __init__(
        self,
        name: str,
        root: Path,
        remote: RemoteStore,
        layout_config: Optional[LayoutConfig] = None,
        batch_size: int = BATCH_SIZE,
    ):
        self.name = name
        self.root = Path(root)
        self.remote = remote
        self.layout = ObjectLayout(self.root, layout_config)
        self.store = MetadataStore(self.layout.metadata_dir)
        self.locator = ObjectLocator(self.store, self.layout)
        self.pipeline = PullPipeline(name, self.store, self.layout, remote, batch_size)
        self.queue = SaveQueue(name, self.store, self.layout, remote)
        self.operations = ObjectOperations(name, self.store, self.layout, remote)
        self.reconciler = Reconciler(self.store, self.layout, remote)

    def load(self) -> "Container":
        """Load persisted metadata. Returns self for chaining."""
        self.store.load()
        return self

    def reload_metadata(self) -> None:
        """Re-read metadata from disk, e.g. after files were checked out."""
        self.store.reload()

    # ------------------------------------------------------------------
    # Lookups

    def ref(self, kind: ObjectKind, handle: str) -> ObjectRef:
        return self.locator.make_ref(kind, handle)

    def resolve_path(self, path: Union[str, PurePath]) -> Optional[ObjectRef]:
        return self.locator.resolve_by_path(path)

    def resolve_id(self, object_id: str) -> Optional[ObjectRef]:
        return self.locator.resolve_by_id(object_id)

    def list_pages(self) -> List[PageInfo]:
        """Synced components mounted on a page path, sorted by path."""
        pages = []
        for handle, object_id in self.store.handles_of_kind(ObjectKind.COMPONENT):
            sidecar = self.layout.read_sidecar(ObjectKind.COMPONENT, handle)
            if not sidecar or not sidecar.get("path"):
                continue
            pages.append(PageInfo(
                handle=handle,
                id=object_id,
                path=sidecar["path"],
                controller_id=sidecar.get("controller_id"),
                override_params=sidecar.get("override_params"),
            ))
        return sorted(pages, key=lambda page: (page.path, page.handle))

    # ------------------------------------------------------------------
    # Engine operations

    def pull(self, progress: Optional[ProgressCallback] = None) -> PullResult:
        self._ensure_queue_idle("pull")
        return self.pipeline.pull(progress)

    def enqueue_save(self, ref: ObjectRef) -> None:
        self.queue.enqueue(ref)

    def save_now(self, ref: ObjectRef) -> ObjectRef:
        """Save one object synchronously in the calling thread."""
        self._ensure_queue_idle("save")
        return self.queue.save(ref)

    def rename(self, ref: ObjectRef, new_handle: str) -> ObjectRef:
        self._ensure_queue_idle("rename")
        return self.operations.rename(ref, new_handle)

    def clone(self, ref: ObjectRef, new_handle: str) -> ObjectRef:
        self._ensure_queue_idle("clone")
        return self.operations.clone(ref, new_handle)

    def delete(self, ref: ObjectRef) -> None:
        self._ensure_queue_idle("delete")
        self.operations.delete(ref)

    def sync_revision(self, ref: ObjectRef, confirm_overwrite: ConfirmOverwrite) -> ReconcileResult:
        self._ensure_queue_idle("sync revision")
        return self.reconciler.sync_revision(ref, confirm_overwrite)

    def _ensure_queue_idle(self, operation: str) -> None:
        if self.queue.is_busy():
            raise SaveInProgressError(self.name, operation)
