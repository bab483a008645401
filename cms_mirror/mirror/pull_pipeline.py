"""Pull (export) pipeline: remote store -> local files + metadata.

The pipeline fetches a cheap id/revision snapshot of every kind, skips every
object whose revision matches the one recorded locally, fetches the rest in
fixed-size batches and writes them to the local layout. Revision, checksum
and handle bindings are staged in memory and merged into the metadata store
in one locked pass only after every batch succeeded, so an interrupted pull
never leaves partial metadata behind (the next pull simply refetches).
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .remote_protocol import RemoteStore

from .checksum import checksum
from .errors import PipelineAbortedError
from .layout import ObjectLayout
from .metadata_store import MetadataStore
from .models import HandleKey, MapKind, ObjectKind, PullResult, RemoteSnapshot, kind_of

logger = logging.getLogger(__name__)

BATCH_SIZE = 100

# Called as progress(message, completed, total) after each batch
ProgressCallback = Callable[[str, int, int], None]

# Components and styles first, controllers last
PULL_ORDER = (ObjectKind.COMPONENT, ObjectKind.STYLE, ObjectKind.CONTROLLER)


def chunk(items: Sequence[str], size: int) -> List[List[str]]:
    """Split items into lists of at most size elements."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class PullPipeline:
    """Exports changed remote objects of one container to the local layout.

    Example:
        >>> pipeline = PullPipeline("main", store, layout, remote)
        >>> result = pipeline.pull()
        >>> print(f"Pulled {result.fetched_count}, {result.unchanged_count} unchanged")
    """

    def __init__(
        self,
        container: str,
        store: MetadataStore,
        layout: ObjectLayout,
        remote: RemoteStore,
        batch_size: int = BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.container = container
        self.store = store
        self.layout = layout
        self.remote = remote
        self.batch_size = batch_size

    def changed_ids(self, kind: ObjectKind) -> Tuple[List[str], int]:
        """Fetch the snapshot of one kind and split it into changed/unchanged.

        Returns:
            (changed ids in snapshot order, unchanged count)
        """
        snapshot: List[RemoteSnapshot] = self.remote.client(kind).list_snapshot()
        changed = []
        unchanged = 0
        for item in snapshot:
            # Some remote objects have never been revised; their id stands in
            revision = item.revision or item.id
            if self.store.get_revision(item.id) == revision:
                unchanged += 1
            else:
                changed.append(item.id)
        logger.debug(
            f"{self.container}: {kind.value} snapshot has {len(snapshot)} item(s), "
            f"{len(changed)} changed"
        )
        return changed, unchanged

    def pull(self, progress: Optional[ProgressCallback] = None) -> PullResult:
        """Run a full pull for the container.

        Args:
            progress: Optional callback invoked after each batch

        Returns:
            PullResult summary

        Raises:
            PipelineAbortedError: If a snapshot or batch RPC fails (no metadata committed)
            UnknownObjectKindError: If the remote returns an object of unknown kind
            LayoutError: If a file cannot be written
        """
        logger.info(f"Pulling container '{self.container}'")
        result = PullResult(container=self.container)

        plan: Dict[ObjectKind, List[List[str]]] = {}
        for kind in PULL_ORDER:
            try:
                changed, unchanged = self.changed_ids(kind)
            except Exception as e:
                logger.error(f"{self.container}: {kind.value} snapshot failed: {e}")
                raise PipelineAbortedError(self.container, 0, 1, f"{kind.value} snapshot failed: {e}") from e
            result.unchanged_count += unchanged
            plan[kind] = chunk(changed, self.batch_size)

        batch_count = sum(len(batches) for batches in plan.values())
        total = sum(len(batch) for batches in plan.values() for batch in batches)
        if progress:
            progress(f"Exporting {total} object(s)...", 0, total)

        revisions: Dict[str, str] = {}
        checksums: Dict[str, str] = {}
        handles: Dict[str, str] = {}
        done = 0
        batch_index = 0

        for kind in PULL_ORDER:
            client = self.remote.client(kind)
            for batch in plan[kind]:
                try:
                    objects = client.get_batch(batch)
                except Exception as e:
                    logger.error(
                        f"{self.container}: batch {batch_index + 1}/{batch_count} "
                        f"({kind.value}) failed: {e}"
                    )
                    raise PipelineAbortedError(self.container, batch_index, batch_count, str(e)) from e

                for obj in objects:
                    object_kind = kind_of(obj)
                    self.layout.write_object(obj)
                    # Unrevised objects are recorded under their id, matching changed_ids()
                    revisions[obj.id] = obj.revision or obj.id
                    checksums[obj.id] = checksum(obj)
                    handles[HandleKey(object_kind, obj.handle).to_key()] = obj.id
                    result.fetched.setdefault(object_kind, []).append(obj.handle)

                done += len(batch)
                batch_index += 1
                if progress:
                    progress(f"Exported {kind.value} batch {batch_index}/{batch_count}", done, total)

        result.batch_count = batch_count
        if progress:
            progress("Saving metadata...", done, total)
        self.store.merge_many({
            MapKind.REVISION: revisions,
            MapKind.CHECKSUM: checksums,
            MapKind.HANDLE: handles,
        })

        logger.info(
            f"Pulled '{self.container}': {result.fetched_count} fetched, "
            f"{result.unchanged_count} unchanged, {batch_count} batch(es)"
        )
        return result
