"""Per-container local metadata store.

The store keeps three persisted maps for one container:

- revisions.json: id -> last seen remote revision
- checksums.json: id -> checksum of the last synced content
- handles.json:   "kind|handle" -> id

plus an in-memory reverse index (id -> HandleKey) derived from the handle
map. Every mutation and every lookup goes through one lock, so a multi-map
update such as record_save() is never observed half-applied.

Files are written as stably sorted JSON so version-control diffs stay
minimal. A missing file is an empty map, never an error.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import (
    HandleCollisionError,
    MetadataError,
    MetadataFilesystemError,
    UnknownObjectKindError,
)
from .models import HandleKey, MapKind, ObjectKind

logger = logging.getLogger(__name__)

LocalDataMap = Dict[str, str]


class MetadataStore:
    """Revision, checksum and handle maps for one container.

    Example:
        >>> store = MetadataStore(Path("site/__root/.local"))
        >>> store.load()
        >>> store.record_save(ObjectKind.COMPONENT, "123", "foo", "1", "abc")
        >>> store.get_id(ObjectKind.COMPONENT, "foo")
        '123'
    """

    def __init__(self, metadata_dir: Path):
        """Initialize an empty store.

        Args:
            metadata_dir: Folder holding the three JSON files
        """
        self.metadata_dir = Path(metadata_dir)
        self._lock = threading.Lock()
        self._maps: Dict[MapKind, LocalDataMap] = {key: {} for key in MapKind}
        self._reverse_index: Dict[str, HandleKey] = {}

    def path_for(self, map_kind: MapKind) -> Path:
        return self.metadata_dir / map_kind.value

    # ------------------------------------------------------------------
    # Loading

    def load(self) -> None:
        """Read all maps from disk and rebuild the reverse index.

        Raises:
            MetadataFilesystemError: If a file exists but cannot be read
            MetadataError: If a file is not a JSON object of strings
        """
        with self._lock:
            self._maps = {key: self._read_map(key) for key in MapKind}
            self._rebuild_reverse_index()
        logger.debug(
            f"Loaded metadata from {self.metadata_dir}: "
            f"{len(self._maps[MapKind.HANDLE])} handle(s)"
        )

    def reload(self) -> None:
        """Re-read all maps, discarding in-memory state (e.g. after a checkout)."""
        logger.info(f"Reloading metadata from {self.metadata_dir}")
        self.load()

    # ------------------------------------------------------------------
    # Bulk mutation

    def merge(self, map_kind: MapKind, partial: Mapping[str, str]) -> None:
        """Shallow-merge partial into a map and persist it.

        An empty partial is a no-op and does not touch the file.
        """
        if not partial:
            logger.debug(f"Skipping empty merge into {map_kind.value}")
            return
        with self._lock:
            self._commit({map_kind: self._merged(map_kind, partial)})

    def merge_many(self, partials: Mapping[MapKind, Mapping[str, str]]) -> None:
        """Merge several maps under a single lock hold."""
        with self._lock:
            updates = {
                map_kind: self._merged(map_kind, partial)
                for map_kind, partial in partials.items()
                if partial
            }
            if updates:
                self._commit(updates)

    def replace(self, map_kind: MapKind, full: Mapping[str, str]) -> None:
        """Overwrite a map unconditionally and persist it."""
        new_map = dict(full)
        self._validate_map(map_kind, new_map)
        with self._lock:
            self._commit({map_kind: new_map})

    # ------------------------------------------------------------------
    # Lookups

    def get_id(self, kind: ObjectKind, handle: str) -> Optional[str]:
        with self._lock:
            return self._maps[MapKind.HANDLE].get(HandleKey(kind, handle).to_key())

    def get_revision(self, object_id: str) -> Optional[str]:
        with self._lock:
            return self._maps[MapKind.REVISION].get(object_id)

    def get_checksum(self, object_id: str) -> Optional[str]:
        with self._lock:
            return self._maps[MapKind.CHECKSUM].get(object_id)

    def get_handle(self, object_id: str) -> Optional[HandleKey]:
        with self._lock:
            return self._reverse_index.get(object_id)

    def get_map(self, map_kind: MapKind) -> LocalDataMap:
        """Return a copy of one map."""
        with self._lock:
            return dict(self._maps[map_kind])

    def handles_of_kind(self, kind: ObjectKind) -> List[Tuple[str, str]]:
        """Return sorted (handle, id) pairs bound for one kind."""
        with self._lock:
            return sorted(
                (key.handle, object_id)
                for object_id, key in self._reverse_index.items()
                if key.kind is kind
            )

    # ------------------------------------------------------------------
    # Logical updates

    def record_save(
        self,
        kind: ObjectKind,
        object_id: str,
        handle: str,
        revision: str,
        checksum: str,
    ) -> None:
        """Record a successful save or refresh of one object.

        Updates checksum and revision, and binds the handle if this id/handle
        pair is new, all under one lock hold.

        Raises:
            HandleCollisionError: If the handle is bound to a different id
        """
        key = HandleKey(kind, handle).to_key()
        with self._lock:
            bound_id = self._maps[MapKind.HANDLE].get(key)
            if bound_id is not None and bound_id != object_id:
                raise HandleCollisionError(kind.value, handle, bound_id)

            updates = {
                MapKind.CHECKSUM: self._merged(MapKind.CHECKSUM, {object_id: checksum}),
                MapKind.REVISION: self._merged(MapKind.REVISION, {object_id: revision}),
            }
            if bound_id is None:
                updates[MapKind.HANDLE] = self._merged(MapKind.HANDLE, {key: object_id})
            self._commit(updates)

        logger.debug(f"Recorded save of {kind.value} '{handle}' ({object_id}) at revision {revision}")

    def record_rename(
        self,
        kind: ObjectKind,
        object_id: str,
        new_handle: str,
        new_revision: str,
    ) -> None:
        """Record a rename: new revision and handle key swapped atomically.

        Raises:
            MetadataError: If the id has no bound handle of this kind
            HandleCollisionError: If the new handle is bound to a different id
        """
        new_key = HandleKey(kind, new_handle).to_key()
        with self._lock:
            old = self._reverse_index.get(object_id)
            if old is None or old.kind is not kind:
                raise MetadataError(f"No {kind.value} handle bound for id {object_id}")

            bound_id = self._maps[MapKind.HANDLE].get(new_key)
            if bound_id is not None and bound_id != object_id:
                raise HandleCollisionError(kind.value, new_handle, bound_id)

            handles = dict(self._maps[MapKind.HANDLE])
            handles.pop(old.to_key(), None)
            handles[new_key] = object_id
            self._commit({
                MapKind.REVISION: self._merged(MapKind.REVISION, {object_id: new_revision}),
                MapKind.HANDLE: handles,
            })

        logger.debug(f"Recorded rename of {kind.value} {object_id}: '{old.handle}' -> '{new_handle}'")

    def record_delete(self, kind: ObjectKind, object_id: str, handle: str) -> None:
        """Purge an object's checksum, revision and handle binding."""
        key = HandleKey(kind, handle).to_key()
        with self._lock:
            handles = dict(self._maps[MapKind.HANDLE])
            bound_id = handles.get(key)
            if bound_id is not None and bound_id != object_id:
                logger.warning(
                    f"Handle '{handle}' is bound to {bound_id}, not {object_id}; "
                    f"keeping that binding"
                )
            handles = {k: v for k, v in handles.items() if v != object_id}

            checksums = dict(self._maps[MapKind.CHECKSUM])
            checksums.pop(object_id, None)
            revisions = dict(self._maps[MapKind.REVISION])
            revisions.pop(object_id, None)

            self._commit({
                MapKind.CHECKSUM: checksums,
                MapKind.REVISION: revisions,
                MapKind.HANDLE: handles,
            })

        logger.debug(f"Recorded delete of {kind.value} '{handle}' ({object_id})")

    # ------------------------------------------------------------------
    # Internals (callers hold self._lock)

    def _merged(self, map_kind: MapKind, partial: Mapping[str, str]) -> LocalDataMap:
        """Return the map that results from merging partial, without committing."""
        partial = dict(partial)
        self._validate_map(map_kind, partial)
        current = dict(self._maps[map_kind])
        if map_kind is MapKind.HANDLE:
            # An id rebound under a new key loses its stale key
            rebound_ids = set(partial.values())
            current = {k: v for k, v in current.items() if v not in rebound_ids}
        current.update(partial)
        return current

    def _commit(self, updates: Mapping[MapKind, LocalDataMap]) -> None:
        """Persist updated maps together, then swap them in memory."""
        self._write_maps(updates)
        for map_kind, new_map in updates.items():
            self._maps[map_kind] = new_map
        if MapKind.HANDLE in updates:
            self._rebuild_reverse_index()

    def _rebuild_reverse_index(self) -> None:
        index: Dict[str, HandleKey] = {}
        for key, object_id in sorted(self._maps[MapKind.HANDLE].items()):
            try:
                handle_key = HandleKey.from_key(key)
            except (ValueError, UnknownObjectKindError) as e:
                logger.warning(f"Skipping unreadable handle map key {key!r}: {e}")
                continue
            if object_id in index:
                logger.warning(
                    f"Id {object_id} bound to both '{index[object_id].to_key()}' "
                    f"and '{key}'; using '{key}'"
                )
            index[object_id] = handle_key
        self._reverse_index = index

    def _validate_map(self, map_kind: MapKind, data: Mapping[str, str]) -> None:
        for key, value in data.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise MetadataError(
                    f"{map_kind.value} entries must map strings to strings, "
                    f"got {type(key).__name__} -> {type(value).__name__}"
                )
            if map_kind is MapKind.HANDLE:
                try:
                    HandleKey.from_key(key)
                except ValueError as e:
                    raise MetadataError(str(e)) from e

    def _read_map(self, map_kind: MapKind) -> LocalDataMap:
        file_path = self.path_for(map_kind)
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            return {}
        except PermissionError:
            raise MetadataFilesystemError(str(file_path), 'read', 'Permission denied')
        except OSError as e:
            raise MetadataFilesystemError(str(file_path), 'read', str(e))

        if not content.strip():
            return {}

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise MetadataError(f"Invalid JSON: {e}", str(file_path)) from e

        if not isinstance(data, dict):
            raise MetadataError(
                f"Expected a JSON object, got {type(data).__name__}", str(file_path)
            )
        for key, value in data.items():
            if not isinstance(value, str):
                raise MetadataError(
                    f"Value for '{key}' must be a string, got {type(value).__name__}",
                    str(file_path),
                )
        return data

    def _write_maps(self, updates: Mapping[MapKind, LocalDataMap]) -> None:
        """Write several map files so that either all of them change or none.

        Every file is staged to a temp file and the current content of each
        target is read before anything is moved into place. If a later move
        fails, targets already replaced get their previous content back.
        """
        try:
            self.metadata_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MetadataFilesystemError(str(self.metadata_dir), 'create_directory', str(e))

        staged: List[Tuple[str, Path, Optional[str]]] = []
        replaced: List[Tuple[Path, Optional[str]]] = []
        try:
            for map_kind, data in updates.items():
                file_path = self.path_for(map_kind)
                content = json.dumps(data, sort_keys=True, indent=2, ensure_ascii=False) + "\n"
                previous = self._previous_content(file_path)
                try:
                    fd, temp_path = tempfile.mkstemp(
                        dir=str(self.metadata_dir), prefix=f".{map_kind.value}.", suffix=".tmp"
                    )
                    staged.append((temp_path, file_path, previous))
                    with os.fdopen(fd, 'w', encoding='utf-8') as f:
                        f.write(content)
                except PermissionError:
                    raise MetadataFilesystemError(str(file_path), 'write', 'Permission denied')
                except OSError as e:
                    raise MetadataFilesystemError(str(file_path), 'write', str(e))

            for temp_path, file_path, previous in staged:
                try:
                    os.replace(temp_path, file_path)
                except OSError as e:
                    self._restore(replaced)
                    raise MetadataFilesystemError(str(file_path), 'write', str(e))
                replaced.append((file_path, previous))
        finally:
            for temp_path, _, _ in staged:
                if os.path.exists(temp_path):
                    try:
                        os.remove(temp_path)
                    except OSError as e:
                        logger.warning(f"Failed to remove temp file {temp_path}: {e}")

    @staticmethod
    def _previous_content(file_path: Path) -> Optional[str]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise MetadataFilesystemError(str(file_path), 'read', str(e))

    def _restore(self, replaced: List[Tuple[Path, Optional[str]]]) -> None:
        """Put back the content of already replaced files after a failed write."""
        for file_path, previous in reversed(replaced):
            try:
                if previous is None:
                    os.remove(file_path)
                    continue
                fd, temp_path = tempfile.mkstemp(
                    dir=str(self.metadata_dir), prefix=f".{file_path.name}.", suffix=".restore"
                )
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(previous)
                os.replace(temp_path, file_path)
            except OSError as e:
                logger.error(f"Could not restore {file_path} after a failed write: {e}")
