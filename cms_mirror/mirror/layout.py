"""Local filesystem layout of a container's content objects.

Layout under the container root:

    components/<handle>/<handle>.component.<markup_ext>
    components/<handle>/<handle>.component.<style_ext>
    components/<handle>/<handle>.component.json
    styles/<handle>.<style_ext>
    controllers/<handle>/<handle>.controller.<script_ext>
    controllers/<handle>/<handle>.controller.json
    .local/                     (metadata store)

JSON sidecars hold the allow-listed option fields of the object. Files are
written atomically (temp file in the target folder, then os.replace).
"""

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .checksum import pick_options
from .errors import HandleCollisionError, InvalidHandleError, LayoutError, LocalObjectNotFoundError
from .models import (
    Component,
    ContentObject,
    Controller,
    HandleKey,
    ObjectKind,
    Style,
    kind_of,
)

logger = logging.getLogger(__name__)

KIND_FOLDERS = {
    ObjectKind.COMPONENT: "components",
    ObjectKind.STYLE: "styles",
    ObjectKind.CONTROLLER: "controllers",
}

METADATA_FOLDER = ".local"

# Characters that would escape the kind folder or break the "kind|handle" key
FORBIDDEN_HANDLE_CHARS = set('/\\|\x00')

DEFAULT_COMPONENT_OPTIONS: Dict[str, Any] = {"path": ""}
DEFAULT_CONTROLLER_OPTIONS: Dict[str, Any] = {
    "default_path": "",
    "description": "",
    "exported": False,
    "methods": ["GET"],
}


def validate_handle(handle: str) -> None:
    """Check that a handle is a safe single path segment.

    Raises:
        InvalidHandleError: If the handle is empty, "." / "..", or contains
            a path separator, "|" or NUL
    """
    if not handle or not handle.strip():
        raise InvalidHandleError(handle, "handle cannot be empty")
    if handle in (".", ".."):
        raise InvalidHandleError(handle, "handle cannot be a relative path segment")
    bad = sorted(FORBIDDEN_HANDLE_CHARS.intersection(handle))
    if bad:
        raise InvalidHandleError(handle, f"handle contains forbidden characters {bad!r}")


@dataclass(frozen=True)
class LayoutConfig:
    """File extensions used for the local artifacts."""
    markup_ext: str = "html"
    style_ext: str = "less"
    script_ext: str = "js"


class ObjectLayout:
    """Maps content objects to files under one container root.

    Example:
        >>> layout = ObjectLayout(Path("site/__root"))
        >>> layout.write_object(Style(handle="base", content="body {}"))
        >>> layout.object_path(ObjectKind.STYLE, "base")
        PosixPath('site/__root/styles/base.less')
    """

    def __init__(self, root: Path, config: Optional[LayoutConfig] = None):
        self.root = Path(root)
        self.config = config or LayoutConfig()

    @property
    def metadata_dir(self) -> Path:
        return self.root / METADATA_FOLDER

    def folder_for(self, kind: ObjectKind) -> Path:
        return self.root / KIND_FOLDERS[kind]

    def object_path(self, kind: ObjectKind, handle: str) -> Path:
        """Folder of a component/controller, or file of a style."""
        if kind is ObjectKind.STYLE:
            return self.folder_for(kind) / f"{handle}.{self.config.style_ext}"
        return self.folder_for(kind) / handle

    def file_names(self, kind: ObjectKind, handle: str) -> List[str]:
        """Names of the files making up one object."""
        cfg = self.config
        if kind is ObjectKind.COMPONENT:
            return [
                f"{handle}.component.{cfg.markup_ext}",
                f"{handle}.component.{cfg.style_ext}",
                f"{handle}.component.json",
            ]
        if kind is ObjectKind.CONTROLLER:
            return [
                f"{handle}.controller.{cfg.script_ext}",
                f"{handle}.controller.json",
            ]
        return [f"{handle}.{cfg.style_ext}"]

    def file_paths(self, kind: ObjectKind, handle: str) -> List[Path]:
        if kind is ObjectKind.STYLE:
            return [self.object_path(kind, handle)]
        folder = self.object_path(kind, handle)
        return [folder / name for name in self.file_names(kind, handle)]

    def exists(self, kind: ObjectKind, handle: str) -> bool:
        return self.object_path(kind, handle).exists()

    def parse_parts(self, parts: Sequence[str]) -> Optional[HandleKey]:
        """Identify the object a container-relative path belongs to.

        Accepts the object's files and, for folder kinds, the folder itself
        when it exists as a directory.

        Returns:
            HandleKey, or None if the path is not an object artifact
        """
        if len(parts) < 2:
            return None
        folder, rest = parts[0], list(parts[1:])

        for kind in (ObjectKind.COMPONENT, ObjectKind.CONTROLLER):
            if folder != KIND_FOLDERS[kind]:
                continue
            handle = rest[0]
            if len(rest) == 1:
                if (self.root / folder / handle).is_dir():
                    return HandleKey(kind, handle)
                return None
            if len(rest) == 2 and rest[1] in self.file_names(kind, handle):
                return HandleKey(kind, handle)
            return None

        if folder == KIND_FOLDERS[ObjectKind.STYLE] and len(rest) == 1:
            suffix = f".{self.config.style_ext}"
            filename = rest[0]
            if filename.endswith(suffix) and len(filename) > len(suffix):
                return HandleKey(ObjectKind.STYLE, filename[:-len(suffix)])
        return None

    # ------------------------------------------------------------------
    # Export (remote object -> files)

    def write_object(self, obj: ContentObject) -> Path:
        """Write an object to its canonical files, replacing existing ones.

        Returns:
            The object's path (folder or style file)

        Raises:
            InvalidHandleError: If the handle is not filesystem-safe
            UnknownObjectKindError: If obj is not a known content type
            LayoutError: If a file cannot be written
        """
        kind = kind_of(obj)
        validate_handle(obj.handle)
        paths = self.file_paths(kind, obj.handle)

        if kind is ObjectKind.COMPONENT:
            contents = [obj.template or "", obj.style or "", _dump_sidecar(pick_options(obj))]
        elif kind is ObjectKind.CONTROLLER:
            contents = [obj.script or "", _dump_sidecar(pick_options(obj))]
        else:
            contents = [obj.content or ""]

        write_files_atomic(list(zip(paths, contents)))
        logger.debug(f"Wrote {kind.value} '{obj.handle}' to {self.object_path(kind, obj.handle)}")
        return self.object_path(kind, obj.handle)

    # ------------------------------------------------------------------
    # Import (files -> object)

    def build_object(
        self,
        kind: ObjectKind,
        handle: str,
        object_id: Optional[str] = None,
        revision: Optional[str] = None,
        source_handle: Optional[str] = None,
        create_missing: bool = True,
    ) -> ContentObject:
        """Build a content object from its local files.

        Missing files are created with default content, or only read as that
        default when create_missing is False. source_handle reads the files
        of another handle (used to rebuild an object under a new name before
        its files are renamed).

        Raises:
            LayoutError: If a file cannot be read or a sidecar is not a JSON object
        """
        read_handle = source_handle or handle
        paths = self.file_paths(kind, read_handle)

        if kind is ObjectKind.COMPONENT:
            template = _read_text_or_create(paths[0], "", create_missing)
            style = _read_text_or_create(paths[1], "", create_missing)
            options = _read_sidecar_or_create(paths[2], DEFAULT_COMPONENT_OPTIONS, create_missing)
            return Component(
                handle=handle,
                template=template,
                style=style,
                id=object_id,
                revision=revision,
                **_allowed(options, Component.OPTION_KEYS),
            )
        if kind is ObjectKind.CONTROLLER:
            script = _read_text_or_create(paths[0], "", create_missing)
            options = _read_sidecar_or_create(paths[1], DEFAULT_CONTROLLER_OPTIONS, create_missing)
            return Controller(
                handle=handle,
                script=script,
                id=object_id,
                revision=revision,
                **_allowed(options, Controller.OPTION_KEYS),
            )
        content = _read_text_or_create(paths[0], "", create_missing)
        return Style(handle=handle, content=content, id=object_id, revision=revision)

    def read_sidecar(self, kind: ObjectKind, handle: str) -> Optional[Dict[str, Any]]:
        """Read an object's JSON sidecar without creating it.

        Returns:
            The sidecar dict, or None if the object has no sidecar on disk
        """
        if kind is ObjectKind.STYLE:
            return None
        sidecar = self.file_paths(kind, handle)[-1]
        try:
            text = sidecar.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LayoutError(str(sidecar), 'read', str(e))
        return _parse_sidecar(sidecar, text)

    # ------------------------------------------------------------------
    # Local mutations used by rename/clone/delete

    def rename_object(self, kind: ObjectKind, old_handle: str, new_handle: str) -> Path:
        """Rename an object's files (and folder) from one handle to another.

        Inner files are renamed first; if the folder rename then fails, the
        inner renames are reverted so the source directory stays unchanged.

        Raises:
            LocalObjectNotFoundError: If the source does not exist
            HandleCollisionError: If the target already exists
            LayoutError: If a rename fails
        """
        validate_handle(new_handle)
        source = self.object_path(kind, old_handle)
        target = self.object_path(kind, new_handle)
        if not source.exists():
            raise LocalObjectNotFoundError(old_handle, str(source))
        if target.exists():
            raise HandleCollisionError(kind.value, new_handle)

        if kind is ObjectKind.STYLE:
            try:
                os.rename(source, target)
            except OSError as e:
                raise LayoutError(str(source), 'rename', str(e))
            return target

        renamed: List[Tuple[Path, Path]] = []
        try:
            for old_name, new_name in zip(
                self.file_names(kind, old_handle), self.file_names(kind, new_handle)
            ):
                old_file, new_file = source / old_name, source / new_name
                if old_file.exists():
                    os.rename(old_file, new_file)
                    renamed.append((old_file, new_file))
            os.rename(source, target)
        except OSError as e:
            logger.error(f"Rename of {kind.value} '{old_handle}' failed: {e} - reverting")
            for old_file, new_file in reversed(renamed):
                try:
                    os.rename(new_file, old_file)
                except OSError as revert_error:
                    logger.warning(f"Failed to revert {new_file}: {revert_error}")
            raise LayoutError(str(source), 'rename', str(e))
        return target

    def remove_object(self, kind: ObjectKind, handle: str) -> None:
        """Delete an object's files (and folder). Missing files are ignored.

        Raises:
            LayoutError: If removal fails
        """
        path = self.object_path(kind, handle)
        try:
            if kind is ObjectKind.STYLE:
                path.unlink()
            else:
                shutil.rmtree(path)
        except FileNotFoundError:
            logger.warning(f"{kind.value} '{handle}' has no local files at {path}, nothing to remove")
        except OSError as e:
            raise LayoutError(str(path), 'delete', str(e))


def write_files_atomic(files: List[Tuple[Path, str]]) -> None:
    """Write several files, each replaced atomically.

    Phase 1 writes every file to a temp file beside its target; phase 2
    moves them into place. A failure in phase 1 leaves all targets untouched.

    Raises:
        LayoutError: If any write fails
    """
    staged: List[Tuple[str, Path]] = []
    try:
        for target, content in files:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, temp_path = tempfile.mkstemp(
                    dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
                )
                staged.append((temp_path, target))
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(content)
            except OSError as e:
                raise LayoutError(str(target), 'write', f"Atomic write phase 1 failed: {e}")

        for temp_path, target in staged:
            try:
                os.replace(temp_path, target)
            except OSError as e:
                raise LayoutError(str(target), 'move', f"Atomic write phase 2 failed: {e}")
    finally:
        for temp_path, _ in staged:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as e:
                    logger.warning(f"Failed to remove temp file {temp_path}: {e}")


def _dump_sidecar(options: Dict[str, Any]) -> str:
    return json.dumps(options, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def _allowed(options: Dict[str, Any], keys: Sequence[str]) -> Dict[str, Any]:
    return {key: options[key] for key in keys if key in options}


def _parse_sidecar(path: Path, text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LayoutError(str(path), 'parse', f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        raise LayoutError(str(path), 'parse', f"Expected a JSON object, got {type(data).__name__}")
    return data


def _read_text_or_create(path: Path, default: str, create: bool = True) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except FileNotFoundError:
        if not create:
            return default
    except OSError as e:
        raise LayoutError(str(path), 'read', str(e))

    logger.debug(f"Creating missing file {path} with default content")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'x', encoding='utf-8') as f:
            f.write(default)
    except FileExistsError:
        # Created concurrently, read what is there now
        return path.read_text(encoding='utf-8')
    except OSError as e:
        raise LayoutError(str(path), 'create', str(e))
    return default


def _read_sidecar_or_create(path: Path, default: Dict[str, Any], create: bool = True) -> Dict[str, Any]:
    text = _read_text_or_create(path, _dump_sidecar(default), create)
    return _parse_sidecar(path, text)
