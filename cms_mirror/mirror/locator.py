"""Resolve local paths and remote ids to object references."""

import logging
from pathlib import Path, PurePath
from typing import Optional, Union

from .layout import ObjectLayout
from .metadata_store import MetadataStore
from .models import ObjectKind, ObjectRef

logger = logging.getLogger(__name__)


class ObjectLocator:
    """Answers "what object is this file" for one container.

    Example:
        >>> locator = ObjectLocator(store, layout)
        >>> ref = locator.resolve_by_path("components/home/home.component.html")
        >>> ref.kind, ref.handle
        (<ObjectKind.COMPONENT: 'component'>, 'home')
    """

    def __init__(self, store: MetadataStore, layout: ObjectLayout):
        self.store = store
        self.layout = layout

    def make_ref(self, kind: ObjectKind, handle: str) -> ObjectRef:
        """Build a reference for (kind, handle) from the current metadata."""
        object_id = self.store.get_id(kind, handle)
        return ObjectRef(
            kind=kind,
            handle=handle,
            id=object_id,
            revision=self.store.get_revision(object_id) if object_id else None,
            checksum=self.store.get_checksum(object_id) if object_id else None,
            local_path=self.layout.object_path(kind, handle),
        )

    def resolve_by_path(self, path: Union[str, PurePath]) -> Optional[ObjectRef]:
        """Resolve a path inside the container to an object reference.

        Args:
            path: Absolute path under the container root, or a path relative to it

        Returns:
            ObjectRef, or None if the path is outside the container or is not
            an object artifact
        """
        path = Path(path)
        if path.is_absolute():
            try:
                path = path.relative_to(self.layout.root.resolve())
            except ValueError:
                try:
                    path = path.relative_to(self.layout.root)
                except ValueError:
                    logger.debug(f"{path} is outside container root {self.layout.root}")
                    return None

        handle_key = self.layout.parse_parts(path.parts)
        if handle_key is None:
            return None
        return self.make_ref(handle_key.kind, handle_key.handle)

    def resolve_by_id(self, object_id: str) -> Optional[ObjectRef]:
        """Resolve a remote id to a reference, or None if it is not bound locally."""
        handle_key = self.store.get_handle(object_id)
        if handle_key is None:
            return None
        return ObjectRef(
            kind=handle_key.kind,
            handle=handle_key.handle,
            id=object_id,
            revision=self.store.get_revision(object_id),
            checksum=self.store.get_checksum(object_id),
            local_path=self.layout.object_path(handle_key.kind, handle_key.handle),
        )
