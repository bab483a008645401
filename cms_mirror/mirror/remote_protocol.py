"""Interface the synchronization engine requires from a remote store.

A remote store exposes one client per object kind. The engine only depends on
these protocols; HTTPRemoteStore is the shipped implementation and tests use
an in-memory one.
"""

from typing import List, Protocol, Sequence

from .models import ContentObject, ObjectKind, RemoteSnapshot


class KindClient(Protocol):
    """Remote operations for one object kind within one container."""

    def list_snapshot(self) -> List[RemoteSnapshot]:
        """Return id and revision of every remote object of this kind."""
        ...

    def get_batch(self, ids: Sequence[str]) -> List[ContentObject]:
        """Return the full objects for the given ids."""
        ...

    def get_by_handle(self, handle: str) -> ContentObject:
        """Return the object bound to handle (RemoteObjectNotFoundError if none)."""
        ...

    def get(self, object_id: str) -> ContentObject:
        """Return one object (RemoteObjectNotFoundError if absent)."""
        ...

    def create(self, obj: ContentObject) -> ContentObject:
        """Create obj remotely; return it with id and revision assigned."""
        ...

    def update(self, obj: ContentObject) -> ContentObject:
        """Update obj remotely; return it with its new revision."""
        ...

    def delete(self, object_id: str) -> None:
        ...


class RemoteStore(Protocol):
    """A remote content scope, handing out per-kind clients."""

    def client(self, kind: ObjectKind) -> KindClient:
        ...
