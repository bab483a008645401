"""Data models for the synchronization engine.

This module defines the content object kinds, the local object reference,
the metadata map identifiers and the result types returned by pull, save,
and reconciliation. All models use dataclasses, following the patterns of
the rest of the project.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, List, Optional, Union

from .errors import UnknownObjectKindError


class ObjectKind(str, Enum):
    """Kind discriminant of a content object.

    The value is the persisted form used in handle map keys and wire payloads.
    """
    COMPONENT = "component"
    STYLE = "style"
    CONTROLLER = "controller"

    @classmethod
    def parse(cls, value: object) -> "ObjectKind":
        """Parse a kind from its persisted value.

        Raises:
            UnknownObjectKindError: If value names no known kind
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownObjectKindError(value) from None


@dataclass
class Component:
    """Page component: template markup, nested style fragment, binding options.

    Attributes:
        handle: Filesystem-safe name, unique among components in a container
        template: Markup source
        style: Nested stylesheet fragment
        path: Page path the component is mounted on ("" for none)
        controller_id: Id of the controller bound to the page
        override_params: Parameters overriding the controller defaults
        id: Remote id (None until first saved)
        revision: Remote revision token
    """
    handle: str
    template: str = ""
    style: str = ""
    path: str = ""
    controller_id: Optional[str] = None
    override_params: Optional[Dict[str, str]] = None
    id: Optional[str] = None
    revision: Optional[str] = None

    kind: ClassVar[ObjectKind] = ObjectKind.COMPONENT
    OPTION_KEYS: ClassVar[tuple] = ("path", "controller_id", "override_params")


@dataclass
class Style:
    """Standalone stylesheet."""
    handle: str
    content: str = ""
    id: Optional[str] = None
    revision: Optional[str] = None

    kind: ClassVar[ObjectKind] = ObjectKind.STYLE
    OPTION_KEYS: ClassVar[tuple] = ()


@dataclass
class Controller:
    """Server-side controller: script plus request-handling options."""
    handle: str
    script: str = ""
    default_params: Optional[Dict[str, str]] = None
    default_query: Optional[Dict[str, str]] = None
    default_path: str = ""
    description: str = ""
    exported: bool = False
    middleware: Optional[List[str]] = None
    methods: List[str] = field(default_factory=lambda: ["GET"])
    id: Optional[str] = None
    revision: Optional[str] = None

    kind: ClassVar[ObjectKind] = ObjectKind.CONTROLLER
    OPTION_KEYS: ClassVar[tuple] = (
        "default_params",
        "default_query",
        "default_path",
        "description",
        "exported",
        "middleware",
        "methods",
    )


ContentObject = Union[Component, Style, Controller]

OBJECT_TYPES: Dict[ObjectKind, type] = {
    ObjectKind.COMPONENT: Component,
    ObjectKind.STYLE: Style,
    ObjectKind.CONTROLLER: Controller,
}


def kind_of(obj: object) -> ObjectKind:
    """Return the kind of a content object.

    Raises:
        UnknownObjectKindError: If obj is not one of the known content types
    """
    for kind, object_type in OBJECT_TYPES.items():
        if type(obj) is object_type:
            return kind
    raise UnknownObjectKindError(type(obj).__name__)


@dataclass(frozen=True)
class HandleKey:
    """Tagged (kind, handle) pair used by the handle map and reverse index.

    The "kind|handle" string form only exists at the persistence boundary.
    """
    kind: ObjectKind
    handle: str

    SEPARATOR: ClassVar[str] = "|"

    def to_key(self) -> str:
        return f"{self.kind.value}{self.SEPARATOR}{self.handle}"

    @classmethod
    def from_key(cls, key: str) -> "HandleKey":
        """Parse a persisted handle map key.

        Raises:
            UnknownObjectKindError: If the kind part is not a known kind
            ValueError: If the key has no separator or an empty handle
        """
        kind_part, sep, handle = key.partition(cls.SEPARATOR)
        if not sep or not handle:
            raise ValueError(f"Malformed handle map key: {key!r}")
        return cls(ObjectKind.parse(kind_part), handle)


class MapKind(str, Enum):
    """The three persisted metadata maps, valued by their file names."""
    REVISION = "revisions.json"
    CHECKSUM = "checksums.json"
    HANDLE = "handles.json"


@dataclass(frozen=True)
class ObjectRef:
    """Reference to a local content object and its recorded metadata.

    Attributes:
        kind: Object kind
        handle: Object handle
        id: Remote id (None for local-only objects)
        revision: Last recorded remote revision
        checksum: Last recorded content checksum
        local_path: Folder (component, controller) or file (style) on disk
    """
    kind: ObjectKind
    handle: str
    id: Optional[str]
    revision: Optional[str]
    checksum: Optional[str]
    local_path: Path

    @property
    def is_synced(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class RemoteSnapshot:
    """Lightweight snapshot entry: id and revision, no content."""
    id: str
    revision: str


@dataclass
class PullResult:
    """Summary of one pull.

    Attributes:
        container: Container name
        fetched: Handles written, grouped by kind
        unchanged_count: Objects skipped because their revision matched
        batch_count: Number of get_batch round-trips
    """
    container: str
    fetched: Dict[ObjectKind, List[str]] = field(default_factory=dict)
    unchanged_count: int = 0
    batch_count: int = 0

    @property
    def fetched_count(self) -> int:
        return sum(len(handles) for handles in self.fetched.values())


@dataclass
class DrainReport:
    """Result of one save queue drain pass."""
    pass_number: int
    saved: List[ObjectRef] = field(default_factory=list)
    failures: list = field(default_factory=list)

    @property
    def attempted_count(self) -> int:
        return len(self.saved) + len(self.failures)


class ReconcileOutcome(str, Enum):
    """Outcome of a sync-revision check."""
    REVISION_REFRESHED = "revision_refreshed"
    OVERWRITTEN = "overwritten"
    CHECKSUM_MISMATCH = "checksum_mismatch"


@dataclass
class ReconcileResult:
    """Result of reconciling one local object against its remote version.

    Attributes:
        outcome: What happened
        ref: Reference as it stands after reconciliation
        local_checksum: Checksum recorded locally before the check
        remote_checksum: Checksum of the fetched remote object
        remote_revision: Revision of the fetched remote object
    """
    outcome: ReconcileOutcome
    ref: ObjectRef
    local_checksum: Optional[str]
    remote_checksum: str
    remote_revision: Optional[str]


@dataclass
class PageInfo:
    """A component that is mounted on a page path."""
    handle: str
    id: str
    path: str
    controller_id: Optional[str] = None
    override_params: Optional[Dict[str, str]] = None
