"""Wire codec for content objects.

Converts content objects to and from the plain dictionaries exchanged with
the remote store. Every payload carries a "kind" tag.
"""

import dataclasses
import logging
from typing import Any, Dict, Optional

from .errors import UnknownObjectKindError
from .models import OBJECT_TYPES, ContentObject, ObjectKind, kind_of

logger = logging.getLogger(__name__)


def encode_object(obj: ContentObject) -> Dict[str, Any]:
    """Encode a content object as a wire dictionary.

    Raises:
        UnknownObjectKindError: If obj is not a known content type
    """
    kind = kind_of(obj)
    data = dataclasses.asdict(obj)
    data["kind"] = kind.value
    return data


def decode_object(data: Dict[str, Any], kind: Optional[ObjectKind] = None) -> ContentObject:
    """Decode a wire dictionary into a content object.

    The kind comes from the payload's "kind" tag, falling back to the kind
    argument when the payload is untagged. Unknown payload keys are ignored.

    Args:
        data: Wire dictionary
        kind: Expected kind when the payload carries no tag

    Returns:
        Component, Style or Controller

    Raises:
        UnknownObjectKindError: If the kind is missing or unrecognized
    """
    if not isinstance(data, dict):
        raise UnknownObjectKindError(type(data).__name__)

    raw_kind = data.get("kind", kind)
    if raw_kind is None:
        raise UnknownObjectKindError(None)
    object_kind = ObjectKind.parse(raw_kind)
    if kind is not None and object_kind is not ObjectKind.parse(kind):
        raise UnknownObjectKindError(raw_kind)

    object_type = OBJECT_TYPES[object_kind]
    field_names = {f.name for f in dataclasses.fields(object_type)}
    values = {k: v for k, v in data.items() if k in field_names}

    unknown = set(data) - field_names - {"kind"}
    if unknown:
        logger.debug(f"Ignoring unknown {object_kind.value} fields: {sorted(unknown)}")

    # Remote ids and revisions are opaque strings even if the wire sends numbers
    for key in ("id", "revision"):
        if values.get(key) is not None:
            values[key] = str(values[key])

    if "handle" not in values:
        raise ValueError(f"{object_kind.value} payload has no handle")

    return object_type(**values)
