"""Content checksums for divergence detection.

A checksum is a SHA-256 digest over a fixed per-kind allow-list of fields:

- Component: template, style fragment, canonical JSON of
  {path, controller_id, override_params}
- Style: content
- Controller: script, canonical JSON of the request-handling options

Options are serialized as canonical JSON (keys sorted recursively, compact
separators, None-valued keys dropped) so the digest is stable across process
restarts and field ordering. Two objects with equal checksums are treated as
content-equivalent regardless of revision.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from .errors import UnknownObjectKindError
from .models import Component, ContentObject, Controller, Style

# Separates hashed items so "ab" + "" never collides with "a" + "b"
ITEM_SEPARATOR = b"\x00"


def canonical_json(value: Any) -> str:
    """Serialize a value as canonical JSON.

    Example:
        >>> canonical_json({"b": 1, "a": {"d": None, "c": [1, 2]}})
        '{"a":{"c":[1,2],"d":null},"b":1}'
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def pick_options(obj: ContentObject) -> Dict[str, Any]:
    """Return the allow-listed option fields of obj, dropping None values."""
    options = {}
    for key in obj.OPTION_KEYS:
        value = getattr(obj, key)
        if value is not None:
            options[key] = value
    return options


def checksum(obj: ContentObject) -> str:
    """Compute the content checksum of a content object.

    Args:
        obj: Component, Style or Controller

    Returns:
        Hex digest string

    Raises:
        UnknownObjectKindError: If obj is not a known content type
    """
    if type(obj) is Component:
        items = [obj.template, obj.style, canonical_json(pick_options(obj))]
    elif type(obj) is Style:
        items = [obj.content]
    elif type(obj) is Controller:
        items = [obj.script, canonical_json(pick_options(obj))]
    else:
        raise UnknownObjectKindError(type(obj).__name__)
    return _digest(items)


def _digest(items: Iterable[Optional[str]]) -> str:
    hasher = hashlib.sha256()
    for item in items:
        hasher.update((item or "").encode("utf-8"))
        hasher.update(ITEM_SEPARATOR)
    return hasher.hexdigest()
