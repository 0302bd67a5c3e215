"""
Metadata codec.

Things carry free-form metadata persisted in a ``jsonb`` column. An empty
or missing mapping is always stored as ``{}``, never as ``NULL``.
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import MalformedEntityError
from ..models import Metadata

EMPTY_METADATA = "{}"


def encode_metadata(metadata: Metadata | None) -> str:
    """Serialize metadata to its canonical JSON text."""
    if not metadata:
        return EMPTY_METADATA
    try:
        return json.dumps(metadata, sort_keys=True, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise MalformedEntityError(exc) from exc


def decode_metadata(raw: Any) -> Metadata:
    """
    Parse stored metadata.

    psycopg2 already decodes ``jsonb`` columns into Python objects, so
    dicts are accepted as-is alongside text and bytes.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw = bytes(raw).decode("utf-8")
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedEntityError(exc) from exc
    if not isinstance(value, dict):
        raise MalformedEntityError(message=f"metadata is not an object: {type(value).__name__}")
    return value
