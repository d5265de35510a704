"""
Cache value serialization.

Cached values are the same JSON-ready records handed to the HTTP layer, so
plain JSON is enough. The default handler covers the few non-JSON types that
can slip through (datetimes, UUIDs, enums).
"""

import json
from enum import Enum
from typing import Any
from uuid import UUID


def _default_handler(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not cacheable")


def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to bytes for caching."""
    json_str = json.dumps(value, default=_default_handler, ensure_ascii=False)
    return json_str.encode("utf-8")


def deserialize_value(data: bytes) -> Any:
    """Deserialize cached bytes back to a Python value."""
    if isinstance(data, str):
        return json.loads(data)
    return json.loads(data.decode("utf-8"))
