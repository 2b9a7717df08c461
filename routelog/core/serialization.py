"""JSON serialization helpers for log entries and cache keys.

Entries are written one JSON document per line.  ``NaN`` and other values
JSON cannot carry become ``null``; datetimes become ISO-8601 strings.
Cache keys use a stable, key-sorted rendering so equal data always yields the
same key regardless of insertion order.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel


def _json_safe(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return _json_safe(value.model_dump(mode="json", by_alias=True))
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def serialize_entry(entry: Any) -> str:
    """Serialize a log entry to a single JSON line (without the newline)."""
    if isinstance(entry, str):
        return entry
    return json.dumps(_json_safe(entry), ensure_ascii=False, separators=(",", ":"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Deterministic, key-sorted, compact JSON bytes."""
    return json.dumps(
        _json_safe(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def stable_stringify(value: Any) -> str:
    """Render *value* for use inside a cache key.

    ``None`` renders as ``""``; containers use canonical JSON; scalars use
    ``str``.
    """
    if value is None:
        return ""
    if isinstance(value, (Mapping, list, tuple)):
        return canonical_json_bytes(value).decode("ascii")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def path_cache_key(data: Mapping[str, Any]) -> str:
    """Stable serialization of sanitized path data."""
    entries = [[key, stable_stringify(data[key])] for key in sorted(data)]
    return json.dumps(entries, separators=(",", ":"))
