"""String and path sanitization for log destinations.

``sanitize_string`` is the first pass applied to any caller-supplied value;
``sanitize_path_segment`` then reduces it to a single safe path segment.
``ensure_relative_log_path`` is the gate every relative path crosses before it
is joined to a storage root.
"""

from __future__ import annotations

import posixpath
import re
from datetime import date, datetime
from typing import Any

from routelog.core.errors import InvalidPathError, PathTraversalError

PATH_SEGMENT_MAX_LEN = 64
CRITICAL_EXTENSION = ".critical.log"
SAFE_PLACEHOLDER_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
RESERVED_PLACEHOLDER_KEYS = frozenset({"__proto__", "constructor", "prototype"})

_UNSAFE_STRING_CHARS = re.compile(r"[^\w\s\-_./]")
_UNSAFE_SEGMENT_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_LEADING_DOTS = re.compile(r"^\.+")
_DOT_RUNS = re.compile(r"\.{3,}")
_PARENT_SEGMENT = re.compile(r"(^|[\\/])\.\.([\\/]|$)")
_DOT_ONLY = re.compile(r"^\.+$")
_SEPARATORS = re.compile(r"[\\/]+")


def sanitize_string(value: Any) -> str:
    """Trim and drop characters outside ``[\\w\\s\\-_./]``.

    Strings pass through; numbers and dates are stringified; anything else is
    ``""``.
    """
    if isinstance(value, bool):
        value = str(value).lower()
    elif isinstance(value, (datetime, date)):
        value = value.isoformat()
    elif isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return _UNSAFE_STRING_CHARS.sub("", value.strip())


def sanitize_path_segment(value: Any) -> str:
    """Reduce *value* to a single filesystem-safe path segment."""
    cleaned = sanitize_string(value)
    if not cleaned:
        return ""
    cleaned = _UNSAFE_SEGMENT_CHARS.sub("_", cleaned)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    cleaned = _LEADING_DOTS.sub("", cleaned)
    cleaned = _DOT_RUNS.sub("..", cleaned)
    return cleaned[:PATH_SEGMENT_MAX_LEN]


def is_allowed_placeholder(key: Any) -> bool:
    """Placeholder and encryption-target keys: safe identifiers, never reserved."""
    if not isinstance(key, str) or not key:
        return False
    if key in RESERVED_PLACEHOLDER_KEYS:
        return False
    return bool(SAFE_PLACEHOLDER_KEY_PATTERN.match(key))


def ensure_relative_log_path(rel_path: Any) -> str:
    """Validate and normalize a relative log path.

    Raises
    ------
    InvalidPathError
        For empty or absolute paths and for dot-only segments.
    PathTraversalError
        For any ``..`` segment.
    """
    candidate = rel_path if isinstance(rel_path, str) else str(rel_path or "")
    if not candidate.strip():
        raise InvalidPathError("Log path cannot be empty")

    if _PARENT_SEGMENT.search(candidate):
        raise PathTraversalError(f"Parent traversal not allowed: {candidate!r}")

    unified = candidate.replace("\\", "/")
    if unified.startswith("/") or re.match(r"^[A-Za-z]:", unified):
        raise InvalidPathError(f"Absolute paths are not allowed: {candidate!r}")

    segments = [seg for seg in _SEPARATORS.split(unified) if seg]
    if any(_DOT_ONLY.match(seg) for seg in segments):
        raise InvalidPathError(f"Dot-only path segments are not allowed: {candidate!r}")
    if not segments:
        raise InvalidPathError("Log path cannot be empty")
    return "/".join(segments)


def split_extension(rel_path: str) -> tuple[str, str]:
    """Like ``posixpath.splitext`` but keeps ``.critical.log`` as one extension."""
    if rel_path.endswith(CRITICAL_EXTENSION) and len(rel_path) > len(CRITICAL_EXTENSION):
        return rel_path[: -len(CRITICAL_EXTENSION)], CRITICAL_EXTENSION
    return posixpath.splitext(rel_path)


def append_suffix_before_extension(rel_path: str, suffix: str) -> str:
    if not rel_path or not rel_path.strip() or not suffix:
        return rel_path
    base, ext = split_extension(rel_path)
    return f"{base}{suffix}{ext}"


def append_timestamp_to_path(rel_path: str, timestamp: str) -> str:
    """``logs/app.log`` + ``20240101...`` -> ``logs/app_20240101....log``."""
    return append_suffix_before_extension(posixpath.normpath(rel_path), f"_{timestamp}")


def to_critical_log_path(rel_path: Any) -> str:
    """Insert the ``.critical`` marker before a ``.log`` extension."""
    if not isinstance(rel_path, str) or not rel_path.strip():
        return "critical.log"
    if rel_path.endswith(CRITICAL_EXTENSION):
        return rel_path
    if rel_path.endswith(".log"):
        return rel_path[: -len(".log")] + CRITICAL_EXTENSION
    return rel_path + CRITICAL_EXTENSION
