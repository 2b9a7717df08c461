"""Routing-table loader — strict JSON, confined to a base directory, deep-frozen.

Loaded documents are cached per resolved path and re-read only when the
file's ``(mtime_ns, size)`` signature changes.  The returned structure is
immutable: mappings become ``MappingProxyType`` and lists become tuples.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from routelog.core.errors import ConfigLoadError, PathTraversalError
from routelog.core.sanitize import sanitize_string

logger = logging.getLogger(__name__)


def deep_freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: deep_freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(deep_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of ``deep_freeze``; returns plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name!r}")


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"duplicate key {key!r}")
        result[key] = value
    return result


def parse_strict_json(text: str) -> dict[str, Any]:
    """Parse *text* as a JSON object, rejecting ``NaN``/``Infinity`` and duplicate keys."""
    parsed = json.loads(
        text, parse_constant=_reject_constant, object_pairs_hook=_reject_duplicates
    )
    if not isinstance(parsed, dict):
        raise ValueError("top-level JSON value must be an object")
    return parsed


class ConfigFileLoader:
    """Loads JSON configuration files from beneath *base_dir*.

    Parameters
    ----------
    base_dir:
        Every requested path must resolve inside this directory.
    """

    def __init__(self, base_dir: Path | str) -> None:
        self._base = Path(base_dir).resolve()
        self._cache: dict[Path, tuple[tuple[int, int], Any]] = {}

    @property
    def base_dir(self) -> Path:
        return self._base

    def resolve(self, file_path: str) -> Path:
        """Sanitize *file_path* and anchor it inside the base directory."""
        cleaned = sanitize_string(file_path)
        if not cleaned:
            raise ConfigLoadError(f"Invalid config path: {file_path!r}")
        candidate = (self._base / cleaned).resolve()
        if candidate != self._base and self._base not in candidate.parents:
            raise PathTraversalError(f"Config path escapes base directory: {file_path!r}")
        return candidate

    def load(self, file_path: str) -> Mapping[str, Any]:
        """Return the deep-frozen JSON object stored at *file_path*.

        Raises
        ------
        PathTraversalError
            When the path resolves outside the base directory.
        ConfigLoadError
            For missing or non-regular files and malformed JSON.
        """
        target = self.resolve(file_path)
        try:
            stat = target.stat()
        except OSError as exc:
            raise ConfigLoadError(f"Config file not readable: {target}: {exc}") from exc
        if not target.is_file():
            raise ConfigLoadError(f"Config path is not a regular file: {target}")

        signature = (stat.st_mtime_ns, stat.st_size)
        cached = self._cache.get(target)
        if cached is not None and cached[0] == signature:
            return cached[1]

        logger.debug("Loading config file %s", target)
        try:
            parsed = parse_strict_json(target.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            raise ConfigLoadError(f"Failed to load config {target}: {exc}") from exc

        frozen = deep_freeze(parsed)
        self._cache[target] = (signature, frozen)
        return frozen

    def clear_cache(self) -> None:
        self._cache.clear()
