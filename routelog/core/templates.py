"""Path-template engine — expands ``{key}`` / ``{key:format}`` destination templates.

Lookup against event data is case-insensitive (first match wins).  Every
substituted value is reduced to one safe path segment, so data can never
smuggle separators or parent references into a destination path.  Successful
expansions are cached by ``(template, sanitized data)``; expansions with
missing placeholders are not, since supplying the field later must succeed.
"""

from __future__ import annotations

import logging
import posixpath
import re
import secrets
from collections.abc import Mapping
from typing import Any

from routelog.core.context import PipelineContext
from routelog.core.dates import (
    ISO_FALLBACK_TIMESTAMP,
    Clock,
    normalize_date_format,
)
from routelog.core.sanitize import (
    append_suffix_before_extension,
    append_timestamp_to_path,
    is_allowed_placeholder,
    sanitize_path_segment,
)
from routelog.core.serialization import path_cache_key
from routelog.models.paths import PathResolution, PlaceholderToken

logger = logging.getLogger(__name__)

PLACEHOLDER_REGEX = re.compile(r"\{([^}]+)\}")
PLACEHOLDER_TOKEN_PATTERN = re.compile(r"^([A-Za-z0-9_]+)(?::([A-Za-z0-9_.\-/]+))?$")


def parse_placeholder_token(token: str) -> PlaceholderToken:
    """Parse the text between braces into a ``PlaceholderToken``."""
    trimmed = token.strip() if isinstance(token, str) else ""
    if not trimmed:
        return PlaceholderToken(raw=token or "", key="", valid=False)
    match = PLACEHOLDER_TOKEN_PATTERN.match(trimmed)
    if not match:
        return PlaceholderToken(raw=token, key=trimmed, valid=False)
    key = match.group(1)
    fmt = normalize_date_format(match.group(2)) if match.group(2) else ""
    return PlaceholderToken(
        raw=token, key=key, format=fmt, valid=is_allowed_placeholder(key)
    )


def fallback_path_from_pattern(template: Any) -> str:
    """Replace each placeholder with its key name (or ``missing``)."""
    if not isinstance(template, str) or not template.strip():
        return "unknown.log"

    def _replace(match: re.Match[str]) -> str:
        parsed = parse_placeholder_token(match.group(1))
        return parsed.key if parsed.valid and parsed.key else "missing"

    return posixpath.normpath(PLACEHOLDER_REGEX.sub(_replace, template))


def build_fallback_relative_path(base_relative: str, file_timestamp: str) -> str:
    """Timestamp plus a random ``_fallback_<hex>`` suffix, before the extension."""
    timestamped = append_timestamp_to_path(base_relative, file_timestamp)
    return append_suffix_before_extension(
        timestamped, f"_fallback_{secrets.token_hex(4)}"
    )


def describe_missing_placeholders(missing: list[str] | tuple[str, ...]) -> str:
    """Signature used to deduplicate missing-path fallbacks inside a batch."""
    sanitized = [s for s in (sanitize_path_segment(m) for m in missing) if s]
    return f"_missing_{'_'.join(sanitized)}" if sanitized else ""


def find_key_insensitive(data: Mapping[str, Any], target: str) -> str | None:
    lowered = target.lower()
    for candidate in data:
        if candidate.lower() == lowered:
            return candidate
    return None


class PathTemplateEngine:
    """Expands destination templates against event data.

    Parameters
    ----------
    context:
        Owns the template-resolution cache and the error recorder.
    clock:
        Date/time collaborator used for ``{key:format}`` tokens.
    """

    def __init__(self, context: PipelineContext, clock: Clock | None = None) -> None:
        self._context = context
        self._clock = clock or Clock()

    # ------------------------------------------------------------------
    # Data preparation
    # ------------------------------------------------------------------

    def normalize_path_data(self, data: Any) -> dict[str, Any]:
        """Keep only keys that are safe placeholder identifiers."""
        normalized: dict[str, Any] = {}
        if not isinstance(data, Mapping):
            return normalized
        for key, value in data.items():
            if not is_allowed_placeholder(key):
                self._context.errors.record(
                    "invalid placeholder key in data", code="placeholder_key", key=str(key)
                )
                continue
            normalized[key] = value
        return normalized

    def prepare_path_data(self, data: Any, action: str | None) -> dict[str, Any]:
        """Normalize *data* and inject the call's ``action`` when present."""
        normalized = self.normalize_path_data(data)
        if isinstance(action, str) and action.strip():
            normalized["action"] = action.strip()
        return normalized

    # ------------------------------------------------------------------
    # Date formatting
    # ------------------------------------------------------------------

    def safe_format_date(
        self, value: Any, fmt: str, *, fallback: str, **context: Any
    ) -> str:
        """Format with the clock's formatter, substituting *fallback* on failure."""
        formatted = self._clock.format(value, fmt)
        if not formatted:
            self._context.errors.record(
                "date formatting returned fallback value",
                code="date_format",
                format=fmt,
                fallback=fallback,
                **context,
            )
            return fallback
        return formatted

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def expand(self, template: str, data: Any) -> PathResolution:
        """Expand *template* against *data*.

        Returns a ``PathResolution`` whose ``path`` is ``None`` when any
        placeholder could not be resolved; ``missing`` then lists the keys.
        """
        normalized = self.normalize_path_data(data)
        cache_key = f"{template}::{path_cache_key(normalized)}"
        cached = self._context.resolve_cache.get(cache_key)
        if cached is not None:
            return cached
        logger.debug("Resolve cache miss for template %s", template)

        missing: list[str] = []
        out = template
        for raw in PLACEHOLDER_REGEX.findall(template):
            token = parse_placeholder_token(raw)
            if not token.valid:
                self._context.errors.record(
                    "invalid placeholder token", code="placeholder_token", placeholder=raw
                )
                missing.append(token.key or raw)
                continue
            matched = find_key_insensitive(normalized, token.key)
            if matched is None:
                missing.append(token.key)
                continue
            value = normalized[matched]
            if token.format:
                value = self.safe_format_date(
                    value,
                    token.format,
                    fallback=ISO_FALLBACK_TIMESTAMP,
                    placeholder=token.key,
                    template=template,
                )
            out = out.replace("{" + raw + "}", sanitize_path_segment(value))

        if missing:
            return PathResolution(path=None, missing=tuple(missing))

        result = PathResolution(path=posixpath.normpath(out))
        self._context.resolve_cache[cache_key] = result
        return result
