"""Shared formatting helpers for notifier message bodies."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

MAX_DATA_PREVIEW = 500


def format_title(entry: Mapping[str, Any]) -> str:
    """Return the headline for a critical entry.

    Examples
    --------
    >>> format_title({"flag": "payment_failed", "env": "prod"})
    ':rotating_light: Critical log: payment_failed (prod)'
    """
    flag = entry.get("flag") or "unknown"
    env = entry.get("env")
    suffix = f" ({env})" if env else ""
    return f":rotating_light: Critical log: {flag}{suffix}"


def format_detail_lines(entry: Mapping[str, Any]) -> list[str]:
    """Return ``"Label: value"`` lines for the fields that are present."""
    lines: list[str] = []
    for label, key in (
        ("Message", "message"),
        ("Action", "action"),
        ("Level", "level"),
        ("Category", "category"),
        ("Time", "timestamp"),
    ):
        value = entry.get(key)
        if value:
            lines.append(f"{label}: {value}")
    data = entry.get("data")
    if data:
        preview = str(dict(data)) if isinstance(data, Mapping) else str(data)
        if len(preview) > MAX_DATA_PREVIEW:
            preview = preview[: MAX_DATA_PREVIEW - 3] + "..."
        lines.append(f"Data: {preview}")
    return lines


def format_message(entry: Mapping[str, Any]) -> str:
    return "\n".join([format_title(entry), *format_detail_lines(entry)])
