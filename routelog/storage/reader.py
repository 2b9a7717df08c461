"""Log readers — parse newline-delimited JSON files, optionally decrypting.

Unparsable lines never abort a read: ``read_log_file`` represents them as
``{"raw": ..., "line": n, "parseError": True}`` and ``decrypt_log_file``
copies them through verbatim.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from routelog.bridge.field_crypto import FieldEncryptor
from routelog.core.context import PipelineContext
from routelog.core.errors import InvalidPathError, RoutelogError
from routelog.core.sanitize import append_suffix_before_extension
from routelog.core.serialization import serialize_entry

logger = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 1000
DECRYPTED_SUFFIX = "_decrypted"


def _normalize_limit(limit: Any) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_READ_LIMIT
    return value if value > 0 else DEFAULT_READ_LIMIT


async def _read_source(log_file_path: Any, context: PipelineContext, op: str) -> tuple[Path, bytes]:
    if not isinstance(log_file_path, (str, os.PathLike)) or not str(log_file_path).strip():
        context.errors.record(f"{op} requires a file path", code="read_path", path=str(log_file_path))
        raise InvalidPathError(f"{op} requires a file path")
    source = Path(log_file_path).resolve()
    if not await aiofiles.os.path.isfile(source) or not os.access(source, os.R_OK):
        context.errors.record(f"{op} source missing", code="read_path", path=str(source))
        raise FileNotFoundError(f"{op} source missing: {source}")
    async with aiofiles.open(source, mode="rb") as handle:
        return source, await handle.read()


def _iter_lines(content: bytes) -> Iterator[tuple[int, str, UnicodeDecodeError | None]]:
    """Yield ``(line_number, text, decode_error)`` for each non-blank line.

    Lines that are not valid UTF-8 come back with replacement characters and
    the decoding error, so callers can treat them as unparsable.
    """
    for index, raw in enumerate(content.splitlines(), start=1):
        decode_error: UnicodeDecodeError | None = None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            text = raw.decode("utf-8", errors="replace")
            decode_error = exc
        if text.strip():
            yield index, text, decode_error


def _merge_decrypted(entry: Any, encryptor: FieldEncryptor) -> Any:
    if not isinstance(entry, dict):
        return entry
    decrypted = encryptor.decrypt(entry)
    if decrypted:
        data = entry.get("data") if isinstance(entry.get("data"), dict) else {}
        entry["data"] = {**data, **decrypted}
    return entry


async def read_log_file(
    log_file_path: Any,
    encryptor: FieldEncryptor,
    context: PipelineContext,
    *,
    decrypt: bool = False,
    limit: Any = DEFAULT_READ_LIMIT,
) -> list[Any]:
    """Parse up to *limit* entries from a newline-delimited JSON file.

    Raises
    ------
    InvalidPathError
        When *log_file_path* is empty.
    FileNotFoundError
        When the source is missing or unreadable.
    EncryptionKeyError
        When ``decrypt`` is requested without a valid key.
    """
    source, content = await _read_source(log_file_path, context, "read_log_file")
    max_entries = _normalize_limit(limit)
    entries: list[Any] = []
    for index, chunk, decode_error in _iter_lines(content):
        if len(entries) >= max_entries:
            break
        try:
            if decode_error is not None:
                raise decode_error
            parsed = json.loads(chunk)
        except ValueError as exc:
            context.errors.record(
                "read_log_file could not parse entry",
                code="parse_error",
                path=str(source),
                line=index,
                error=str(exc),
            )
            entries.append({"raw": chunk, "line": index, "parseError": True})
            continue
        entries.append(_merge_decrypted(parsed, encryptor) if decrypt else parsed)
    return entries


async def decrypt_log_file(
    log_file_path: Any, encryptor: FieldEncryptor, context: PipelineContext
) -> Path:
    """Write ``<name>_decrypted<ext>`` beside the source and return its path."""
    source, content = await _read_source(log_file_path, context, "decrypt_log_file")
    encryptor.require_key()
    target = Path(append_suffix_before_extension(str(source), DECRYPTED_SUFFIX))

    lines: list[str] = []
    for index, chunk, decode_error in _iter_lines(content):
        try:
            if decode_error is not None:
                raise decode_error
            parsed = json.loads(chunk)
        except ValueError as exc:
            context.errors.record(
                "decrypt_log_file could not parse entry",
                code="parse_error",
                path=str(source),
                line=index,
                error=str(exc),
            )
            lines.append(chunk)
            continue
        if isinstance(parsed, dict):
            parsed.pop("encryption", None)
        lines.append(serialize_entry(_merge_decrypted(parsed, encryptor)))

    try:
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, mode="w", encoding="utf-8") as handle:
            await handle.write("\n".join(lines) + "\n" if lines else "")
    except OSError as exc:
        context.errors.record(
            "decrypt_log_file failed", code="decrypt_output", path=str(source), error=str(exc)
        )
        raise RoutelogError(f"decrypt_log_file failed: {exc}") from exc
    logger.debug("Decrypted %d lines from %s into %s", len(lines), source, target)
    return target
