"""Durable writer — rotating, retrying appends beneath a storage root.

Write procedure for one payload:

1. Validate the payload (non-empty string or a well-formed log entry).
2. Anchor the relative path inside the root; absolute paths, ``..`` and
   dot-only segments are rejected before touching disk.
3. Create the destination directory.
4. Rotate the target when it has reached ``MAX_LOG_FILE_SIZE_BYTES``.
5. Append the payload plus newline; two attempts with ``0.05 * 2**attempt``
   seconds of backoff between them.

When every attempt fails, a permission error drops the write silently (it is
counted on the error recorder).  Any other error produces a
``WriteFailureRecord`` under the matching fallback directory.  A permission
error on that fallback write is dropped as well; anything else propagates.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import stat
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from routelog.core.context import PipelineContext
from routelog.core.dates import (
    DATE_FORMAT_TIMESTAMP,
    FALLBACK_FILE_TIMESTAMP,
    ISO_FALLBACK_TIMESTAMP,
    LOG_TIMESTAMP_FORMAT,
    Clock,
)
from routelog.core.errors import (
    ErrorCode,
    InvalidPayloadError,
    PathTraversalError,
    is_permission_error,
)
from routelog.core.sanitize import append_timestamp_to_path, ensure_relative_log_path
from routelog.core.serialization import serialize_entry
from routelog.models.events import LogEvent, WriteFailureRecord
from routelog.models.paths import ResolvedPath

logger = logging.getLogger(__name__)

MAX_LOG_FILE_SIZE_BYTES = 5 * 1024 * 1024
WRITE_ATTEMPTS = 2
BACKOFF_BASE_SECONDS = 0.05

WRITE_ERRORS_DIR = "write_errors"
CRITICAL_WRITE_ERRORS_DIR = "critical_write_errors"
BATCH_WRITE_ERRORS_DIR = "batch_write_errors"
MISSING_PATH_DIR = "missing_path"
SLACK_FALLBACK_DIR = "slack"

Sleep = Callable[[float], Awaitable[Any]]


def is_log_entry(value: Any) -> bool:
    """Structural check for a serialized log entry mapping."""
    return (
        isinstance(value, Mapping)
        and isinstance(value.get("schemaVersion"), str)
        and isinstance(value.get("timestamp"), str)
        and isinstance(value.get("flag"), str)
    )


def render_payload(entry_or_payload: Any) -> str:
    """Validate and serialize a payload to a single line.

    Raises
    ------
    InvalidPayloadError
        For empty strings and anything that is not a log entry.
    """
    if isinstance(entry_or_payload, str):
        if not entry_or_payload.strip():
            raise InvalidPayloadError("received empty payload")
        return entry_or_payload
    if isinstance(entry_or_payload, LogEvent):
        return serialize_entry(entry_or_payload.to_payload())
    if is_log_entry(entry_or_payload):
        return serialize_entry(entry_or_payload)
    raise InvalidPayloadError(
        f"received invalid payload of type {type(entry_or_payload).__name__}"
    )


def is_within(base: Path, candidate: Path) -> bool:
    """Whether *candidate* is *base* or lies beneath it (both resolved)."""
    base_resolved = base.resolve()
    candidate_resolved = candidate.resolve()
    return candidate_resolved == base_resolved or base_resolved in candidate_resolved.parents


class DurableWriter:
    """Appends newline-delimited payloads beneath *root* with fallbacks.

    Parameters
    ----------
    root:
        Primary storage root.
    fallback_root:
        Parent of the ``write_errors``/``missing_path``/``slack``/...
        fallback directories.
    context:
        Owns the path cache and the error recorder.
    env:
        Environment name stamped on failure records.
    clock:
        Supplies file timestamps for rotation and failure records.
    sleep:
        Awaitable used for retry backoff; tests pass a no-op.
    """

    def __init__(
        self,
        root: Path | str,
        fallback_root: Path | str,
        context: PipelineContext,
        *,
        env: str = "",
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
        max_file_bytes: int = MAX_LOG_FILE_SIZE_BYTES,
        attempts: int = WRITE_ATTEMPTS,
    ) -> None:
        self._root = Path(root)
        self._fallback_root = Path(fallback_root)
        self._context = context
        self._env = env
        self._clock = clock or Clock()
        self._sleep = sleep
        self.max_file_bytes = max_file_bytes
        self.attempts = max(1, attempts)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def fallback_root(self) -> Path:
        return self._fallback_root

    def file_timestamp(self) -> str:
        return self._clock.format(self._clock.now(), LOG_TIMESTAMP_FORMAT) or FALLBACK_FILE_TIMESTAMP

    def entry_timestamp(self) -> str:
        return (
            self._clock.format(self._clock.now(), DATE_FORMAT_TIMESTAMP)
            or ISO_FALLBACK_TIMESTAMP
        )

    # ------------------------------------------------------------------
    # Path resolution
    # ------------------------------------------------------------------

    def resolve_within_root(self, root: Path | str, relative_path: Any) -> ResolvedPath:
        """Anchor *relative_path* inside *root*, cached by ``(root, relative)``.

        Raises
        ------
        InvalidPathError
            For empty, absolute, or dot-only paths.
        PathTraversalError
            For ``..`` segments or a result that escapes the root.
        """
        safe_rel = ensure_relative_log_path(relative_path)
        cache_key = f"{root}::{safe_rel}"
        cached = self._context.path_cache.get(cache_key)
        if cached is not None:
            return cached

        resolved_root = Path(root).resolve()
        full = (resolved_root / safe_rel).resolve()
        if resolved_root not in full.parents:
            self._context.errors.record(
                "Blocked path traversal attempt.", code="path_traversal", path=str(full)
            )
            raise PathTraversalError(f"Blocked path traversal attempt: {relative_path!r}")

        resolved = ResolvedPath(full=full, dir=full.parent, relative=safe_rel)
        self._context.path_cache[cache_key] = resolved
        return resolved

    # ------------------------------------------------------------------
    # Low-level I/O
    # ------------------------------------------------------------------

    async def ensure_dir(self, directory: Path, *, stage: str) -> None:
        """Create *directory* recursively; permission failures are recorded and re-raised."""
        try:
            await aiofiles.os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            if is_permission_error(exc):
                self._context.errors.record(
                    "cannot create directory due to permissions",
                    code="permission",
                    path=str(directory),
                    stage=stage,
                    error=str(exc),
                )
            raise

    async def rotate_if_needed(self, file_path: Path) -> Path | None:
        """Rename *file_path* with a timestamp suffix once it reaches the size cap.

        Returns the rotated path, or ``None`` when no rotation happened.
        A file that vanished meanwhile is not an error.
        """
        try:
            info = await aiofiles.os.stat(file_path)
            if not stat.S_ISREG(info.st_mode) or info.st_size < self.max_file_bytes:
                return None
            rotated = Path(append_timestamp_to_path(str(file_path), self.file_timestamp()))
            await aiofiles.os.rename(file_path, rotated)
        except FileNotFoundError:
            return None
        except OSError as exc:
            self._context.errors.record(
                "failed to rotate log file",
                code=ErrorCode.ROTATE_FAIL.value,
                path=str(file_path),
                error=str(exc),
            )
            raise
        logger.debug("Rotated %s to %s", file_path, rotated)
        return rotated

    async def _append(self, file_path: Path, content: str) -> None:
        async with aiofiles.open(file_path, mode="a", encoding="utf-8") as handle:
            await handle.write(content)

    async def write_with_retry(self, file_path: Path, content: str) -> None:
        """Rotate-then-append with retries; re-raises the last error."""
        last_error: OSError = OSError("no write attempted")
        for attempt in range(1, self.attempts + 1):
            try:
                await self.rotate_if_needed(file_path)
                await self._append(file_path, content)
                return
            except OSError as exc:
                last_error = exc
                if attempt < self.attempts:
                    await self._sleep(BACKOFF_BASE_SECONDS * (2**attempt))
        self._context.errors.record(
            "failed to write file after retries",
            code="write_retry",
            path=str(file_path),
            error=str(last_error),
        )
        raise last_error

    # ------------------------------------------------------------------
    # Persist with fallback
    # ------------------------------------------------------------------

    async def persist(self, relative_path: Any, entry_or_payload: Any) -> None:
        """Persist beneath the primary root; fallback under ``write_errors``."""
        await self.persist_to_root(
            self._root,
            relative_path,
            entry_or_payload,
            fallback_dir=WRITE_ERRORS_DIR,
            error_code=ErrorCode.WRITE_FAIL,
            stage="primary-write",
        )

    async def persist_batch(self, relative_path: Any, entries: list[Any]) -> None:
        """Persist *entries* as one newline-delimited write.

        The fallback record lands under ``batch_write_errors`` and carries
        ``entryCount``.
        """
        if not isinstance(entries, list):
            raise InvalidPayloadError("batch entries must be a list")
        lines = [render_payload(entry) for entry in entries]
        if not lines:
            return
        await self.persist_to_root(
            self._root,
            relative_path,
            "\n".join(lines),
            fallback_dir=BATCH_WRITE_ERRORS_DIR,
            error_code=ErrorCode.BATCH_WRITE_FAIL,
            stage="batch-write",
            entry_count=len(lines),
        )

    async def persist_to_root(
        self,
        root: Path | str,
        relative_path: Any,
        entry_or_payload: Any,
        *,
        fallback_dir: str,
        error_code: ErrorCode,
        stage: str,
        entry_count: int | None = None,
    ) -> None:
        """Shared write-then-fallback procedure for every root."""
        resolved = self.resolve_within_root(root, relative_path)
        payload = render_payload(entry_or_payload)
        try:
            await self.ensure_dir(resolved.dir, stage=stage)
            await self.write_with_retry(resolved.full, f"{payload}\n")
        except OSError as exc:
            if is_permission_error(exc):
                self._context.errors.record_permission_drop(stage, str(resolved.full))
                return
            await self._write_failure_record(
                resolved, exc, fallback_dir=fallback_dir, error_code=error_code,
                stage=stage, entry_count=entry_count,
            )

    async def _write_failure_record(
        self,
        resolved: ResolvedPath,
        error: BaseException,
        *,
        fallback_dir: str,
        error_code: ErrorCode,
        stage: str,
        entry_count: int | None,
    ) -> None:
        record = WriteFailureRecord(
            timestamp=self.entry_timestamp(),
            error=str(error),
            attempted_path=str(resolved.full),
            env=self._env,
            error_code=error_code.value,
            entry_count=entry_count,
        )
        fallback_rel = append_timestamp_to_path(resolved.relative, self.file_timestamp())
        try:
            target = self.resolve_within_root(self._fallback_root / fallback_dir, fallback_rel)
            await self.ensure_dir(target.dir, stage=f"fallback-{stage}")
            await self.write_with_retry(
                target.full, f"{serialize_entry(record.to_payload())}\n"
            )
        except OSError as exc:
            if is_permission_error(exc):
                self._context.errors.record_permission_drop(f"fallback-{stage}", fallback_rel)
                return
            raise
        logger.debug("Wrote %s fallback record to %s", error_code.value, target.full)

    async def write_fallback_entry(
        self, fallback_dir: str, relative_path: str, payload: str, *, stage: str
    ) -> Path | None:
        """Write *payload* into ``<fallback root>/<fallback_dir>/<relative_path>``.

        Used for the missing-path and notification fallback stores.  Returns
        the written path, or ``None`` when dropped after a permission failure.
        """
        target = self.resolve_within_root(
            self._fallback_root / fallback_dir, posixpath.normpath(relative_path)
        )
        try:
            await self.ensure_dir(target.dir, stage=stage)
            await self.write_with_retry(target.full, f"{payload}\n")
        except OSError as exc:
            if is_permission_error(exc):
                self._context.errors.record_permission_drop(stage, str(target.full))
                return None
            raise
        return target.full
