"""Critical replicator — duplicates critical entries into the critical store.

The replica path inserts a ``.critical`` marker before ``.log`` (or appends
``.critical.log``) and then the file timestamp, e.g.
``audit/login_20240101120000000.critical.log``.

When the critical root lives inside the primary root the replica is written
through the primary root as a single relative path; otherwise it goes through
the same write-with-fallback procedure against the critical root, with
failures recorded under ``critical_write_errors``.
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Any

from routelog.core.errors import ErrorCode
from routelog.core.sanitize import (
    append_timestamp_to_path,
    ensure_relative_log_path,
    to_critical_log_path,
)
from routelog.storage.writer import (
    CRITICAL_WRITE_ERRORS_DIR,
    DurableWriter,
    is_within,
    render_payload,
)

logger = logging.getLogger(__name__)


class CriticalReplicator:
    """Writes critical replicas through a ``DurableWriter``.

    Parameters
    ----------
    writer:
        The primary-root writer; its fallback root is shared.
    critical_root:
        Root of the critical store.
    """

    def __init__(self, writer: DurableWriter, critical_root: Path | str) -> None:
        self._writer = writer
        self._critical_root = Path(critical_root)

    @property
    def critical_root(self) -> Path:
        return self._critical_root

    @property
    def nested(self) -> bool:
        """Whether the critical root is the primary root or a descendant of it."""
        return is_within(self._writer.root, self._critical_root)

    def critical_relative_path(self, relative_path: str, file_timestamp: str | None = None) -> str:
        timestamp = file_timestamp or self._writer.file_timestamp()
        return ensure_relative_log_path(
            append_timestamp_to_path(to_critical_log_path(relative_path), timestamp)
        )

    async def replicate(
        self, relative_path: str, entry_or_payload: Any, file_timestamp: str | None = None
    ) -> None:
        """Persist a critical replica of *entry_or_payload*.

        Raises only for caller errors (unsafe path, invalid payload).
        """
        safe_rel = self.critical_relative_path(relative_path, file_timestamp)
        payload = render_payload(entry_or_payload)

        if self.nested:
            prefix = os.path.relpath(
                self._critical_root.resolve(), self._writer.root.resolve()
            ).replace(os.sep, "/")
            rel_from_root = posixpath.normpath(posixpath.join(prefix, safe_rel))
            logger.debug("Critical root nested in log root; writing %s", rel_from_root)
            await self._writer.persist(rel_from_root, payload)
            return

        await self._writer.persist_to_root(
            self._critical_root,
            safe_rel,
            payload,
            fallback_dir=CRITICAL_WRITE_ERRORS_DIR,
            error_code=ErrorCode.CRITICAL_WRITE_FAIL,
            stage="primary-critical-write",
        )
