"""Error taxonomy and failure recording for the delivery pipeline.

Only caller errors (bad arguments, unsafe paths, malformed payloads) and fatal
configuration problems are raised.  Environmental failures -- disk full,
permission denied, webhook unreachable -- are recorded through the
``ErrorRecorder`` owned by the pipeline context and never surface to the
caller of a public write API.
"""

from __future__ import annotations

import collections
import errno
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ERROR_HISTORY_LIMIT = 500
PERMISSION_DROP = "permission_drop"


class ErrorCode(str, Enum):
    """Codes stamped on fallback artifacts."""

    WRITE_FAIL = "E_WRITE_FAIL"
    CRITICAL_WRITE_FAIL = "E_WRITE_FAIL_CRITICAL"
    BATCH_WRITE_FAIL = "E_BATCH_WRITE_FAIL"
    SLACK_FAIL = "E_SLACK_FAIL"
    ROTATE_FAIL = "E_ROTATE_FAIL"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RoutelogError(RuntimeError):
    """Base class for every error raised by routelog."""


class RoutelogConfigError(RoutelogError):
    """Raised when the settings cannot produce a usable pipeline."""


class InvalidLogRequestError(RoutelogError, ValueError):
    """Raised for an invalid flag, data shape, or missing required action."""


class InvalidPathError(RoutelogError, ValueError):
    """Raised for empty, absolute, or dot-only relative log paths."""


class PathTraversalError(InvalidPathError):
    """Raised when a relative path tries to leave its storage root."""


class InvalidPayloadError(RoutelogError, ValueError):
    """Raised when a payload is neither a non-empty string nor a log entry."""


class EncryptionKeyError(RoutelogError):
    """Raised when the field-encryption key is absent or malformed."""


class NotificationError(RoutelogError):
    """Raised by notifiers when the external channel rejects a delivery."""


class ConfigLoadError(RoutelogError):
    """Raised when a JSON configuration file cannot be loaded safely."""


def is_permission_error(exc: BaseException | None) -> bool:
    """Return ``True`` for EACCES / EPERM failures."""
    if exc is None:
        return False
    if isinstance(exc, PermissionError):
        return True
    return getattr(exc, "errno", None) in (errno.EACCES, errno.EPERM)


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


class ErrorRecord(BaseModel):
    """A single recorded pipeline failure."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str = "error"
    origin: str = "routelog"
    context: dict[str, Any] = {}
    recorded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ErrorRecorder:
    """Bounded history of recorded failures plus per-code counters.

    Parameters
    ----------
    history_limit:
        Maximum number of ``ErrorRecord`` entries kept.  Older records are
        discarded first; counters are never trimmed.
    """

    def __init__(self, history_limit: int = ERROR_HISTORY_LIMIT) -> None:
        self._records: collections.deque[ErrorRecord] = collections.deque(
            maxlen=history_limit
        )
        self.counters: collections.Counter[str] = collections.Counter()

    def record(
        self,
        message: str,
        *,
        code: str = "error",
        level: int = logging.WARNING,
        **context: Any,
    ) -> ErrorRecord:
        """Log a failure and keep it for later inspection."""
        entry = ErrorRecord(message=message, code=code, context=context)
        self._records.append(entry)
        self.counters[code] += 1
        logger.log(level, "%s [%s] %s", message, code, context or "")
        return entry

    def record_permission_drop(self, stage: str, path: str) -> None:
        """Count a write that was dropped because of a permission failure."""
        self.counters[PERMISSION_DROP] += 1
        logger.debug("Dropped %s write to %s after permission failure", stage, path)

    @property
    def records(self) -> list[ErrorRecord]:
        """Return a copy of the recorded failure history."""
        return list(self._records)

    @property
    def permission_drops(self) -> int:
        return self.counters[PERMISSION_DROP]

    def messages(self) -> list[str]:
        return [r.message for r in self._records]

    def clear(self) -> None:
        self._records.clear()
        self.counters.clear()
