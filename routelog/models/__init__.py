"""routelog data models — all Pydantic v2, all frozen (immutable)."""

from routelog.models.events import (
    SCHEMA_VERSION,
    EncryptedSegment,
    LogEvent,
    LogRequest,
    WriteFailureRecord,
)
from routelog.models.paths import PathResolution, PlaceholderToken, ResolvedPath
from routelog.models.routes import LogRoute

__all__ = [
    # routes
    "LogRoute",
    # events
    "SCHEMA_VERSION",
    "LogRequest",
    "LogEvent",
    "EncryptedSegment",
    "WriteFailureRecord",
    # paths
    "PlaceholderToken",
    "PathResolution",
    "ResolvedPath",
]
