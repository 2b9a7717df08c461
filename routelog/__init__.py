"""routelog: structured-log delivery with routing, field encryption and durable writes.

v0.4.0:
  - Flag-based routing table with templated destination paths
  - Per-field ChaCha20-Poly1305 encryption via PyNaCl
  - Rotating, retrying async writes with fallback stores (aiofiles)
  - Critical-event replication and Slack alerts behind a circuit breaker
  - Bounded FIFO caches (cachetools) owned by an explicit pipeline context
"""

import logging

__version__ = "0.4.0"
__description__ = "Structured-log delivery pipeline with routing, encryption and durable writes"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from routelog.config import LogSettings  # noqa: E402
from routelog.core.context import PipelineContext  # noqa: E402
from routelog.core.pipeline import LogPipeline  # noqa: E402
from routelog.models import LogEvent, LogRequest, LogRoute  # noqa: E402

__all__ = [
    "LogPipeline",
    "LogSettings",
    "PipelineContext",
    "LogRequest",
    "LogEvent",
    "LogRoute",
    "__version__",
]
