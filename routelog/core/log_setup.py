"""Console logging setup and the one-time local-mode notice."""

from __future__ import annotations

import logging
from collections.abc import Callable

from rich.logging import RichHandler

from routelog.config import LogSettings

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

PACKAGE_LOGGER = "routelog"

_LEVELS = {"trace": TRACE, "debug": logging.DEBUG, "info": logging.INFO}

LOCAL_MODE_NOTICE = (
    "routelog is running in local mode; entries are written beneath the local "
    "log root and are not replicated to shared storage."
)


def level_for(debug_level: str) -> int:
    return _LEVELS.get((debug_level or "").lower(), logging.DEBUG)


def configure_logging(settings: LogSettings) -> logging.Logger:
    """Attach a rich console handler to the package logger when enabled.

    Calling it again replaces the previously attached handler.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    if settings.logging_enable_console_logs:
        level = level_for(settings.log_debug_level)
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setLevel(level)
        package_logger.addHandler(handler)
        package_logger.setLevel(level)
    return package_logger


def _default_local_warning(message: str) -> None:
    logging.getLogger(PACKAGE_LOGGER).warning(message)


_local_warning_handler: Callable[[str], None] = _default_local_warning


def set_local_warning_handler(handler: Callable[[str], None] | None) -> None:
    """Replace the local-mode notice handler; ``None`` restores the default."""
    global _local_warning_handler
    _local_warning_handler = handler or _default_local_warning


def emit_local_warning() -> None:
    _local_warning_handler(LOCAL_MODE_NOTICE)
