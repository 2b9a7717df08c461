"""Unit tests for console logging setup and the local-mode notice."""

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from routelog.config import LogSettings
from routelog.core.log_setup import (
    LOCAL_MODE_NOTICE,
    TRACE,
    configure_logging,
    emit_local_warning,
    level_for,
    set_local_warning_handler,
)


@pytest.fixture
def clean_package_logger():
    package_logger = logging.getLogger("routelog")
    level = package_logger.level
    yield package_logger
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    package_logger.setLevel(level)


class TestConfigureLogging:

    def test_console_disabled_attaches_nothing(self, clean_package_logger):
        configure_logging(LogSettings(_env_file=None, logging_enable_console_logs=False))
        assert not any(isinstance(h, RichHandler) for h in clean_package_logger.handlers)

    def test_console_enabled_attaches_one_rich_handler(self, clean_package_logger):
        settings = LogSettings(
            _env_file=None, logging_enable_console_logs=True, log_debug_level="trace"
        )
        configure_logging(settings)
        configure_logging(settings)
        rich_handlers = [h for h in clean_package_logger.handlers if isinstance(h, RichHandler)]
        assert len(rich_handlers) == 1
        assert rich_handlers[0].level == TRACE

    @pytest.mark.parametrize(
        "name,level", [("trace", TRACE), ("debug", logging.DEBUG), ("info", logging.INFO), ("x", logging.DEBUG)]
    )
    def test_level_mapping(self, name, level):
        assert level_for(name) == level

    def test_trace_level_name(self):
        assert logging.getLevelName(TRACE) == "TRACE"


class TestLocalWarningHandler:

    def test_custom_handler_receives_notice(self):
        seen: list[str] = []
        set_local_warning_handler(seen.append)
        try:
            emit_local_warning()
        finally:
            set_local_warning_handler(None)
        assert seen == [LOCAL_MODE_NOTICE]
