"""Unit tests for LogSettings and root resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from routelog.config import DEFAULT_SLACK_TIMEOUT_MS, LogSettings
from routelog.core.errors import RoutelogConfigError
from routelog.core.pipeline import resolve_roots


class TestLogSettings:

    def test_defaults(self):
        settings = LogSettings(_env_file=None)
        assert settings.logging_enabled is True
        assert settings.log_fallback_root == Path("logs_fallback")
        assert settings.log_routes_path == "configs/logRoutes.json"
        assert settings.log_cache_size == 1000

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LOG_SLACK_TIMEOUT_MS", "1500")
        monkeypatch.setenv("LOGGING_ENABLED", "false")
        settings = LogSettings(_env_file=None)
        assert settings.log_slack_timeout_ms == 1500
        assert settings.slack_timeout_seconds == 1.5
        assert settings.logging_enabled is False

    @pytest.mark.parametrize("value", ["abc", "-5", "0", None])
    def test_invalid_timeout_falls_back(self, value):
        settings = LogSettings(_env_file=None, log_slack_timeout_ms=value)
        assert settings.log_slack_timeout_ms == DEFAULT_SLACK_TIMEOUT_MS

    @pytest.mark.parametrize("raw,expected", [("TRACE", "trace"), ("info", "info"), ("loud", "debug")])
    def test_debug_level_normalized(self, raw, expected):
        assert LogSettings(_env_file=None, log_debug_level=raw).log_debug_level == expected

    def test_environment_flags(self):
        assert LogSettings(_env_file=None, environment="PROD").is_remote
        assert LogSettings(_env_file=None, environment="local").is_local
        staging = LogSettings(_env_file=None, environment="qa")
        assert not staging.is_local and not staging.is_remote

    def test_blank_roots_are_unset(self):
        assert LogSettings(_env_file=None, log_local_root="  ").log_local_root is None

    def test_notifications_need_webhook(self):
        assert not LogSettings(_env_file=None, log_slack_webhook_url="").notifications_enabled
        assert LogSettings(_env_file=None, log_slack_webhook_url="https://hooks.example/x").notifications_enabled


class TestResolveRoots:

    def test_remote_requires_efs_roots(self):
        settings = LogSettings(_env_file=None, environment="prod", log_efs_root="/efs/logs")
        with pytest.raises(RoutelogConfigError):
            resolve_roots(settings, {})

    def test_remote_uses_efs_roots(self):
        settings = LogSettings(
            _env_file=None, environment="stage",
            log_efs_root="/efs/logs", log_efs_critical_root="/efs/critical",
        )
        assert resolve_roots(settings, {"root": "ignored"}) == (Path("/efs/logs"), Path("/efs/critical"))

    def test_local_prefers_setting_then_table_then_default(self, tmp_path):
        explicit = LogSettings(_env_file=None, log_local_root=tmp_path)
        assert resolve_roots(explicit, {"root": "t"}) == (tmp_path, tmp_path / "critical")

        from_table = LogSettings(_env_file=None, log_local_root=None)
        assert resolve_roots(from_table, {"root": "t", "criticalRoot": "c"}) == (Path("t"), Path("c"))

        default = LogSettings(_env_file=None, log_local_root=None)
        assert resolve_roots(default, {}) == (Path("logs"), Path("logs/critical"))
