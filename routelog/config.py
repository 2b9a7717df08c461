"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a ``.env`` file and
the process environment (``LOGGING_*`` / ``LOG_*`` variables, no prefix).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SLACK_TIMEOUT_MS = 3000
REMOTE_ENVIRONMENTS = frozenset({"dev", "stage", "prod"})
DEBUG_LEVELS = ("trace", "debug", "info")


class LogSettings(BaseSettings):
    """Pipeline configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export ENVIRONMENT=prod
        export LOG_EFS_ROOT=/mnt/efs/logs
        export LOG_EFS_CRITICAL_ROOT=/mnt/efs/logs/critical
        export LOG_ENCRYPTION_KEY=$(routelog keygen)

    Or via .env file::

        LOGGING_ENABLE_CONSOLE_LOGS=true
        LOG_DEBUG_LEVEL=trace
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "local"
    logging_enabled: bool = True
    logging_enable_console_logs: bool = False
    log_debug_level: str = "debug"

    # Storage roots
    log_local_root: Path | None = None
    log_efs_root: Path | None = None
    log_efs_critical_root: Path | None = None
    log_fallback_root: Path = Path("logs_fallback")

    # Routing table, relative to the config base directory
    log_config_dir: Path = Path(".")
    log_routes_path: str = "configs/logRoutes.json"

    # Field encryption: base64, 32 bytes decoded
    log_encryption_key: str = ""

    # External notification
    log_slack_webhook_url: str = ""
    log_slack_timeout_ms: int = DEFAULT_SLACK_TIMEOUT_MS

    # Caches
    log_cache_size: int = 1000

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value: Any) -> str:
        return str(value or "local").strip().lower()

    @field_validator("log_debug_level", mode="before")
    @classmethod
    def _normalize_debug_level(cls, value: Any) -> str:
        level = str(value or "").strip().lower()
        return level if level in DEBUG_LEVELS else "debug"

    @field_validator("log_slack_timeout_ms", mode="before")
    @classmethod
    def _timeout_or_default(cls, value: Any) -> int:
        try:
            timeout = int(value)
        except (TypeError, ValueError):
            return DEFAULT_SLACK_TIMEOUT_MS
        return timeout if timeout > 0 else DEFAULT_SLACK_TIMEOUT_MS

    @field_validator("log_local_root", "log_efs_root", "log_efs_critical_root", mode="before")
    @classmethod
    def _blank_root_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def is_remote(self) -> bool:
        """Whether roots must come from the EFS settings."""
        return self.environment in REMOTE_ENVIRONMENTS

    @property
    def slack_timeout_seconds(self) -> float:
        return self.log_slack_timeout_ms / 1000.0

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.log_slack_webhook_url.strip())


# Module-level singleton; import as `from routelog.config import settings`
settings = LogSettings()
