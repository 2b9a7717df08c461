"""Shared test fixtures for routelog."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from routelog.bridge.field_crypto import FieldEncryptor, generate_key
from routelog.config import LogSettings
from routelog.core.context import PipelineContext
from routelog.core.dates import Clock
from routelog.core.errors import NotificationError
from routelog.core.pipeline import LogPipeline
from routelog.core.route_resolver import RouteResolver
from routelog.core.templates import PathTemplateEngine
from routelog.routing.scheduler import DelayedTaskScheduler
from routelog.storage.writer import DurableWriter

FIXED_NOW = datetime(2024, 3, 5, 12, 30, 45, 123000, tzinfo=timezone.utc)
FILE_TS = "20240305123045123"

ROUTING_TABLE: dict[str, Any] = {
    "root": "ignored-by-tests",
    "auth": {
        "retention": "90d",
        "category": "security",
        "description": "Authentication events",
        "logs": [
            {"flag": "user_login", "path": "auth/{tenant}/{date:yyyy-MM-dd}.log"},
            {"flag": "admin_action", "path": "admin/{action}/events.log", "critical": True},
            {
                "flag": "card_update",
                "path": "payments/{tenant}.log",
                "encryptFields": ["card"],
                "isPciRelevant": True,
            },
        ],
    },
    "system": {
        "retention": 30,
        "category": "ops",
        "description": "System health",
        "logs": [
            {"flag": "disk_alert", "path": "system/alerts.log", "critical": True},
            {"flag": "heartbeat", "path": "system/heartbeat.log"},
        ],
    },
}


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeClock(Clock):
    """Clock frozen at ``FIXED_NOW`` until advanced."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start
        self.mono = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.mono += seconds


class RecordingNotifier:
    """A notifier that records every delivered entry."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    @property
    def notifier_name(self) -> str:
        return "recording"

    async def send(self, entry: Mapping[str, Any], *, timeout: float) -> None:
        self.sent.append(dict(entry))


class FailingNotifier:
    """A notifier that always raises, counting attempts."""

    def __init__(self) -> None:
        self.calls = 0

    @property
    def notifier_name(self) -> str:
        return "failing"

    async def send(self, entry: Mapping[str, Any], *, timeout: float) -> None:
        self.calls += 1
        raise NotificationError("webhook unreachable")


class RecordingScheduler(DelayedTaskScheduler):
    """Records scheduled retries instead of running them."""

    def __init__(self) -> None:
        super().__init__()
        self.scheduled: list[tuple[float, Callable[[], Any], str]] = []

    def schedule(self, delay_seconds, callback, *, name="delayed-task"):
        self.scheduled.append((delay_seconds, callback, name))
        return None


async def no_sleep(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def context() -> PipelineContext:
    """Provide an isolated PipelineContext."""
    return PipelineContext()


@pytest.fixture
def encryption_key() -> str:
    return generate_key()


@pytest.fixture
def settings(tmp_path: Path, encryption_key: str) -> LogSettings:
    """Settings rooted in the test's temp directory; notifications disabled."""
    return LogSettings(
        _env_file=None,
        environment="local",
        logging_enabled=True,
        log_local_root=tmp_path / "logs",
        log_efs_root=None,
        log_efs_critical_root=None,
        log_fallback_root=tmp_path / "fallback",
        log_config_dir=tmp_path,
        log_encryption_key=encryption_key,
        log_slack_webhook_url="",
    )


@pytest.fixture
def routing_table() -> dict[str, Any]:
    return ROUTING_TABLE


@pytest.fixture
def engine(context: PipelineContext, clock: FakeClock) -> PathTemplateEngine:
    return PathTemplateEngine(context, clock)


@pytest.fixture
def resolver(
    context: PipelineContext, engine: PathTemplateEngine, clock: FakeClock
) -> RouteResolver:
    return RouteResolver(ROUTING_TABLE, context, engine, clock)


@pytest.fixture
def encryptor(encryption_key: str, context: PipelineContext) -> FieldEncryptor:
    return FieldEncryptor(encryption_key, context)


@pytest.fixture
def writer(tmp_path: Path, context: PipelineContext, clock: FakeClock) -> DurableWriter:
    """A DurableWriter over ``tmp/logs`` with no-op backoff."""
    return DurableWriter(
        tmp_path / "logs",
        tmp_path / "fallback",
        context,
        env="test",
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def make_pipeline(
    settings: LogSettings, context: PipelineContext, clock: FakeClock
) -> Callable[..., LogPipeline]:
    """Factory fixture: build a LogPipeline wired to test collaborators."""

    def _factory(**overrides: Any) -> LogPipeline:
        settings_overrides = overrides.pop("settings_overrides", None)
        pipeline_settings = (
            settings.model_copy(update=settings_overrides) if settings_overrides else settings
        )
        kwargs: dict[str, Any] = {
            "context": context,
            "clock": clock,
            "sleep": no_sleep,
            "scheduler": RecordingScheduler(),
        }
        kwargs.update(overrides)
        table = kwargs.pop("routing_table", ROUTING_TABLE)
        return LogPipeline(pipeline_settings, table, **kwargs)

    return _factory
