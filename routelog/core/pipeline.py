"""LogPipeline — the public entry point of routelog.

Control flow for one event::

    request -> RouteResolver.route_for(flag)
            -> PathTemplateEngine.expand(route template, data + action)
            -> FieldEncryptor.encrypt(event, targets)
            -> DurableWriter.persist(<path>_<fileTimestamp><ext>)
            -> if critical: CriticalReplicator.replicate(...)
                            NotificationCircuitBreaker.notify(...)

Events whose template cannot be resolved are written to the ``missing_path``
fallback store instead.  Callers see exceptions only for their own mistakes
(invalid flag or data, missing ``action``, unsafe paths, bad payloads);
environmental failures are recorded on ``context.errors``.

Batches (``write_logs``) persist every event independently and wait for all
of them to settle before replicating critical entries and notifying.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from routelog.bridge.field_crypto import FieldEncryptor, collect_encryption_targets
from routelog.config import LogSettings
from routelog.core.config_loader import ConfigFileLoader
from routelog.core.context import PipelineContext
from routelog.core.dates import (
    DATE_FORMAT_TIMESTAMP,
    FALLBACK_FILE_TIMESTAMP,
    ISO_FALLBACK_TIMESTAMP,
    LOG_TIMESTAMP_FORMAT,
    Clock,
)
from routelog.core.errors import (
    InvalidLogRequestError,
    RoutelogConfigError,
    RoutelogError,
)
from routelog.core.log_setup import emit_local_warning
from routelog.core.route_resolver import RouteResolver
from routelog.core.sanitize import append_timestamp_to_path, sanitize_path_segment
from routelog.core.serialization import serialize_entry
from routelog.core.templates import (
    PathTemplateEngine,
    build_fallback_relative_path,
    describe_missing_placeholders,
    fallback_path_from_pattern,
)
from routelog.models.events import LogEvent, LogRequest
from routelog.models.paths import PathResolution
from routelog.models.routes import LogRoute
from routelog.routing.breaker import NotificationCircuitBreaker
from routelog.routing.scheduler import DelayedTaskScheduler
from routelog.routing.sinks import Notifier
from routelog.routing.sinks.slack import SlackNotifier
from routelog.storage import reader
from routelog.storage.replicator import CriticalReplicator
from routelog.storage.writer import MISSING_PATH_DIR, DurableWriter

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_ROOT = Path("logs")
SAFE_WRITE_ATTEMPTS = 2

Sleep = Callable[[float], Awaitable[Any]]


def resolve_roots(settings: LogSettings, routing_table: Mapping[str, Any]) -> tuple[Path, Path]:
    """Return ``(log_root, critical_root)`` for the configured environment.

    Raises
    ------
    RoutelogConfigError
        When a remote environment lacks either EFS root.
    """
    if settings.is_remote:
        if settings.log_efs_root is None or settings.log_efs_critical_root is None:
            raise RoutelogConfigError(
                f"LOG_EFS_ROOT and LOG_EFS_CRITICAL_ROOT are required in {settings.environment!r}"
            )
        return settings.log_efs_root, settings.log_efs_critical_root

    table_root = routing_table.get("root")
    if settings.log_local_root is not None:
        log_root = settings.log_local_root
    elif isinstance(table_root, str) and table_root.strip():
        log_root = Path(table_root)
    else:
        log_root = DEFAULT_LOCAL_ROOT

    table_critical = routing_table.get("criticalRoot")
    if isinstance(table_critical, str) and table_critical.strip():
        return log_root, Path(table_critical)
    return log_root, log_root / "critical"


class PreparedWrite(BaseModel):
    """One validated request, routed, resolved and encrypted."""

    model_config = ConfigDict(frozen=True)

    route: LogRoute
    event: LogEvent
    resolution: PathResolution


class LogPipeline:
    """Routes, encrypts, persists, replicates and notifies log events.

    Parameters
    ----------
    settings:
        Runtime configuration.
    routing_table:
        The loaded routing table.
    context:
        Shared caches, circuit state and error recorder; a fresh one is
        built when omitted.
    clock:
        Wall-clock and monotonic time source.
    notifier:
        External channel for critical events.  Defaults to a
        ``SlackNotifier`` when ``LOG_SLACK_WEBHOOK_URL`` is set; with neither,
        notification is disabled.
    sleep:
        Awaitable used for write-retry backoff.
    scheduler:
        Runs deferred notification retries.
    """

    def __init__(
        self,
        settings: LogSettings,
        routing_table: Mapping[str, Any],
        *,
        context: PipelineContext | None = None,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        sleep: Sleep = asyncio.sleep,
        scheduler: DelayedTaskScheduler | None = None,
    ) -> None:
        self.settings = settings
        self.context = context or PipelineContext(settings.log_cache_size)
        self.clock = clock or Clock()

        log_root, critical_root = resolve_roots(settings, routing_table)
        self.engine = PathTemplateEngine(self.context, self.clock)
        self.resolver = RouteResolver(routing_table, self.context, self.engine, self.clock)
        self.encryptor = FieldEncryptor(settings.log_encryption_key, self.context)
        self.writer = DurableWriter(
            log_root,
            settings.log_fallback_root,
            self.context,
            env=settings.environment,
            clock=self.clock,
            sleep=sleep,
        )
        self.replicator = CriticalReplicator(self.writer, critical_root)

        if notifier is None and settings.notifications_enabled:
            notifier = SlackNotifier(settings.log_slack_webhook_url)
        self.breaker: NotificationCircuitBreaker | None = None
        if notifier is not None:
            self.breaker = NotificationCircuitBreaker(
                notifier,
                self.writer,
                self.resolver,
                self.context,
                timeout_seconds=settings.slack_timeout_seconds,
                clock=self.clock,
                scheduler=scheduler,
            )

    @classmethod
    def from_settings(
        cls,
        settings: LogSettings | None = None,
        *,
        loader: ConfigFileLoader | None = None,
        **kwargs: Any,
    ) -> LogPipeline:
        """Build a pipeline, loading the routing table through ``ConfigFileLoader``."""
        if settings is None:
            from routelog.config import settings as default_settings

            settings = default_settings
        loader = loader or ConfigFileLoader(settings.log_config_dir)
        routing_table = loader.load(settings.log_routes_path)
        return cls(settings, routing_table, **kwargs)

    @property
    def log_root(self) -> Path:
        return self.writer.root

    @property
    def critical_root(self) -> Path:
        return self.replicator.critical_root

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def route_for(self, flag: Any) -> LogRoute:
        return self.resolver.route_for(flag)

    def resolve_path(self, template: str, data: Any) -> PathResolution:
        return self.engine.expand(template, data)

    def decrypt_entry(self, entry: Mapping[str, Any]) -> dict[str, str] | None:
        return self.encryptor.decrypt(entry)

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def _warn_if_local_mode(self) -> None:
        if self.settings.is_local and not self.context.local_warning_shown:
            self.context.local_warning_shown = True
            emit_local_warning()

    def _coerce_request(self, request: Any, index: int | None = None) -> LogRequest:
        if isinstance(request, LogRequest):
            return request
        where = "" if index is None else f" at index {index}"
        if not isinstance(request, Mapping):
            self.context.errors.record("invalid log request", code="invalid_request", index=index)
            raise InvalidLogRequestError(f"log request{where} must be a mapping")
        try:
            return LogRequest.model_validate(dict(request))
        except ValidationError as exc:
            reasons = "; ".join(err["msg"] for err in exc.errors())
            self.context.errors.record(
                "invalid log request", code="invalid_request", index=index, error=reasons
            )
            raise InvalidLogRequestError(f"invalid log request{where}: {reasons}") from exc

    def _timestamps(self) -> tuple[str, str]:
        now = self.clock.now()
        timestamp = self.engine.safe_format_date(
            now, DATE_FORMAT_TIMESTAMP, fallback=ISO_FALLBACK_TIMESTAMP, placeholder="timestamp"
        )
        file_timestamp = self.engine.safe_format_date(
            now, LOG_TIMESTAMP_FORMAT, fallback=FALLBACK_FILE_TIMESTAMP, placeholder="fileTimestamp"
        )
        return timestamp, file_timestamp

    def _prepare(self, request: LogRequest, *, require_action: bool = True) -> PreparedWrite:
        """Route, expand and encrypt *request*.

        With *require_action* false, a missing ``action`` on an ``{action}``
        route is left to surface as a missing placeholder.
        """
        route = self.route_for(request.flag)
        if (
            require_action
            and "{action}" in route.path_template
            and not (request.action or "").strip()
        ):
            self.context.errors.record(
                "action is required for this log route",
                code="invalid_request",
                flag=request.flag,
                path=route.path_template,
            )
            raise InvalidLogRequestError(
                f"action is required for log route {route.path_template!r}"
            )

        critical = request.critical if request.critical is not None else route.critical
        targets = collect_encryption_targets(route, request.encrypt_fields, request.data)
        path_data = self.engine.prepare_path_data(request.data, request.action)
        resolution = self.engine.expand(route.path_template, path_data)
        timestamp, file_timestamp = self._timestamps()

        event = LogEvent(
            timestamp=timestamp,
            file_timestamp=file_timestamp,
            level=request.level,
            flag=request.flag,
            action=request.action or None,
            message=request.message,
            critical=critical,
            data=dict(request.data),
            retention=route.retention,
            category=route.category,
            is_pci_relevant=route.is_pci_relevant,
            description=route.description,
            env=self.settings.environment,
        )
        if targets and route.is_pci_relevant and not self.encryptor.has_key:
            self.context.errors.record(
                "PCI-relevant entry persisted without field encryption",
                code="pci_unencrypted",
                level=logging.ERROR,
                flag=request.flag,
            )
        event = self.encryptor.encrypt(event, targets)
        return PreparedWrite(route=route, event=event, resolution=resolution)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write_missing_path(self, prepared: PreparedWrite) -> None:
        missing = list(prepared.resolution.missing)
        self.context.errors.record(
            "missing placeholders",
            code="missing_placeholders",
            flag=prepared.event.flag,
            missing=missing,
            route_path=prepared.route.path_template,
        )
        relative = build_fallback_relative_path(
            fallback_path_from_pattern(prepared.route.path_template),
            prepared.event.file_timestamp,
        )
        fallback_entry = {
            **prepared.event.to_payload(),
            "logError": (
                f"Missing required placeholders: {', '.join(missing)}"
                if missing
                else "Missing required placeholders"
            ),
            "missingPlaceholders": missing,
        }
        await self.writer.write_fallback_entry(
            MISSING_PATH_DIR, relative, serialize_entry(fallback_entry), stage="missing-placeholders"
        )

    async def _write_primary(self, prepared: PreparedWrite, resolved: str) -> str:
        payload = serialize_entry(prepared.event.to_payload())
        await self.write_to_storage(
            append_timestamp_to_path(resolved, prepared.event.file_timestamp), payload
        )
        return payload

    async def _notify(self, event: LogEvent) -> None:
        if self.breaker is not None:
            await self.breaker.notify(event.to_payload())

    async def write_log(
        self, request: LogRequest | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Write one log event.

        Accepts a ``LogRequest``, a mapping, or the request fields as keyword
        arguments.  A no-op returning ``None`` when logging is disabled.
        """
        if not self.settings.logging_enabled:
            return None
        self._warn_if_local_mode()
        prepared = self._prepare(self._coerce_request(request if request is not None else fields))

        if not prepared.resolution.ok:
            await self._write_missing_path(prepared)
            return None

        payload = await self._write_primary(prepared, prepared.resolution.path)
        if prepared.event.critical:
            await self.write_critical_log_file(
                prepared.resolution.path, payload, prepared.event.file_timestamp
            )
            await self._notify(prepared.event)
        return None

    async def write_logs(self, requests: list[Any]) -> None:
        """Write a batch of events with await-all-settle semantics.

        Every request's flag and data are validated before anything is
        written.  An entry on an ``{action}`` route without ``action`` is
        written to the missing-path store like any other unresolved path.
        Repeated
        missing-placeholder failures for the same flag and cause produce one
        fallback artifact per batch.
        """
        if not self.settings.logging_enabled:
            return None
        self._warn_if_local_mode()
        if not isinstance(requests, (list, tuple)):
            self.context.errors.record("logs must be a list", code="invalid_request")
            raise InvalidLogRequestError("write_logs expects a list of log requests")
        coerced = [self._coerce_request(req, index) for index, req in enumerate(requests)]
        batch = [self._prepare(request, require_action=False) for request in coerced]

        primary: list[Awaitable[Any]] = []
        critical: list[tuple[PreparedWrite, str]] = []
        fallback_keys: set[tuple[str, str]] = set()

        for prepared in batch:
            if not prepared.resolution.ok:
                key = (
                    sanitize_path_segment(prepared.event.flag),
                    describe_missing_placeholders(prepared.resolution.missing) or "_missing",
                )
                if key not in fallback_keys:
                    fallback_keys.add(key)
                    primary.append(self._write_missing_path(prepared))
                continue
            payload = serialize_entry(prepared.event.to_payload())
            primary.append(self._write_primary(prepared, prepared.resolution.path))
            if prepared.event.critical:
                critical.append((prepared, payload))

        self._record_failures(await asyncio.gather(*primary, return_exceptions=True), "batch-write")

        replicas = [
            self.write_critical_log_file(p.resolution.path, payload, p.event.file_timestamp)
            for p, payload in critical
        ]
        self._record_failures(
            await asyncio.gather(*replicas, return_exceptions=True), "batch-critical-write"
        )

        for prepared, _ in critical:
            await self._notify(prepared.event)
        return None

    def _record_failures(self, results: list[Any], stage: str) -> None:
        for result in results:
            if isinstance(result, BaseException):
                self.context.errors.record(
                    "batch entry failed", code="batch_entry", stage=stage, error=str(result)
                )

    async def write_log_safe(
        self, request: LogRequest | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """``write_log`` that never raises; failures are recorded."""
        for attempt in range(SAFE_WRITE_ATTEMPTS):
            try:
                return await self.write_log(request, **fields)
            except (RoutelogError, OSError, ValueError) as exc:
                self.context.errors.record(
                    "write_log_safe failed", code="safe_write", attempt=attempt, error=str(exc)
                )
        return None

    async def write_logs_safe(self, requests: list[Any]) -> None:
        """``write_logs`` that never raises; failures are recorded."""
        for attempt in range(SAFE_WRITE_ATTEMPTS):
            try:
                return await self.write_logs(requests)
            except (RoutelogError, OSError, ValueError) as exc:
                self.context.errors.record(
                    "write_logs_safe failed", code="safe_write", attempt=attempt, error=str(exc)
                )
        return None

    async def write_to_storage(self, relative_path: Any, entry_or_payload: Any) -> None:
        await self.writer.persist(relative_path, entry_or_payload)

    async def write_critical_log_file(
        self, relative_path: Any, entry_or_payload: Any, file_timestamp: str | None = None
    ) -> None:
        await self.replicator.replicate(relative_path, entry_or_payload, file_timestamp)

    async def write_log_batch_file(self, relative_path: Any, entries: list[Any]) -> None:
        """Write *entries* as one newline-delimited JSON file."""
        await self.writer.persist_batch(relative_path, entries)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    async def read_log_file(
        self, log_file_path: Any, *, decrypt: bool = False, limit: Any = reader.DEFAULT_READ_LIMIT
    ) -> list[Any]:
        return await reader.read_log_file(
            log_file_path, self.encryptor, self.context, decrypt=decrypt, limit=limit
        )

    async def decrypt_log_file(self, log_file_path: Any) -> Path:
        return await reader.decrypt_log_file(log_file_path, self.encryptor, self.context)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def aclose(self, *, wait: bool = False) -> None:
        """Drain (``wait=True``) or cancel pending notification retries."""
        if self.breaker is None:
            return
        if wait:
            await self.breaker.scheduler.drain()
        else:
            await self.breaker.scheduler.cancel_all()
