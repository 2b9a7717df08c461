"""Notification circuit breaker — best-effort external alerts for critical entries.

States
------
CLOSED
    Deliveries are attempted with a bounded timeout.
OPEN
    Entered after ``FAILURE_THRESHOLD`` consecutive failures.  Deliveries
    are skipped without a network attempt until ``FAILURE_COOLDOWN_SECONDS``
    have elapsed, after which the breaker is CLOSED again.

Any success resets the failure counter but leaves an open cooldown window to
expire on its own schedule.

Every failed delivery writes the entry to the ``slack`` fallback store and
schedules one deferred retry, unless the fallback-suppression window from a
previous failure is still active.  Retries carry their attempt number on the
``RetryTask``; chains stop after ``RETRY_LIMIT`` attempts.

Nothing here raises to the caller of ``notify``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from routelog.core.context import PipelineContext
from routelog.core.dates import Clock
from routelog.core.errors import ErrorCode, RoutelogError
from routelog.core.route_resolver import RouteResolver
from routelog.core.serialization import serialize_entry
from routelog.core.templates import (
    build_fallback_relative_path,
    fallback_path_from_pattern,
)
from routelog.routing.scheduler import DelayedTaskScheduler, RetryTask
from routelog.routing.sinks import Notifier
from routelog.storage.writer import SLACK_FALLBACK_DIR, DurableWriter

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 3
FAILURE_COOLDOWN_SECONDS = 60.0
FALLBACK_COOLDOWN_SECONDS = 60.0
RETRY_LIMIT = 2
DEFAULT_TIMEOUT_SECONDS = 3.0


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"


class NotificationCircuitBreaker:
    """Guards a ``Notifier`` with failure counting, cooldown and retries.

    Parameters
    ----------
    notifier:
        The external channel.
    writer:
        Used for the ``slack`` fallback store.
    resolver:
        Supplies the entry's route template for the fallback file name.
    context:
        Owns the ``CircuitState`` and the error recorder.
    timeout_seconds:
        Per-delivery timeout.
    clock:
        Monotonic time source for the cooldown windows.
    scheduler:
        Runs deferred retries.
    """

    def __init__(
        self,
        notifier: Notifier,
        writer: DurableWriter,
        resolver: RouteResolver,
        context: PipelineContext,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Clock | None = None,
        scheduler: DelayedTaskScheduler | None = None,
    ) -> None:
        self._notifier = notifier
        self._writer = writer
        self._resolver = resolver
        self._context = context
        self._timeout = timeout_seconds if timeout_seconds > 0 else DEFAULT_TIMEOUT_SECONDS
        self._clock = clock or Clock()
        self._scheduler = scheduler or DelayedTaskScheduler()

    @property
    def scheduler(self) -> DelayedTaskScheduler:
        return self._scheduler

    @property
    def state(self) -> BreakerState:
        if self._clock.monotonic() < self._context.circuit.cooldown_until:
            return BreakerState.OPEN
        return BreakerState.CLOSED

    def can_send(self) -> bool:
        return self.state is BreakerState.CLOSED

    # ------------------------------------------------------------------
    # Counter transitions
    # ------------------------------------------------------------------

    def record_success(self) -> None:
        self._context.circuit.failure_count = 0

    def record_failure(self, error: BaseException) -> None:
        circuit = self._context.circuit
        circuit.failure_count += 1
        if circuit.failure_count >= FAILURE_THRESHOLD:
            circuit.failure_count = 0
            circuit.cooldown_until = self._clock.monotonic() + FAILURE_COOLDOWN_SECONDS
            self._context.errors.record(
                "notifications disabled temporarily after repeated failures",
                code="notify_circuit_open",
                notifier=self._notifier.notifier_name,
                reason=str(error) or type(error).__name__,
            )

    def fallback_suppressed(self) -> bool:
        return self._clock.monotonic() < self._context.circuit.fallback_cooldown_until

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def notify(self, entry: dict[str, Any], attempt: int = 0) -> bool:
        """Offer *entry* to the notifier; returns whether it was delivered."""
        if not self.can_send():
            logger.debug("Notification skipped: in cooldown window")
            return False
        try:
            await asyncio.wait_for(
                self._notifier.send(entry, timeout=self._timeout), timeout=self._timeout
            )
        except Exception as exc:  # noqa: BLE001
            self.record_failure(exc)
            logger.debug("Notification failed: %s", exc)
            await self._handle_failure(entry, exc, attempt)
            return False
        self.record_success()
        return True

    async def _handle_failure(
        self, entry: dict[str, Any], error: BaseException, attempt: int
    ) -> None:
        if self.fallback_suppressed():
            logger.debug("Notification fallback suppressed during cooldown")
            return
        # Claim the suppression window before the first await.
        self._context.circuit.fallback_cooldown_until = (
            self._clock.monotonic() + FALLBACK_COOLDOWN_SECONDS
        )
        self._schedule_retry(entry, attempt)
        await self._write_fallback(entry, error)

    async def _write_fallback(self, entry: dict[str, Any], error: BaseException) -> None:
        route = self._resolver.route_for(entry.get("flag"))
        relative = build_fallback_relative_path(
            fallback_path_from_pattern(route.path_template),
            entry.get("fileTimestamp") or self._writer.file_timestamp(),
        )
        fallback_entry = {
            **entry,
            "slackError": str(error) or type(error).__name__,
            "errorCode": ErrorCode.SLACK_FAIL.value,
        }
        try:
            await self._writer.write_fallback_entry(
                SLACK_FALLBACK_DIR,
                relative,
                serialize_entry(fallback_entry),
                stage="slack-fallback",
            )
        except (OSError, RoutelogError) as exc:
            self._context.errors.record(
                "notification fallback write failed",
                code=ErrorCode.SLACK_FAIL.value,
                path=relative,
                error=str(exc),
            )

    def _schedule_retry(self, entry: dict[str, Any], attempt: int) -> RetryTask | None:
        if attempt >= RETRY_LIMIT:
            return None
        task = RetryTask(
            entry=entry, attempt=attempt + 1, delay_seconds=FALLBACK_COOLDOWN_SECONDS
        )

        async def _retry() -> None:
            await self.notify(task.entry, attempt=task.attempt)

        self._scheduler.schedule(
            task.delay_seconds, _retry, name=f"notify-retry-{task.attempt}"
        )
        return task
