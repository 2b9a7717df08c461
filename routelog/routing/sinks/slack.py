"""Slack notifier — posts critical entries to an incoming webhook.

Transport errors and non-2xx responses are raised as ``NotificationError``
so the circuit breaker sees one failure type regardless of cause.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from routelog.core.errors import NotificationError
from routelog.routing.sinks._formatting import format_message

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Sends critical entries to a Slack incoming webhook.

    Parameters
    ----------
    webhook_url:
        The incoming-webhook URL.
    session:
        Optional shared ``aiohttp.ClientSession``; one is created per send
        otherwise.
    """

    def __init__(
        self, webhook_url: str, session: aiohttp.ClientSession | None = None
    ) -> None:
        self._webhook_url = webhook_url
        self._session = session

    @property
    def notifier_name(self) -> str:
        return "slack"

    @staticmethod
    def build_payload(entry: Mapping[str, Any]) -> dict[str, Any]:
        return {"text": format_message(entry)}

    async def send(self, entry: Mapping[str, Any], *, timeout: float) -> None:
        payload = self.build_payload(entry)
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            if self._session is not None:
                await self._post(self._session, payload, client_timeout)
            else:
                async with aiohttp.ClientSession() as session:
                    await self._post(session, payload, client_timeout)
        except aiohttp.ClientError as exc:
            raise NotificationError(f"Slack delivery failed: {exc}") from exc
        logger.debug("SlackNotifier: delivered %s", entry.get("flag"))

    async def _post(
        self,
        session: aiohttp.ClientSession,
        payload: dict[str, Any],
        timeout: aiohttp.ClientTimeout,
    ) -> None:
        async with session.post(self._webhook_url, json=payload, timeout=timeout) as resp:
            if resp.status >= 300:
                body = await resp.text()
                raise NotificationError(f"Slack returned {resp.status}: {body[:200]}")
