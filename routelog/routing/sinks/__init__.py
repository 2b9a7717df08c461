"""Notifier protocol for external critical-event alerts.

Notifiers implement a ``notifier_name`` property and an async
``send(entry, timeout=...)`` that raises on timeout or transport failure.
The circuit breaker is the only caller.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    """Protocol that every external notifier must implement.

    Attributes
    ----------
    notifier_name : str
        A short identifier used in logs (e.g. ``"slack"``).
    """

    @property
    def notifier_name(self) -> str:
        """Return the name of this notifier."""
        ...

    async def send(self, entry: Mapping[str, Any], *, timeout: float) -> None:
        """Deliver a critical entry.

        Parameters
        ----------
        entry:
            The serialized (camelCase) log entry.
        timeout:
            Seconds the delivery may take before it counts as failed.
        """
        ...
