"""Route resolver — maps a flag to its ``LogRoute``.

The routing table is a mapping of category names to category objects, each
carrying ``retention``/``category``/``description`` metadata and a ``logs``
list of ``{flag, path, critical, encryptFields, ...}`` entries.  Top-level
keys that are not category objects (``root``, ``criticalRoot``) are skipped.

``route_for`` never raises.  Unknown flags, and flags whose lookup trips over a
malformed table, get a synthesized route under
``missingLogRoutes/<flag>/<day>.log``.  Table routes are cached by lower-cased
flag; synthesized routes are cached by flag and day, so a long-running process
moves to a new file when the date changes.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from routelog.core.context import PipelineContext
from routelog.core.dates import DATE_FORMAT_DAY, ISO_FALLBACK_DATE, Clock
from routelog.core.sanitize import sanitize_path_segment
from routelog.core.templates import PathTemplateEngine
from routelog.models.routes import LogRoute

logger = logging.getLogger(__name__)

MISSING_ROUTES_DIR = "missingLogRoutes"
UNKNOWN = "unknown"


class RouteResolver:
    """Resolves flags against a routing table with a bounded cache.

    Parameters
    ----------
    routing_table:
        The loaded routing table (typically deep-frozen by the config loader).
    context:
        Owns the route cache and the error recorder.
    engine:
        Used for the fallback route's date formatting.
    """

    def __init__(
        self,
        routing_table: Mapping[str, Any],
        context: PipelineContext,
        engine: PathTemplateEngine,
        clock: Clock | None = None,
    ) -> None:
        self._table = routing_table
        self._context = context
        self._engine = engine
        self._clock = clock or Clock()

    @property
    def routing_table(self) -> Mapping[str, Any]:
        return self._table

    def route_for(self, flag: Any) -> LogRoute:
        """Return the route for *flag*, synthesizing a fallback when unknown."""
        raw_flag = flag if isinstance(flag, str) else str(flag or "")
        normalized = raw_flag.strip()
        cache_key = normalized.lower()
        cached = self._context.route_cache.get(cache_key)
        if cached is not None:
            return cached

        day = self._current_day()
        fallback_key = (cache_key, day)
        cached = self._context.route_cache.get(fallback_key)
        if cached is not None:
            return cached
        logger.debug("Route cache miss for flag: %s", normalized)

        try:
            route = self._lookup(cache_key)
        except (AttributeError, TypeError, KeyError, ValueError, ValidationError) as exc:
            self._context.errors.record(
                "failed to parse route metadata",
                code="route_table",
                flag=raw_flag,
                error=str(exc),
            )
            route = None

        if route is None:
            logger.debug("Route not found for flag: %s", normalized)
            route = self._fallback_route(normalized, day)
            self._context.route_cache[fallback_key] = route
            return route

        self._context.route_cache[cache_key] = route
        return route

    def _lookup(self, cache_key: str) -> LogRoute | None:
        for category in self._table.values():
            if not isinstance(category, Mapping) or not category.get("logs"):
                continue
            meta = {
                "retention": category.get("retention"),
                "category": category.get("category"),
                "description": category.get("description"),
            }
            for entry in category["logs"]:
                if str(entry.get("flag") or "").lower() == cache_key:
                    return LogRoute.from_table_entry(meta, entry)
        return None

    def _current_day(self) -> str:
        return self._engine.safe_format_date(
            self._clock.now(),
            DATE_FORMAT_DAY,
            fallback=ISO_FALLBACK_DATE,
            placeholder="missingRouteDate",
        )

    def _fallback_route(self, flag: str, day: str) -> LogRoute:
        safe_flag = sanitize_path_segment(flag) or "missing_route"
        return LogRoute(
            flag=flag or "missing_route",
            path_template=posixpath.join(MISSING_ROUTES_DIR, safe_flag, f"{day}.log"),
            retention=UNKNOWN,
            category=UNKNOWN,
            description=UNKNOWN,
            is_pci_relevant=False,
            critical=False,
        )
