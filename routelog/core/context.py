"""Pipeline context: the process-wide mutable state, owned explicitly.

The route, path-resolution and template-resolution caches, the notification
circuit state, and the error recorder all live on a ``PipelineContext``.
Components receive the context at construction instead of reaching for
module-level singletons, so tests can build isolated instances and reset them
between cases.

Every mutation here (cache insert + trim, counter increment + compare) is a
plain synchronous sequence with no ``await`` in between, which is what keeps it
safe under the single-threaded asyncio scheduling model.  Porting the pipeline
to threads requires a lock around each of them.
"""

from __future__ import annotations

from routelog.core.cache import DEFAULT_CACHE_SIZE, BoundedCache
from routelog.core.errors import ErrorRecorder


class CircuitState:
    """Notification circuit-breaker state, mutated only by the breaker.

    Times are monotonic-clock seconds.
    """

    __slots__ = ("failure_count", "cooldown_until", "fallback_cooldown_until")

    def __init__(self) -> None:
        self.failure_count: int = 0
        self.cooldown_until: float = 0.0
        self.fallback_cooldown_until: float = 0.0

    def reset(self) -> None:
        self.failure_count = 0
        self.cooldown_until = 0.0
        self.fallback_cooldown_until = 0.0

    def __repr__(self) -> str:
        return (
            f"CircuitState(failure_count={self.failure_count}, "
            f"cooldown_until={self.cooldown_until}, "
            f"fallback_cooldown_until={self.fallback_cooldown_until})"
        )


class PipelineContext:
    """Owns the caches, circuit state, and failure recorder of one pipeline.

    Parameters
    ----------
    cache_size:
        Capacity applied to all three bounded caches.
    """

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.route_cache = BoundedCache("route", cache_size)
        self.path_cache = BoundedCache("path", cache_size)
        self.resolve_cache = BoundedCache("resolve", cache_size)
        self.circuit = CircuitState()
        self.errors = ErrorRecorder()
        self.local_warning_shown = False

    @property
    def caches(self) -> tuple[BoundedCache, BoundedCache, BoundedCache]:
        return (self.route_cache, self.path_cache, self.resolve_cache)

    def reset(self) -> None:
        """Clear every cache, the circuit state, and the error history."""
        for cache in self.caches:
            cache.clear()
            cache.evictions = 0
        self.circuit.reset()
        self.errors.clear()
        self.local_warning_shown = False
