"""Bounded insertion-order caches shared by the route, path and template layers.

All three caches use the same policy: a fixed capacity, and when an insert
would exceed it, the oldest *inserted* entry is evicted.  Reads do not refresh
an entry's position, so this is a FIFO cap rather than an LRU.
"""

from __future__ import annotations

import logging
from typing import Any

from cachetools import FIFOCache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000


class BoundedCache(FIFOCache):
    """``FIFOCache`` with a name and an eviction counter.

    ``len(cache) <= cache.capacity`` holds after every mutation.
    """

    def __init__(self, name: str, capacity: int = DEFAULT_CACHE_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"cache capacity must be positive, got {capacity}")
        super().__init__(maxsize=capacity)
        self.name = name
        self.evictions = 0

    @property
    def capacity(self) -> int:
        return int(self.maxsize)

    def popitem(self) -> tuple[Any, Any]:
        key, value = super().popitem()
        self.evictions += 1
        logger.debug("Cache %s evicted oldest entry (size=%d)", self.name, len(self))
        return key, value

    def __repr__(self) -> str:
        return f"BoundedCache(name={self.name!r}, size={len(self)}, capacity={self.capacity})"
