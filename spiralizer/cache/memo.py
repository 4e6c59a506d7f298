"""
Memoized tessellation cache keyed by point-array content.

Sits underneath the geometry adapter and catches reuse even when the
semantic parameters differ, e.g. truncation on and off producing the same
filtered point set. Entries are evicted least-recently-used once the byte
ceiling is reached, and expire after ``max_age`` seconds.
"""

import hashlib
import time
from collections import OrderedDict
from threading import RLock
from typing import Any, Callable, Dict, NamedTuple, Optional

import numpy as np
import structlog

from ..core.geometry import TessellationResult, compute_voronoi

logger = structlog.get_logger()


class _Slot(NamedTuple):
    value: Any
    size: int
    stored_at: float


def points_key(points: np.ndarray) -> str:
    """Content hash of a point array, including dtype and shape."""
    points = np.ascontiguousarray(points)
    digest = hashlib.sha256()
    digest.update(str(points.dtype).encode())
    digest.update(str(points.shape).encode())
    digest.update(points.tobytes())
    return digest.hexdigest()


class MemoCache:
    """Thread-safe LRU cache with a byte ceiling and time-to-live."""

    def __init__(self, max_size: int, max_age: float,
                 clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self.max_age = max_age
        self._clock = clock
        self._entries: "OrderedDict[str, _Slot]" = OrderedDict()
        self._size = 0
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def size(self) -> int:
        """Bytes currently held."""
        with self._lock:
            return self._size

    def usage_percent(self) -> float:
        if self.max_size <= 0:
            return 0.0
        return round(self.size() / self.max_size * 100, 2)

    def _expired(self, slot: _Slot) -> bool:
        return self._clock() - slot.stored_at > self.max_age

    def _drop(self, key: str) -> None:
        slot = self._entries.pop(key)
        self._size -= slot.size

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            slot = self._entries.get(key)
            if slot is None:
                return None
            if self._expired(slot):
                self._drop(key)
                return None
            self._entries.move_to_end(key)
            return slot.value

    def set(self, key: str, value: Any, size: int) -> None:
        """Store a value, evicting expired then least recently used entries."""
        if size > self.max_size:
            logger.warning("Value larger than memo cache, not stored",
                           size=size, max_size=self.max_size)
            return

        with self._lock:
            if key in self._entries:
                self._drop(key)

            for stale in [k for k, slot in self._entries.items() if self._expired(slot)]:
                self._drop(stale)

            while self._entries and self._size + size > self.max_size:
                evicted, slot = self._entries.popitem(last=False)
                self._size -= slot.size
                logger.debug("Memo cache eviction", key=evicted[:12], size=slot.size)

            self._entries[key] = _Slot(value, size, self._clock())
            self._size += size

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0
        logger.info("Spiral cache cleared")

    def stats(self) -> Dict[str, float]:
        return {
            "entries": len(self),
            "size": self.size(),
            "max_size": self.max_size,
            "usage_percent": self.usage_percent(),
        }


class MemoizedTessellator:
    """Wraps a tessellation function with a MemoCache lookup."""

    def __init__(self, cache: MemoCache,
                 tessellate: Callable[[np.ndarray], TessellationResult] = compute_voronoi):
        self.cache = cache
        self._tessellate = tessellate
        self.hits = 0
        self.misses = 0

    def __call__(self, points: np.ndarray) -> TessellationResult:
        key = points_key(points)
        cached = self.cache.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        self.misses += 1
        result = self._tessellate(points)
        self.cache.set(key, result, result.nbytes)
        return result
