"""Session-scoped cache of computed spirals keyed by parameter key."""

from collections import OrderedDict
from threading import RLock
from typing import Dict, List, Optional

import structlog

from .entry import CacheEntry

logger = structlog.get_logger()


class SessionCache:
    """
    Exact-key mapping from cache key to CacheEntry.

    The cache layer is the only writer; render and export paths read
    concurrently. Entries are immutable once stored and are evicted least
    recently used when either the entry limit or the byte limit is hit.
    """

    def __init__(self, max_entries: int = 256, max_bytes: Optional[int] = None):
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._bytes = 0
        self._lock = RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    @property
    def nbytes(self) -> int:
        with self._lock:
            return self._bytes

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            if key in self._entries:
                # Entries are immutable; keep the first stored result
                self._entries.move_to_end(key)
                return

            self._entries[key] = entry
            self._bytes += entry.nbytes
            self._evict()

    def _evict(self) -> None:
        while len(self._entries) > 1 and (
            len(self._entries) > self.max_entries
            or (self.max_bytes is not None and self._bytes > self.max_bytes)
        ):
            key, entry = self._entries.popitem(last=False)
            self._bytes -= entry.nbytes
            logger.debug("Session cache eviction", key=key)

    def update(self, entries: Dict[str, CacheEntry]) -> None:
        for key, entry in entries.items():
            self.put(key, entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bytes = 0
