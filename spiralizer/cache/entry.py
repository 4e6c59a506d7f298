"""Cached computation results."""

import pickle
from dataclasses import dataclass

import numpy as np

from ..core.errors import CacheIOError
from ..core.geometry import TessellationResult


@dataclass(frozen=True)
class CacheEntry:
    """Immutable result of one spiral computation."""
    points: np.ndarray
    tessellation: TessellationResult
    bounded_count: int
    elapsed_ms: float = 0.0

    @property
    def nbytes(self) -> int:
        return self.points.nbytes + self.tessellation.nbytes

    def to_blob(self) -> bytes:
        return pickle.dumps(self, protocol=pickle.HIGHEST_PROTOCOL)

    @classmethod
    def from_blob(cls, blob: bytes) -> "CacheEntry":
        try:
            entry = pickle.loads(blob)
        except Exception as e:
            # Unpickling corrupt data can raise almost any exception type
            raise CacheIOError(f"Corrupt cache entry: {e}") from e
        if not isinstance(entry, cls):
            raise CacheIOError(f"Expected CacheEntry, got {type(entry).__name__}")
        return entry
