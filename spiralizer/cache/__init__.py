"""
Cache tiers for spiral computations.

This package provides:
- Canonical cache keys for parameter sets
- A memoized tessellation cache keyed by point content
- A session cache keyed by parameters
- Read-only precomputed stores (pickle or SQLite) and their builder
- SpiralEngine, which consults the tiers in order
"""

from .keys import SpiralParams, make_cache_key
from .entry import CacheEntry
from .memo import MemoCache, MemoizedTessellator, points_key
from .session import SessionCache
from .store import PickleStore, PrecomputedStore, SQLiteStore, open_precomputed_store
from .manager import ComputeResult, SpiralEngine

__all__ = [
    'SpiralParams', 'make_cache_key', 'CacheEntry',
    'MemoCache', 'MemoizedTessellator', 'points_key',
    'SessionCache',
    'PickleStore', 'PrecomputedStore', 'SQLiteStore', 'open_precomputed_store',
    'ComputeResult', 'SpiralEngine',
]
