"""
Spiral engine: tiered cache lookup in front of the spiral pipeline.

Tiers are consulted in a fixed order on every request:
1. Session cache (exact key, in memory)
2. Read-only precomputed store (hits are promoted into the session cache)
3. Live computation: spiral -> optional truncation -> memoized tessellation

Concurrent requests for the same key share one in-flight computation.
Requests tagged with a UI slot are marked stale when a newer request for
that slot arrives first.
"""

import asyncio
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from ..core.colors import get_color_palette
from ..core.errors import CacheIOError, GeometryError, InvalidArgument, SpiralizerError, ValidationError
from ..core.geometry import compute_voronoi
from ..core.limits import calculate_plot_limits
from ..core.performance import PerformanceProfile, estimate_computation_time
from ..core.spiral import generate_fermat_spiral
from ..core.truncation import truncate_spiral_points
from ..core.validation import ValidationResult, validate_spiral_params
from .entry import CacheEntry
from .keys import SpiralParams
from .memo import MemoCache, MemoizedTessellator
from .session import SessionCache
from .store import PrecomputedStore, open_precomputed_store

logger = structlog.get_logger()

MB = 1024 ** 2

SOURCE_SESSION = "session"
SOURCE_PRECOMPUTED = "precomputed"
SOURCE_COMPUTED = "computed"


@dataclass
class ComputeResult:
    """Outcome of a compute request: an entry or an error, never both."""
    params: SpiralParams
    entry: Optional[CacheEntry] = None
    error: Optional[SpiralizerError] = None
    source: Optional[str] = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @property
    def message(self) -> str:
        return str(self.error) if self.error else ""


class SpiralEngine:
    """Owns the cache tiers for one session and runs computations."""

    def __init__(self, settings, profile: Optional[PerformanceProfile] = None,
                 store: Optional[PrecomputedStore] = None,
                 memo: Optional[MemoCache] = None,
                 tessellate=compute_voronoi):
        self.settings = settings
        self.profile = profile
        self.limits = settings.spiral_limits(profile)

        self.memo = memo if memo is not None else MemoCache(
            max_size=settings.cache.max_size_mb * MB,
            max_age=settings.cache.max_age_seconds,
        )
        self._tessellate = MemoizedTessellator(self.memo, tessellate)
        self.session = SessionCache(
            max_entries=settings.cache.session_max_entries,
            max_bytes=profile.cache_size_mb * MB if profile else None,
        )
        self.store = store
        self._store_lock = Lock()

        self._executor = ThreadPoolExecutor(max_workers=settings.compute.max_workers,
                                            thread_name_prefix="tessellate")
        self._inflight: Dict[str, Future] = {}
        self._inflight_lock = Lock()
        self._slot_generations: Dict[str, int] = {}
        self._slot_lock = Lock()
        self._counter_lock = Lock()
        self.counters = {"session_hits": 0, "precomputed_hits": 0,
                         "computed": 0, "errors": 0}
        self._closed = False

    @classmethod
    def from_settings(cls, settings, profile: Optional[PerformanceProfile] = None,
                      **kwargs) -> "SpiralEngine":
        """Create an engine, attaching the precomputed store if one is configured."""
        store = None
        path = settings.cache.precomputed_path
        if path:
            try:
                store = open_precomputed_store(Path(path))
            except CacheIOError as e:
                logger.warning("Precomputed cache unavailable, using memory only",
                               path=path, error=str(e))
            else:
                if store is None:
                    logger.info("No precomputed cache found", path=path)
        return cls(settings, profile=profile, store=store, **kwargs)

    # Public API

    def validate(self, angle_start, angle_end, num_points) -> ValidationResult:
        return validate_spiral_params(angle_start, angle_end, num_points, self.limits)

    def make_params(self, angle_start: float, angle_end: float, num_points: int,
                    truncate: bool = False,
                    truncate_factor: Optional[float] = None) -> SpiralParams:
        if truncate and truncate_factor is None:
            truncate_factor = self.settings.truncation.factor_default
        return SpiralParams(angle_start, angle_end, num_points, truncate, truncate_factor)

    def compute(self, params: SpiralParams, slot: Optional[str] = None) -> ComputeResult:
        """
        Return the cached or freshly computed result for ``params``.

        Validation and geometry failures come back as ``ComputeResult.error``;
        nothing is cached for a failed computation.
        """
        token = self._begin(slot)

        validation = self.validate(params.angle_start, params.angle_end, params.num_points)
        if not validation.valid:
            return ComputeResult(params, error=ValidationError(validation.message))
        if params.truncate and not params.truncate_factor > 0:
            return ComputeResult(params, error=ValidationError("Truncation factor must be positive"))

        key = params.cache_key
        entry = self.session.get(key)
        if entry is not None:
            self._count("session_hits")
            logger.debug("Cache hit", tier=SOURCE_SESSION, key=key)
            return ComputeResult(params, entry=entry, source=SOURCE_SESSION,
                                 stale=self._is_stale(slot, token))

        entry = self._lookup_store(key)
        if entry is not None:
            self.session.put(key, entry)
            self._count("precomputed_hits")
            logger.debug("Cache hit", tier=SOURCE_PRECOMPUTED, key=key)
            return ComputeResult(params, entry=entry, source=SOURCE_PRECOMPUTED,
                                 stale=self._is_stale(slot, token))

        if self._is_stale(slot, token):
            logger.debug("Request superseded before computation", key=key, slot=slot)
            return ComputeResult(params, stale=True)

        if self._closed:
            return ComputeResult(params, error=GeometryError("Engine is closed"))

        try:
            entry, source = self._compute_once(key, params)
        except InvalidArgument as e:
            return ComputeResult(params, error=ValidationError(str(e)),
                                 stale=self._is_stale(slot, token))
        except GeometryError as e:
            self._count("errors")
            logger.warning("Computation failed", key=key, error=str(e))
            return ComputeResult(params, error=e, stale=self._is_stale(slot, token))

        return ComputeResult(params, entry=entry, source=source,
                             stale=self._is_stale(slot, token))

    async def compute_async(self, params: SpiralParams,
                            slot: Optional[str] = None) -> ComputeResult:
        """Run ``compute`` in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(self.compute, params, slot)

    def plot_limits(self, entry: CacheEntry) -> Tuple[float, float]:
        return calculate_plot_limits(entry.tessellation,
                                     padding=self.settings.plot.limit_padding,
                                     default=tuple(self.settings.plot.default_limits))

    def colors(self, palette_name: Optional[str], n_colors: int, invert: bool = False,
               custom_start: Optional[str] = None,
               custom_end: Optional[str] = None) -> List[str]:
        return get_color_palette(palette_name or self.settings.palette.default,
                                 n_colors, invert, custom_start, custom_end)

    def estimate_time(self, num_points: int) -> float:
        perf = self.settings.performance
        return estimate_computation_time(num_points, perf.base_time_ms, perf.per_point_ms)

    def warm_cache(self, patterns=None) -> int:
        """
        Pre-compute common patterns so the first render is instant.

        Returns:
            Number of patterns warmed successfully
        """
        patterns = self.settings.cache.warm_patterns if patterns is None else patterns
        logger.info("Warming cache with common patterns", patterns=len(patterns))

        warmed = 0
        for pattern in patterns:
            params = self.make_params(pattern.angle_start, pattern.angle_end, pattern.num_points)
            try:
                result = self.compute(params)
            except Exception as e:
                logger.warning("Failed to warm cache for pattern",
                               key=params.cache_key, error=str(e))
                continue
            if result.ok:
                warmed += 1
            else:
                logger.warning("Failed to warm cache for pattern",
                               key=params.cache_key, error=result.message)

        logger.info("Cache warming complete", warmed=warmed)
        return warmed

    def stats(self) -> Dict:
        with self._counter_lock:
            counters = dict(self.counters)
        store = self.store
        return {
            "session_entries": len(self.session),
            "session_bytes": self.session.nbytes,
            "memo": self.memo.stats(),
            "precomputed": store.kind if store else None,
            **counters,
        }

    def clear(self) -> None:
        """Drop session and memoized entries; the precomputed store is untouched."""
        self.session.clear()
        self.memo.reset()

    def close(self) -> None:
        """Release the store connection and worker threads."""
        if self._closed:
            return
        self._closed = True
        with self._store_lock:
            store, self.store = self.store, None
        if store is not None:
            store.close()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Internals

    def _count(self, name: str) -> None:
        with self._counter_lock:
            self.counters[name] += 1

    def _begin(self, slot: Optional[str]) -> Optional[int]:
        if slot is None:
            return None
        with self._slot_lock:
            generation = self._slot_generations.get(slot, 0) + 1
            self._slot_generations[slot] = generation
            return generation

    def _is_stale(self, slot: Optional[str], token: Optional[int]) -> bool:
        if slot is None:
            return False
        with self._slot_lock:
            return self._slot_generations.get(slot) != token

    def _lookup_store(self, key: str) -> Optional[CacheEntry]:
        store = self.store
        if store is None:
            return None
        try:
            return store.get(key)
        except CacheIOError as e:
            self._detach_store(store, e)
            return None

    def _detach_store(self, store: PrecomputedStore, error: Exception) -> None:
        """Drop a failed store; only the first caller to see it fail closes it."""
        with self._store_lock:
            if self.store is not store:
                return
            self.store = None
        logger.warning("Precomputed cache failed, continuing with memory only",
                       store=store.kind, error=str(error))
        store.close()

    def _compute_once(self, key: str, params: SpiralParams) -> Tuple[CacheEntry, str]:
        """Compute ``key`` at most once across concurrent callers."""
        with self._inflight_lock:
            entry = self.session.get(key)
            if entry is not None:
                return entry, SOURCE_SESSION
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.debug("Waiting for in-flight computation", key=key)
            try:
                return future.result(timeout=self.settings.compute.timeout_seconds), SOURCE_COMPUTED
            except FutureTimeoutError as e:
                raise GeometryError(f"Timed out waiting for {key}") from e

        try:
            entry = self._run_pipeline(params)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            self.session.put(key, entry)
            future.set_result(entry)
            self._count("computed")
            logger.info("Cache miss computed", key=key, points=len(entry.points),
                        bounded=entry.bounded_count, elapsed_ms=round(entry.elapsed_ms, 1))
            return entry, SOURCE_COMPUTED
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _run_pipeline(self, params: SpiralParams) -> CacheEntry:
        start = time.perf_counter()

        points = generate_fermat_spiral(params.angle_start, params.angle_end, params.num_points)
        if params.truncate:
            points = truncate_spiral_points(points, params.truncate_factor,
                                            min_points=self.limits.min_points)

        tessellation = self._tessellate_with_timeout(points)
        elapsed_ms = (time.perf_counter() - start) * 1000

        return CacheEntry(points=points, tessellation=tessellation,
                          bounded_count=tessellation.bounded_count, elapsed_ms=elapsed_ms)

    def _tessellate_with_timeout(self, points: np.ndarray):
        timeout = self.settings.compute.timeout_seconds
        try:
            future = self._executor.submit(self._tessellate, points)
        except RuntimeError as e:
            # Executor already shut down by close()
            raise GeometryError(f"Engine is closed: {e}") from e
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise GeometryError(f"Tessellation timed out after {timeout:g}s") from e
