"""Tests for SpiralEngine tier orchestration."""

import asyncio
import threading
import time
from unittest.mock import patch

import numpy as np
import pytest

from spiralizer.cache.keys import SpiralParams
from spiralizer.cache.manager import SOURCE_COMPUTED, SOURCE_PRECOMPUTED, SOURCE_SESSION, SpiralEngine
from spiralizer.cache.store import PickleStore, PrecomputedStore, SQLiteStore, write_pickle_store, write_sqlite_store
from spiralizer.config.config import CacheSettings, ComputeSettings, Settings, WarmPattern
from spiralizer.core.errors import CacheIOError, GeometryError, InvalidArgument, ValidationError
from spiralizer.core.geometry import compute_voronoi
from spiralizer.core.performance import PerformanceMode, PerformanceProfile


class CountingTessellator:
    """compute_voronoi with a call counter and optional delay."""

    def __init__(self, delay=0.0):
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, points):
        with self._lock:
            self.calls += 1
        time.sleep(self.delay)
        return compute_voronoi(points)


class BrokenStore(PrecomputedStore):
    kind = "broken"

    def __init__(self):
        super().__init__("broken")
        self.closed = False

    def get(self, key):
        raise CacheIOError("disk went away")

    def __len__(self):
        return 0

    def close(self):
        self.closed = True


class SlowBrokenStore(BrokenStore):
    """Fails after a delay so several requests are inside ``get`` at once."""

    def __init__(self):
        super().__init__()
        self.close_calls = 0

    def get(self, key):
        time.sleep(0.2)
        raise CacheIOError("disk went away")

    def close(self):
        self.close_calls += 1
        super().close()


class UnreadableEntry:
    bounded_count = 0

    def to_blob(self):
        return b"\x80\x09garbage"


class TestCompute:
    """Test the lookup order and result handling."""

    def test_miss_then_session_hit(self, settings):
        with SpiralEngine(settings) as engine:
            params = SpiralParams(0, 100, 300)
            first = engine.compute(params)
            second = engine.compute(params)

        assert first.ok and first.source == SOURCE_COMPUTED
        assert second.source == SOURCE_SESSION
        assert second.entry is first.entry

    def test_entry_contents(self, settings):
        with SpiralEngine(settings) as engine:
            result = engine.compute(SpiralParams(0, 100, 300))

        assert len(result.entry.points) == 300
        assert 0 < result.entry.bounded_count < 300
        assert result.entry.bounded_count == result.entry.tessellation.bounded_count
        assert result.entry.elapsed_ms > 0

    def test_validation_failure_not_cached(self, settings):
        tessellate = CountingTessellator()
        with SpiralEngine(settings, tessellate=tessellate) as engine:
            result = engine.compute(SpiralParams(10, 5, 300))

            assert not result.ok
            assert isinstance(result.error, ValidationError)
            assert result.message == "Start angle must be less than end angle"
            assert len(engine.session) == 0
        assert tessellate.calls == 0

    def test_profile_caps_points(self, settings):
        low = PerformanceProfile(PerformanceMode.LOW, max_points=1000, debounce_ms=500, cache_size_mb=50)
        with SpiralEngine(settings, profile=low) as engine:
            result = engine.compute(SpiralParams(0, 100, 1001))

        assert result.message == "Too many points! Maximum is 1000 for performance"

    def test_geometry_failure_reported(self, settings):
        def failing(points):
            raise GeometryError("degenerate")

        with SpiralEngine(settings, tessellate=failing) as engine:
            result = engine.compute(SpiralParams(0, 100, 300))

            assert isinstance(result.error, GeometryError)
            assert len(engine.session) == 0
            assert engine.stats()["errors"] == 1

    def test_tessellation_timeout(self):
        settings = Settings(cache=CacheSettings(warm_on_startup=False),
                            compute=ComputeSettings(timeout_seconds=0.05, max_workers=1))
        with SpiralEngine(settings, tessellate=CountingTessellator(delay=0.5)) as engine:
            result = engine.compute(SpiralParams(0, 100, 300))

        assert isinstance(result.error, GeometryError)
        assert "timed out" in result.message

    def test_truncation_uses_default_factor(self, settings):
        with SpiralEngine(settings) as engine:
            params = engine.make_params(0, 100, 300, truncate=True)
            result = engine.compute(params)

        assert params.cache_key == "0_100_300_trunc_2"
        assert len(result.entry.points) <= 300

    def test_memo_shared_across_truncation(self, settings):
        """A truncation that keeps every point reuses the untruncated tessellation."""
        tessellate = CountingTessellator()
        with SpiralEngine(settings, tessellate=tessellate) as engine:
            plain = engine.compute(SpiralParams(0, 100, 300))
            wide = engine.compute(engine.make_params(0, 100, 300, truncate=True, truncate_factor=100.0))

        assert plain.entry is not wide.entry
        assert plain.entry.tessellation is wide.entry.tessellation
        assert tessellate.calls == 1

    def test_compute_async(self, settings):
        with SpiralEngine(settings) as engine:
            result = asyncio.run(engine.compute_async(SpiralParams(0, 50, 200)))
        assert result.ok

    def test_generator_rejection_reported(self, settings):
        rejection = InvalidArgument("Angles must be non-negative, got -5")
        with patch("spiralizer.cache.manager.generate_fermat_spiral", side_effect=rejection):
            with SpiralEngine(settings) as engine:
                result = engine.compute(SpiralParams(0, 100, 300))

                assert isinstance(result.error, ValidationError)
                assert result.message == "Angles must be non-negative, got -5"
                assert len(engine.session) == 0

    def test_compute_after_close(self, settings):
        engine = SpiralEngine(settings)
        engine.compute(SpiralParams(0, 100, 300))
        engine.close()

        cached = engine.compute(SpiralParams(0, 100, 300))
        miss = engine.compute(SpiralParams(0, 50, 200))

        assert cached.ok
        assert isinstance(miss.error, GeometryError)
        assert "closed" in miss.message

    def test_executor_shut_down_mid_request(self, settings):
        with SpiralEngine(settings) as engine:
            engine._executor.shutdown(wait=True)
            result = engine.compute(SpiralParams(0, 100, 300))

        assert isinstance(result.error, GeometryError)


class TestConcurrency:
    def test_single_computation_for_concurrent_requests(self, settings):
        tessellate = CountingTessellator(delay=0.2)
        params = SpiralParams(0, 100, 300)
        results = []

        with SpiralEngine(settings, tessellate=tessellate) as engine:
            barrier = threading.Barrier(8)

            def worker():
                barrier.wait()
                results.append(engine.compute(params))

            threads = [threading.Thread(target=worker) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert tessellate.calls == 1
        assert len(results) == 8
        assert all(r.ok for r in results)
        assert all(r.entry is results[0].entry for r in results)

    def test_superseded_request_is_stale(self, settings):
        started, gate = threading.Event(), threading.Event()

        def tessellate(points):
            if len(points) == 300:
                started.set()
                gate.wait(5)
            return compute_voronoi(points)

        older = {}
        with SpiralEngine(settings, tessellate=tessellate) as engine:
            t = threading.Thread(target=lambda: older.update(
                result=engine.compute(SpiralParams(0, 100, 300), slot="view")))
            t.start()
            assert started.wait(5)

            newer = engine.compute(SpiralParams(0, 100, 200), slot="view")
            gate.set()
            t.join()

            assert not newer.stale
            assert older["result"].stale
            # The superseded result is still cached for later requests
            assert "0_100_300" in engine.session

    def test_other_slots_unaffected(self, settings):
        with SpiralEngine(settings) as engine:
            engine.compute(SpiralParams(0, 100, 200), slot="thumbnail")
            result = engine.compute(SpiralParams(0, 100, 300), slot="view")
        assert not result.stale


class TestTiers:
    def test_precomputed_hit_promoted(self, settings, tmp_path, default_entry):
        path = write_pickle_store({"0_100_300": default_entry}, tmp_path / "spiral_cache.pkl")
        tessellate = CountingTessellator()

        with SpiralEngine(settings, store=PickleStore(path), tessellate=tessellate) as engine:
            first = engine.compute(SpiralParams(0, 100, 300))
            second = engine.compute(SpiralParams(0, 100, 300))

        assert first.source == SOURCE_PRECOMPUTED
        assert second.source == SOURCE_SESSION
        np.testing.assert_array_equal(first.entry.points, default_entry.points)
        assert tessellate.calls == 0

    def test_broken_store_degrades_to_memory(self, settings):
        store = BrokenStore()
        with SpiralEngine(settings, store=store) as engine:
            result = engine.compute(SpiralParams(0, 100, 300))

            assert result.ok and result.source == SOURCE_COMPUTED
            assert engine.store is None
        assert store.closed

    def test_from_settings_with_corrupt_store(self, tmp_path):
        (tmp_path / "spiral_cache.pkl").write_bytes(b"corrupt")
        settings = Settings(cache=CacheSettings(precomputed_path=str(tmp_path), warm_on_startup=False))

        with SpiralEngine.from_settings(settings) as engine:
            assert engine.store is None
            assert engine.compute(SpiralParams(0, 20, 50)).ok

    def test_from_settings_with_unsupported_pickle_protocol(self, tmp_path):
        (tmp_path / "spiral_cache.pkl").write_bytes(b"\x80\x09garbage")
        settings = Settings(cache=CacheSettings(precomputed_path=str(tmp_path), warm_on_startup=False))

        with SpiralEngine.from_settings(settings) as engine:
            assert engine.store is None
            assert engine.compute(SpiralParams(0, 20, 50)).ok

    def test_corrupt_sqlite_row_degrades_to_memory(self, settings, tmp_path):
        path = tmp_path / "spiral_cache.sqlite"
        write_sqlite_store([(SpiralParams(0, 100, 300), UnreadableEntry())], path)

        with SpiralEngine(settings, store=SQLiteStore(path)) as engine:
            result = engine.compute(SpiralParams(0, 100, 300))

            assert result.ok and result.source == SOURCE_COMPUTED
            assert engine.store is None

    def test_concurrent_requests_on_failing_store(self, settings):
        store = SlowBrokenStore()
        results = []

        with SpiralEngine(settings, store=store) as engine:
            barrier = threading.Barrier(4)

            def worker(n):
                barrier.wait()
                results.append(engine.compute(SpiralParams(0, 100, n)))

            threads = [threading.Thread(target=worker, args=(n,)) for n in (100, 150, 200, 250)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert engine.store is None

        assert len(results) == 4
        assert all(r.ok for r in results)
        assert store.close_calls == 1

    def test_from_settings_finds_store(self, tmp_path, default_entry):
        write_pickle_store({"0_100_300": default_entry}, tmp_path / "spiral_cache.pkl.xz")
        settings = Settings(cache=CacheSettings(precomputed_path=str(tmp_path), warm_on_startup=False))

        with SpiralEngine.from_settings(settings) as engine:
            assert engine.store.kind == "pickle"
            assert engine.compute(SpiralParams(0, 100, 300)).source == SOURCE_PRECOMPUTED

    def test_clear(self, settings):
        with SpiralEngine(settings) as engine:
            engine.compute(SpiralParams(0, 100, 300))
            engine.clear()

            assert len(engine.session) == 0
            assert len(engine.memo) == 0
            assert engine.compute(SpiralParams(0, 100, 300)).source == SOURCE_COMPUTED


class TestWarmCache:
    def test_warm_skips_failures(self, settings):
        class Flaky(CountingTessellator):
            def __call__(self, points):
                if len(points) == 77:
                    raise RuntimeError("boom")
                return super().__call__(points)

        patterns = [
            WarmPattern(angle_start=0, angle_end=100, num_points=300),
            WarmPattern(angle_start=10, angle_end=5, num_points=300),
            WarmPattern(angle_start=0, angle_end=50, num_points=77),
            WarmPattern(angle_start=0, angle_end=50, num_points=200),
        ]
        with SpiralEngine(settings, tessellate=Flaky()) as engine:
            warmed = engine.warm_cache(patterns)

            assert warmed == 2
            assert set(engine.session.keys()) == {"0_100_300", "0_50_200"}

    def test_warm_default_patterns(self, settings):
        with SpiralEngine(settings) as engine:
            assert engine.warm_cache() == len(settings.cache.warm_patterns)


class TestHelpers:
    def test_plot_limits_and_colors(self, settings):
        with SpiralEngine(settings) as engine:
            entry = engine.compute(SpiralParams(0, 100, 300)).entry
            low, high = engine.plot_limits(entry)
            colors = engine.colors(None, entry.bounded_count)

        assert low == -high
        assert np.isfinite(high)
        assert len(colors) == entry.bounded_count

    def test_estimate_time(self, settings):
        with SpiralEngine(settings) as engine:
            assert engine.estimate_time(1000) == pytest.approx(350.0)
