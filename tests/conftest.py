"""Shared fixtures for spiralizer tests."""

import numpy as np
import pytest

from spiralizer.cache.entry import CacheEntry
from spiralizer.config.config import CacheSettings, ComputeSettings, Settings
from spiralizer.core.geometry import compute_voronoi
from spiralizer.core.performance import PerformanceMode, PerformanceProfile
from spiralizer.core.spiral import generate_fermat_spiral


@pytest.fixture
def settings():
    """Settings with no disk store and no startup warming."""
    return Settings(
        cache=CacheSettings(precomputed_path=None, warm_on_startup=False),
        compute=ComputeSettings(timeout_seconds=10.0, max_workers=2),
    )


@pytest.fixture
def medium_profile():
    return PerformanceProfile(mode=PerformanceMode.MEDIUM, max_points=3000,
                              debounce_ms=300, cache_size_mb=100)


@pytest.fixture
def default_points():
    return generate_fermat_spiral(0, 100, 300)


@pytest.fixture
def default_entry(default_points):
    tessellation = compute_voronoi(default_points)
    return CacheEntry(points=default_points, tessellation=tessellation,
                      bounded_count=tessellation.bounded_count)


@pytest.fixture
def square_points():
    """A 3x3 grid: exactly one bounded cell around the centre."""
    xs, ys = np.meshgrid([0.0, 1.0, 2.0], [0.0, 1.0, 2.0])
    return np.column_stack((xs.ravel(), ys.ravel()))
