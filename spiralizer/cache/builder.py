"""
Offline builder for precomputed spiral stores.

Enumerates a grid of parameter combinations, computes each spiral (in
parallel when possible) and writes the results as a pickle file or an
indexed SQLite table that ships alongside the app.

Modes:
- minimal: default pattern plus end-angle and density sweeps
- standard: start/end/density grid with steps 10/25
- full: finer grid with steps 5/10
- exhaustive: custom steps over the full slider range
"""

import os
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog

from ..core.errors import InvalidArgument, SpiralizerError
from ..core.geometry import compute_voronoi
from ..core.spiral import generate_fermat_spiral
from .entry import CacheEntry
from .keys import SpiralParams
from .store import PICKLE_FILENAMES, SQLITE_FILENAME, write_pickle_store, write_sqlite_store

logger = structlog.get_logger()

MODES = ("minimal", "standard", "full", "exhaustive")
FORMATS = ("sqlite", "pickle")
MAX_EXHAUSTIVE_COMBINATIONS = 100_000

SpiralOutcome = Tuple[SpiralParams, Optional[CacheEntry], Optional[str]]


def _seq(start: int, stop: int, step: int) -> List[int]:
    """Inclusive integer sequence from start to stop."""
    if step <= 0:
        raise InvalidArgument(f"Step must be positive, got {step}")
    return list(range(start, stop + 1, step))


def estimate_combinations(step_angle: int, step_density: int, angle_max: int,
                          density_min: int, density_max: int) -> Dict[str, int]:
    """Rough size of an exhaustive grid; the start < end constraint halves the pairs."""
    n_angles = len(_seq(0, angle_max, step_angle))
    n_density = len(_seq(density_min, density_max, step_density))
    n_pairs = n_angles * (n_angles - 1) // 2
    return {
        "angle_values": n_angles,
        "density_values": n_density,
        "angle_pairs": n_pairs,
        "total": n_pairs * n_density,
    }


def generate_cache_params(mode: str = "standard", step_angle: Optional[int] = None,
                          step_density: Optional[int] = None, angle_max: int = 1000,
                          density_min: int = 3, density_max: int = 2000) -> List[SpiralParams]:
    """
    Parameter combinations for a build mode, de-duplicated by cache key.

    Raises:
        InvalidArgument: unknown mode, or an exhaustive grid above 100 000 entries
    """
    combos: List[Tuple[int, int, int]] = []

    if mode == "minimal":
        step_angle, step_density = 10, 50
        combos.append((0, 100, 300))
        combos += [(0, end, 300) for end in _seq(10, 200, step_angle)]
        combos += [(0, 100, density) for density in _seq(density_min, 500, step_density)]

    elif mode in ("standard", "full"):
        if mode == "standard":
            step_angle, step_density = step_angle or 10, step_density or 25
            start_max, end_max = min(200, angle_max), min(500, angle_max)
        else:
            step_angle, step_density = step_angle or 5, step_density or 10
            start_max, end_max = min(300, angle_max), min(600, angle_max)

        for start in _seq(0, start_max, step_angle):
            for end in _seq(start + step_angle, end_max, step_angle):
                for density in _seq(density_min, min(1000, density_max), step_density):
                    combos.append((start, end, density))

    elif mode == "exhaustive":
        step_angle, step_density = step_angle or 10, step_density or 50
        estimate = estimate_combinations(step_angle, step_density, angle_max,
                                         density_min, density_max)
        logger.info("Exhaustive mode", **estimate)
        if estimate["total"] > MAX_EXHAUSTIVE_COMBINATIONS:
            raise InvalidArgument("Too many combinations! Increase step sizes or reduce range.")

        for start in _seq(0, angle_max - step_angle, step_angle):
            for end in _seq(start + step_angle, angle_max, step_angle):
                for density in _seq(density_min, density_max, step_density):
                    combos.append((start, end, density))

    else:
        raise InvalidArgument(f"Unknown cache mode {mode!r}, expected one of {MODES}")

    unique: Dict[str, SpiralParams] = {}
    for start, end, density in combos:
        params = SpiralParams(start, end, density)
        unique.setdefault(params.cache_key, params)

    logger.info("Generated unique parameter combinations", mode=mode, count=len(unique))
    return list(unique.values())


def compute_single_spiral(params: SpiralParams) -> SpiralOutcome:
    """Worker: compute one spiral, reporting failures instead of raising."""
    try:
        points = generate_fermat_spiral(params.angle_start, params.angle_end, params.num_points)
        tessellation = compute_voronoi(points)
    except SpiralizerError as e:
        return params, None, str(e)

    entry = CacheEntry(points=points, tessellation=tessellation,
                       bounded_count=tessellation.bounded_count, elapsed_ms=0.0)
    return params, entry, None


def compute_all(params_list: List[SpiralParams], parallel: bool = True,
                n_workers: Optional[int] = None) -> List[SpiralOutcome]:
    """Compute every parameter set, using a process pool when parallel."""
    if n_workers is None:
        n_workers = max(1, (os.cpu_count() or 1) - 1)

    logger.info("Pre-computing spiral configurations",
                count=len(params_list), workers=n_workers if parallel else 1)

    if parallel and n_workers > 1:
        chunksize = max(1, len(params_list) // (n_workers * 8))
        with ProcessPoolExecutor(max_workers=n_workers) as pool:
            return list(pool.map(compute_single_spiral, params_list, chunksize=chunksize))

    results = []
    for i, params in enumerate(params_list, start=1):
        results.append(compute_single_spiral(params))
        if i % 100 == 0:
            logger.info("Progress", done=i, total=len(params_list))
    return results


def build_cache(mode: str = "standard", step_angle: Optional[int] = None,
                step_density: Optional[int] = None, fmt: str = "sqlite",
                compress: bool = True, parallel: bool = True,
                n_workers: Optional[int] = None, output_dir: Path = Path("data"),
                angle_max: int = 1000, density_min: int = 3,
                density_max: int = 2000) -> Path:
    """
    Build a precomputed store.

    Returns:
        Path of the written store file
    """
    if fmt not in FORMATS:
        raise InvalidArgument(f"Unknown cache format {fmt!r}, expected one of {FORMATS}")

    params_list = generate_cache_params(mode, step_angle, step_density,
                                        angle_max, density_min, density_max)
    outcomes = compute_all(params_list, parallel, n_workers)

    successes = [(params, entry) for params, entry, _ in outcomes if entry is not None]
    errors = len(outcomes) - len(successes)
    if errors:
        logger.warning("Entries failed to compute", errors=errors)

    output_dir = Path(output_dir)
    if fmt == "sqlite":
        output_file = output_dir / SQLITE_FILENAME
        written = write_sqlite_store(successes, output_file)
    else:
        output_file = output_dir / (PICKLE_FILENAMES[0] if compress else PICKLE_FILENAMES[1])
        write_pickle_store({params.cache_key: entry for params, entry in successes}, output_file)
        written = len(successes)

    logger.info("Cache saved", path=str(output_file), entries=written,
                size_mb=round(output_file.stat().st_size / 1024 ** 2, 2))
    return output_file
