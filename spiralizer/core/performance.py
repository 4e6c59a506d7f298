"""
Performance estimation and host capability detection.

This module implements:
- An affine computation-time estimate for user-facing hints
- Host classification into high/medium/low operating profiles
- Timing helpers and memory monitoring
"""

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, Optional, Sequence

import psutil
import structlog

logger = structlog.get_logger()

FALLBACK_MEMORY_GB = 8.0


class PerformanceMode(str, Enum):
    """Operating profiles, ordered from most to least capable."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PerformanceProfile:
    """Operating limits selected from host capability."""
    mode: PerformanceMode
    max_points: int
    debounce_ms: int
    cache_size_mb: int

    @property
    def enable_animations(self) -> bool:
        return self.mode != PerformanceMode.LOW


@dataclass(frozen=True)
class HostFacts:
    """Capability facts about the current machine."""
    cores: int
    memory_gb: float


def estimate_computation_time(num_points: int, base_time_ms: float = 50.0,
                              per_point_ms: float = 0.3) -> float:
    """Estimated computation time in milliseconds."""
    return base_time_ms + num_points * per_point_ms


def detect_host() -> HostFacts:
    """Read core count and total memory, assuming 8 GB when memory is unknown."""
    cores = os.cpu_count() or 1
    try:
        memory_gb = psutil.virtual_memory().total / 1024 ** 3
    except (OSError, RuntimeError) as e:
        logger.warning("Memory detection failed, assuming default", error=str(e),
                       memory_gb=FALLBACK_MEMORY_GB)
        memory_gb = FALLBACK_MEMORY_GB

    if memory_gb <= 0:
        memory_gb = FALLBACK_MEMORY_GB

    return HostFacts(cores=cores, memory_gb=memory_gb)


def check_performance_mode(host: HostFacts, high_memory_gb: float = 16,
                           high_cores: int = 8, medium_memory_gb: float = 8,
                           medium_cores: int = 4) -> PerformanceMode:
    """Classify a host into a performance mode."""
    if host.memory_gb >= high_memory_gb and host.cores >= high_cores:
        return PerformanceMode.HIGH
    if host.memory_gb >= medium_memory_gb and host.cores >= medium_cores:
        return PerformanceMode.MEDIUM
    return PerformanceMode.LOW


def select_profile(settings, host: Optional[HostFacts] = None) -> PerformanceProfile:
    """
    Select the operating profile for this process.

    Args:
        settings: Application settings providing thresholds and mode limits
        host: Host facts; detected when omitted

    Returns:
        PerformanceProfile for the detected mode
    """
    host = host or detect_host()
    perf = settings.performance
    mode = check_performance_mode(
        host,
        high_memory_gb=perf.high_memory_gb,
        high_cores=perf.high_cores,
        medium_memory_gb=perf.medium_memory_gb,
        medium_cores=perf.medium_cores,
    )
    limits = perf.modes[mode.value]
    profile = PerformanceProfile(
        mode=mode,
        max_points=limits.max_points,
        debounce_ms=limits.debounce_ms,
        cache_size_mb=limits.cache_size_mb,
    )

    logger.info("Performance profile selected", mode=mode.value,
                cores=host.cores, memory_gb=round(host.memory_gb, 1),
                max_points=profile.max_points, cache_size_mb=profile.cache_size_mb)
    return profile


class Timer:
    """Elapsed wall time captured by ``time_it``."""

    def __init__(self):
        self.elapsed_ms = 0.0


@contextmanager
def time_it(label: str = "Operation") -> Iterator[Timer]:
    """Time the enclosed block in milliseconds."""
    timer = Timer()
    start = time.perf_counter()
    try:
        yield timer
    finally:
        timer.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"{label} took {timer.elapsed_ms:.2f} ms")


def create_performance_report(timings: Sequence[float]) -> Dict:
    """Summarise spiral, tessellation and render timings."""
    stages = ("spiral_generation", "voronoi_computation", "plot_rendering")
    breakdown = {stage: (timings[i] if i < len(timings) else None)
                 for i, stage in enumerate(stages)}
    return {
        "total_ms": float(sum(timings)),
        "breakdown": breakdown,
        "timestamp": datetime.now().isoformat(),
    }


def monitor_memory() -> Dict[str, float]:
    """Process and system memory usage in MB."""
    process = psutil.Process()
    rss = process.memory_info().rss / 1024 / 1024
    available = psutil.virtual_memory().available / 1024 / 1024
    return {"used_mb": rss, "available_mb": available}
