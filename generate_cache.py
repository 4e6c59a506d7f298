#!/usr/bin/env python3
"""
Pre-compute spiral tessellations into a precomputed store.

Usage:
    python generate_cache.py --mode minimal --format pickle
    python generate_cache.py --mode standard
    python generate_cache.py --mode exhaustive --step-angle 25 --step-density 100

Point the app at the result with ``cache.precomputed_path`` (or
SPIRALIZER_CACHE__PRECOMPUTED_PATH=data).
"""

import argparse
import sys
from pathlib import Path

import structlog

from spiralizer.cache.builder import FORMATS, MODES, build_cache, estimate_combinations
from spiralizer.config import get_settings
from spiralizer.core.errors import SpiralizerError
from spiralizer.logging_config import configure_logging

logger = structlog.get_logger()


def main():
    """Main function."""
    settings = get_settings()
    sliders = settings.sliders

    parser = argparse.ArgumentParser(description="Pre-compute spiral cache for instant loading")
    parser.add_argument("--mode", choices=MODES, default="standard",
                        help="Cache generation mode")
    parser.add_argument("--step-angle", type=int, help="Angle step size (exhaustive mode)")
    parser.add_argument("--step-density", type=int, help="Density step size (exhaustive mode)")
    parser.add_argument("--format", dest="fmt", choices=FORMATS, default="sqlite",
                        help="Output format")
    parser.add_argument("--no-compress", action="store_true", help="Disable pickle compression")
    parser.add_argument("--no-parallel", action="store_true", help="Disable parallel processing")
    parser.add_argument("--workers", type=int, help="Number of worker processes")
    parser.add_argument("--output-dir", type=Path, default=Path("data"), help="Output directory")
    parser.add_argument("--estimate-only", action="store_true",
                        help="Print the exhaustive grid size and exit")

    args = parser.parse_args()
    configure_logging(settings.log_level, settings.log_format)

    if args.estimate_only:
        estimate = estimate_combinations(args.step_angle or 10, args.step_density or 50,
                                         sliders.angle_max, sliders.density_min,
                                         sliders.density_max)
        logger.info("Estimated combinations", **estimate)
        return 0

    try:
        output_file = build_cache(
            mode=args.mode,
            step_angle=args.step_angle,
            step_density=args.step_density,
            fmt=args.fmt,
            compress=not args.no_compress,
            parallel=not args.no_parallel,
            n_workers=args.workers,
            output_dir=args.output_dir,
            angle_max=sliders.angle_max,
            density_min=sliders.density_min,
            density_max=sliders.density_max,
        )
    except SpiralizerError as e:
        logger.error("Cache generation failed", error=str(e))
        return 1

    logger.info("Cache generation complete", path=str(output_file))
    return 0


if __name__ == "__main__":
    sys.exit(main())
