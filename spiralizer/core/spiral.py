"""Fermat spiral point generation."""

import numpy as np
import structlog

from .errors import InvalidArgument

logger = structlog.get_logger()

MIN_SPIRAL_POINTS = 2


def generate_fermat_spiral(angle_start: float = 0.0, angle_end: float = 100.0,
                           num_points: int = 300) -> np.ndarray:
    """
    Generate points along a Fermat spiral.

    Angles are sampled uniformly over the closed interval
    [angle_start, angle_end], so the first point sits at angle_start and
    the last at angle_end. Each angle maps to (sqrt(t) cos t, sqrt(t) sin t).

    Args:
        angle_start: Starting angle in radians (must be >= 0)
        angle_end: Ending angle in radians
        num_points: Number of points to generate

    Returns:
        Array of shape (num_points, 2) with [x, y] coordinates in
        generation order
    """
    if num_points < MIN_SPIRAL_POINTS:
        raise InvalidArgument(f"Need at least {MIN_SPIRAL_POINTS} points, got {num_points}")
    if not angle_end > angle_start:
        raise InvalidArgument("Start angle must be less than end angle")
    if angle_start < 0:
        raise InvalidArgument(f"Angles must be non-negative, got {angle_start}")

    theta = np.linspace(angle_start, angle_end, int(num_points))
    sqrt_theta = np.sqrt(theta)

    return np.column_stack((sqrt_theta * np.cos(theta), sqrt_theta * np.sin(theta)))
