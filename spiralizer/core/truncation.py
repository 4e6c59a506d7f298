"""Radius-based outlier removal for spiral point sets."""

import numpy as np
import structlog

from .errors import InvalidArgument
from .geometry import MIN_TESSELLATION_POINTS

logger = structlog.get_logger()


def truncate_spiral_points(points: np.ndarray, factor: float,
                           min_points: int = MIN_TESSELLATION_POINTS) -> np.ndarray:
    """
    Drop points lying far outside the spiral's main cluster.

    A point is kept when its distance from the origin is at most
    ``factor`` times the median distance. If fewer than ``min_points``
    survive, the ``min_points`` points closest to the origin are kept
    instead so the result can always be tessellated.

    Args:
        points: Array of shape (n, 2) in generation order
        factor: Multiple of the median radius beyond which points are dropped
        min_points: Minimum number of points to return

    Returns:
        Filtered points, still in generation order
    """
    if not factor > 0:
        raise InvalidArgument(f"Truncation factor must be positive, got {factor}")

    points = np.asarray(points, dtype=float)
    if len(points) == 0:
        return points

    radii = np.hypot(points[:, 0], points[:, 1])
    threshold = factor * np.median(radii)
    keep = radii <= threshold

    if np.count_nonzero(keep) >= min_points:
        truncated = points[keep]
    else:
        closest = np.sort(np.argsort(radii, kind="stable")[:min_points])
        truncated = points[closest]
        logger.debug("Truncation hit minimum point floor",
                     factor=factor, min_points=min_points)

    logger.debug("Points truncated", original=len(points), kept=len(truncated),
                 threshold=float(threshold))
    return truncated
