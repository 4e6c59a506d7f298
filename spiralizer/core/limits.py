"""Symmetric plot limits derived from tessellation vertices."""

import math
from typing import Optional, Tuple

import numpy as np

from .geometry import TessellationResult

DEFAULT_PLOT_LIMITS: Tuple[float, float] = (-10.0, 10.0)
DEFAULT_LIMIT_PADDING = 1.1


def extract_voronoi_vertices(result: TessellationResult) -> np.ndarray:
    """
    Collect both endpoints of every edge of every cell.

    Non-finite endpoints of unbounded ridges are dropped.

    Returns:
        Array of shape (m, 2), possibly empty
    """
    if not result.cells:
        return np.empty((0, 2))

    edge_arrays = [cell.edges.reshape(-1, 2) for cell in result.cells if len(cell.edges)]
    if not edge_arrays:
        return np.empty((0, 2))

    vertices = np.vstack(edge_arrays)
    return vertices[np.all(np.isfinite(vertices), axis=1)]


def limits_from_vertices(vertices: np.ndarray, padding: float = DEFAULT_LIMIT_PADDING,
                         default: Tuple[float, float] = DEFAULT_PLOT_LIMITS) -> Tuple[float, float]:
    """Symmetric [-L, L] with L = ceil(max|coordinate| * padding)."""
    vertices = np.asarray(vertices, dtype=float)
    if vertices.size == 0:
        return tuple(default)

    limit = float(math.ceil(np.max(np.abs(vertices)) * padding))
    return (-limit, limit)


def calculate_plot_limits(result: TessellationResult, padding: Optional[float] = None,
                          default: Optional[Tuple[float, float]] = None) -> Tuple[float, float]:
    """
    Calculate symmetric plot limits for a tessellation.

    Ceiling rounding over-pads slightly so cell borders are never clipped
    at the edge of the view.

    Args:
        result: Tessellation to scan
        padding: Multiplicative padding factor (1.1 adds 10%)
        default: Limits returned when the tessellation has no vertices

    Returns:
        (min, max) tuple, always symmetric around zero
    """
    padding = DEFAULT_LIMIT_PADDING if padding is None else padding
    default = DEFAULT_PLOT_LIMITS if default is None else default
    return limits_from_vertices(extract_voronoi_vertices(result), padding, default)
