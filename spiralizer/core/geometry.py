"""
Geometry adapter around scipy's Qhull bindings.

scipy.spatial builds the Delaunay triangulation and the Voronoi diagram;
this module converts the raw output into a cell-centric structure where
every cell owns an ordered list of edges with endpoint coordinates, and
counts the bounded cells once so that renderers and exporters agree on
palette size.
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError, Voronoi

from .errors import GeometryError

logger = structlog.get_logger()

# Qhull needs a full-dimensional initial simplex
MIN_TESSELLATION_POINTS = 3


@dataclass
class Triangulation:
    """Delaunay triangulation of the input points."""
    points: np.ndarray     # [x, y] input coordinates
    simplices: np.ndarray  # triangles as point index triples
    neighbors: np.ndarray  # neighbouring triangle per edge, -1 on the hull

    @property
    def triangle_count(self) -> int:
        return len(self.simplices)


@dataclass
class VoronoiCell:
    """A single Voronoi cell.

    Edges have shape (k, 2, 2): edge i runs from edges[i, 0] to edges[i, 1].
    Unbounded cells keep their infinite ridges with a non-finite far
    endpoint.
    """
    index: int
    site: np.ndarray
    edges: np.ndarray
    bounded: bool

    def polygon(self) -> np.ndarray:
        """Ordered polygon vertices of a bounded cell."""
        if not self.bounded:
            raise GeometryError(f"Cell {self.index} is unbounded and has no closed polygon")
        return self.edges[:, 0, :]

    def finite_edges(self) -> np.ndarray:
        """Edges whose endpoints are both finite."""
        if len(self.edges) == 0:
            return self.edges
        mask = np.all(np.isfinite(self.edges), axis=(1, 2))
        return self.edges[mask]


@dataclass
class TessellationResult:
    """Triangulation plus derived Voronoi cells."""
    triangulation: Triangulation
    cells: List[VoronoiCell]
    vertices: np.ndarray  # Voronoi vertex coordinates
    bounded_count: int = field(default=0)

    @property
    def cell_count(self) -> int:
        return len(self.cells)

    @property
    def bounded_cells(self) -> List[VoronoiCell]:
        return [cell for cell in self.cells if cell.bounded]

    @property
    def nbytes(self) -> int:
        """Approximate in-memory footprint of the arrays."""
        total = (self.triangulation.points.nbytes +
                 self.triangulation.simplices.nbytes +
                 self.triangulation.neighbors.nbytes +
                 self.vertices.nbytes)
        for cell in self.cells:
            total += cell.site.nbytes + cell.edges.nbytes
        return total


def is_bounded_cell(cell: VoronoiCell) -> bool:
    """A cell is bounded when it has edges and every coordinate is finite."""
    return len(cell.edges) > 0 and bool(np.all(np.isfinite(cell.edges)))


def _order_edges(site: np.ndarray, edges: np.ndarray) -> np.ndarray:
    """
    Order the edges of a bounded cell counter-clockwise around its site.

    Each edge is also oriented so that it runs counter-clockwise, which
    turns the edge list into a closed chain.
    """
    midpoints = edges.mean(axis=1) - site
    order = np.argsort(np.arctan2(midpoints[:, 1], midpoints[:, 0]))
    edges = edges[order].copy()

    a = edges[:, 0, :] - site
    b = edges[:, 1, :] - site
    clockwise = (a[:, 0] * b[:, 1] - a[:, 1] * b[:, 0]) < 0
    edges[clockwise] = edges[clockwise][:, ::-1, :]
    return edges


def build_cells(vor: Voronoi) -> List[VoronoiCell]:
    """
    Build per-cell edge lists from the ridges of a scipy Voronoi diagram.

    Every ridge separates two input points, so it is appended to both of
    their cells. A ridge vertex index of -1 marks the point at infinity.

    Args:
        vor: scipy Voronoi diagram

    Returns:
        One VoronoiCell per input point, in input order
    """
    n_points = len(vor.points)
    vertices = np.vstack([vor.vertices, [np.inf, np.inf]])  # index -1 -> infinity
    ridge_vertices = np.asarray(vor.ridge_vertices, dtype=np.intp).reshape(-1, 2)
    ridge_edges = vertices[ridge_vertices]

    cell_edges: List[List[np.ndarray]] = [[] for _ in range(n_points)]
    for ridge_idx, (p1, p2) in enumerate(vor.ridge_points):
        cell_edges[p1].append(ridge_edges[ridge_idx])
        cell_edges[p2].append(ridge_edges[ridge_idx])

    cells = []
    for i in range(n_points):
        edges = np.array(cell_edges[i], dtype=float).reshape(-1, 2, 2)
        cell = VoronoiCell(index=i, site=vor.points[i], edges=edges, bounded=False)
        cell.bounded = is_bounded_cell(cell)
        if cell.bounded:
            cell.edges = _order_edges(cell.site, edges)
        cells.append(cell)

    return cells


def compute_voronoi(points: np.ndarray) -> TessellationResult:
    """
    Triangulate a point set and derive its Voronoi tessellation.

    Args:
        points: Array of shape (n, 2)

    Returns:
        TessellationResult with the bounded cell count precomputed

    Raises:
        GeometryError: when the points are degenerate (too few, collinear,
            non-finite) and Qhull refuses them
    """
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] != 2:
        raise GeometryError(f"Expected an (n, 2) point array, got shape {points.shape}")
    if len(points) < MIN_TESSELLATION_POINTS:
        raise GeometryError(
            f"Need at least {MIN_TESSELLATION_POINTS} points for a tessellation, got {len(points)}"
        )
    if not np.all(np.isfinite(points)):
        raise GeometryError("Point set contains non-finite coordinates")

    try:
        delaunay = Delaunay(points)
        vor = Voronoi(points)
    except (QhullError, ValueError) as e:
        raise GeometryError(f"Tessellation failed: {e}") from e

    cells = build_cells(vor)
    bounded_count = sum(1 for cell in cells if cell.bounded)

    logger.debug("Voronoi diagram calculated",
                 points=len(points), triangles=len(delaunay.simplices),
                 vertices=len(vor.vertices), bounded=bounded_count)

    return TessellationResult(
        triangulation=Triangulation(
            points=points,
            simplices=np.asarray(delaunay.simplices),
            neighbors=np.asarray(delaunay.neighbors),
        ),
        cells=cells,
        vertices=np.asarray(vor.vertices),
        bounded_count=bounded_count,
    )
