"""
Rendering and export of spiral tessellations.

The live view and both exports draw the same CacheEntry through
``render_figure`` so on-screen and exported artwork match. Figures are
built with the object-oriented matplotlib API (no pyplot state), which
keeps rendering safe to call from worker threads.
"""

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Tuple, Union

import structlog
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.collections import LineCollection, PolyCollection
from matplotlib.colors import to_rgba_array
from matplotlib.figure import Figure

from .cache.entry import CacheEntry
from .cache.keys import SpiralParams, format_number
from .core.colors import ZEN_BLACK, ZEN_GRAY_MID
from .core.errors import InvalidArgument

logger = structlog.get_logger()

Target = Union[str, Path, BinaryIO]


def draw_voronoi(ax, entry: CacheEntry, colors: Sequence[str], limits: Tuple[float, float],
                 alpha: float = 0.8, border: str = ZEN_GRAY_MID, line_width: float = 0.5) -> None:
    """
    Draw bounded cells filled with ``colors`` and the finite edges of
    unbounded cells as plain borders.
    """
    bounded = entry.tessellation.bounded_cells
    if len(colors) != len(bounded):
        raise InvalidArgument(
            f"Palette has {len(colors)} colors but there are {len(bounded)} bounded cells"
        )

    if bounded:
        ax.add_collection(PolyCollection(
            [cell.polygon() for cell in bounded],
            facecolors=to_rgba_array(list(colors), alpha=alpha),
            edgecolors=border,
            linewidths=line_width,
        ))

    open_edges = [edge for cell in entry.tessellation.cells if not cell.bounded
                  for edge in cell.finite_edges()]
    if open_edges:
        ax.add_collection(LineCollection(open_edges, colors=border, linewidths=line_width))

    ax.set_xlim(*limits)
    ax.set_ylim(*limits)
    ax.set_aspect("equal")
    ax.set_axis_off()


def render_figure(entry: CacheEntry, colors: Sequence[str], limits: Tuple[float, float],
                  size_inches: float = 10, dpi: float = 100, alpha: float = 0.8,
                  line_width: float = 0.5) -> Figure:
    """Full-bleed square figure on the zen black background."""
    fig = Figure(figsize=(size_inches, size_inches), dpi=dpi, facecolor=ZEN_BLACK)
    FigureCanvasAgg(fig)
    ax = fig.add_axes((0, 0, 1, 1))
    ax.set_facecolor(ZEN_BLACK)
    draw_voronoi(ax, entry, colors, limits, alpha=alpha, line_width=line_width)
    return fig


def export_png(entry: CacheEntry, target: Target, colors: Sequence[str],
               limits: Tuple[float, float], size_px: int = 3000, dpi: int = 300,
               alpha: float = 0.8, line_width: float = 1.0) -> None:
    """Write a square raster image of ``size_px`` pixels at ``dpi``."""
    fig = render_figure(entry, colors, limits, size_inches=size_px / dpi, dpi=dpi,
                        alpha=alpha, line_width=line_width)
    fig.savefig(target, format="png", dpi=dpi, facecolor=ZEN_BLACK)
    logger.info("Exported PNG", size_px=size_px, dpi=dpi, cells=len(colors))


def export_svg(entry: CacheEntry, target: Target, colors: Sequence[str],
               limits: Tuple[float, float], size_inches: float = 10,
               alpha: float = 0.8, line_width: float = 1.0) -> None:
    """Write a square vector image ``size_inches`` on a side."""
    fig = render_figure(entry, colors, limits, size_inches=size_inches,
                        alpha=alpha, line_width=line_width)
    fig.savefig(target, format="svg", facecolor=ZEN_BLACK)
    logger.info("Exported SVG", size_inches=size_inches, cells=len(colors))


def export_bytes(entry: CacheEntry, fmt: str, colors: Sequence[str],
                 limits: Tuple[float, float], export_settings) -> bytes:
    """Export to memory using the configured sizes."""
    buffer = BytesIO()
    if fmt == "png":
        export_png(entry, buffer, colors, limits,
                   size_px=export_settings.png_size, dpi=export_settings.png_resolution,
                   alpha=export_settings.alpha, line_width=export_settings.line_width)
    elif fmt == "svg":
        export_svg(entry, buffer, colors, limits, size_inches=export_settings.svg_size,
                   alpha=export_settings.alpha, line_width=export_settings.line_width)
    else:
        raise InvalidArgument(f"Unsupported export format {fmt!r}")
    return buffer.getvalue()


def make_filename(params: SpiralParams, extension: str,
                  now: Optional[datetime] = None) -> str:
    """spiral_<start>_<end>_<points>_<YYYYmmdd_HHMMSS>.<ext>"""
    now = now or datetime.now()
    return (f"spiral_{format_number(params.angle_start)}_{format_number(params.angle_end)}_"
            f"{params.num_points}_{now:%Y%m%d_%H%M%S}.{extension}")
