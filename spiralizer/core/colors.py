"""
Color palettes for Voronoi cells.

Named palettes come from matplotlib's perceptually ordered colormaps;
"zen_mono" and "custom" are linear ramps between two colors.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional

import matplotlib
import numpy as np
import structlog
from matplotlib.colors import LinearSegmentedColormap, is_color_like, to_hex

logger = structlog.get_logger()

ZEN_BLACK = "#0a0a0a"
ZEN_ACCENT = "#00ff88"
ZEN_GRAY_MID = "#2a2a2a"

CUSTOM_START_DEFAULT = "#000000"
CUSTOM_END_DEFAULT = "#ffffff"


class Palette(str, Enum):
    """Supported palette names."""

    TURBO = "turbo"
    VIRIDIS = "viridis"
    PLASMA = "plasma"
    INFERNO = "inferno"
    MAGMA = "magma"
    CIVIDIS = "cividis"
    ZEN_MONO = "zen_mono"
    CUSTOM = "custom"


DEFAULT_PALETTE = Palette.TURBO


def _sample(cmap, n: int) -> List[str]:
    return [to_hex(c) for c in cmap(np.linspace(0.0, 1.0, n))]


def _named(name: str) -> Callable[..., List[str]]:
    def generate(n: int, start: Optional[str], end: Optional[str]) -> List[str]:
        return _sample(matplotlib.colormaps[name], n)
    return generate


def _checked_color(color: Optional[str], default: str) -> str:
    if not color:
        return default
    if not is_color_like(color):
        logger.warning("Invalid custom color, using default", color=color, default=default)
        return default
    return color


def _ramp(n: int, start: Optional[str], end: Optional[str]) -> List[str]:
    cmap = LinearSegmentedColormap.from_list(
        "ramp", [_checked_color(start, CUSTOM_START_DEFAULT), _checked_color(end, CUSTOM_END_DEFAULT)]
    )
    return _sample(cmap, n)


def _zen_mono(n: int, start: Optional[str], end: Optional[str]) -> List[str]:
    return _ramp(n, ZEN_BLACK, ZEN_ACCENT)


PALETTE_GENERATORS: Dict[Palette, Callable[..., List[str]]] = {
    Palette.TURBO: _named("turbo"),
    Palette.VIRIDIS: _named("viridis"),
    Palette.PLASMA: _named("plasma"),
    Palette.INFERNO: _named("inferno"),
    Palette.MAGMA: _named("magma"),
    Palette.CIVIDIS: _named("cividis"),
    Palette.ZEN_MONO: _zen_mono,
    Palette.CUSTOM: _ramp,
}


def resolve_palette(name) -> Palette:
    """Map a palette name to a Palette, falling back to the default."""
    if isinstance(name, Palette):
        return name
    try:
        return Palette(str(name).lower())
    except ValueError:
        logger.warning("Unknown palette, using default", palette=name,
                       default=DEFAULT_PALETTE.value)
        return DEFAULT_PALETTE


def get_color_palette(palette_name, n_colors: int, invert: bool = False,
                      custom_start: Optional[str] = None,
                      custom_end: Optional[str] = None) -> List[str]:
    """
    Generate exactly ``n_colors`` hex colors from a palette.

    Args:
        palette_name: Palette or palette name; unknown names use turbo
        n_colors: Number of colors, normally the bounded cell count
        invert: Reverse the final order
        custom_start: Start color for the custom palette
        custom_end: End color for the custom palette

    Returns:
        List of "#rrggbb" strings
    """
    if n_colors <= 0:
        return []

    palette = resolve_palette(palette_name)
    colors = PALETTE_GENERATORS[palette](int(n_colors), custom_start, custom_end)

    if invert:
        colors = colors[::-1]

    return colors
