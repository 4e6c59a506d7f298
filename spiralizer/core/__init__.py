"""
Core spiral and tessellation functionality.
"""

from .errors import SpiralizerError, ValidationError, GeometryError, CacheIOError, InvalidArgument
from .spiral import generate_fermat_spiral
from .geometry import TessellationResult, VoronoiCell, compute_voronoi, is_bounded_cell
from .limits import calculate_plot_limits
from .truncation import truncate_spiral_points
from .validation import SpiralLimits, ValidationResult, validate_spiral_params
from .colors import Palette, get_color_palette
from .performance import PerformanceMode, PerformanceProfile, estimate_computation_time, select_profile

__all__ = ['SpiralizerError', 'ValidationError', 'GeometryError', 'CacheIOError', 'InvalidArgument',
           'generate_fermat_spiral', 'TessellationResult', 'VoronoiCell', 'compute_voronoi',
           'is_bounded_cell', 'calculate_plot_limits', 'truncate_spiral_points',
           'SpiralLimits', 'ValidationResult', 'validate_spiral_params',
           'Palette', 'get_color_palette',
           'PerformanceMode', 'PerformanceProfile', 'estimate_computation_time', 'select_profile']
