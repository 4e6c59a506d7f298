"""Canonical cache keys for spiral parameter sets."""

from dataclasses import dataclass
from typing import Optional, Tuple

TRUNCATION_TAG = "trunc"
KEY_SEPARATOR = "_"


def format_number(value) -> str:
    """Shortest exact text for a number: integral values drop the fraction."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


@dataclass(frozen=True)
class SpiralParams:
    """
    Parameters that fully determine a computation's output.

    The truncation factor only matters when truncation is enabled; it is
    normalised to None otherwise so equivalent requests share a key.
    """
    angle_start: float
    angle_end: float
    num_points: int
    truncate: bool = False
    truncate_factor: Optional[float] = None

    def __post_init__(self):
        if not self.truncate:
            object.__setattr__(self, "truncate_factor", None)

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.angle_start, self.angle_end, self.num_points,
                              self.truncate, self.truncate_factor)

    def as_tuple(self) -> Tuple:
        return (self.angle_start, self.angle_end, self.num_points,
                self.truncate, self.truncate_factor)


def make_cache_key(angle_start, angle_end, num_points, truncate: bool = False,
                   truncate_factor: Optional[float] = None) -> str:
    """
    Encode parameters as ``start_end_points`` or ``start_end_points_trunc_factor``.

    Numbers never contain the separator, so distinct parameter sets map to
    distinct keys.
    """
    parts = [format_number(angle_start), format_number(angle_end), format_number(num_points)]
    if truncate:
        if truncate_factor is None:
            raise ValueError("truncate_factor is required when truncation is enabled")
        parts += [TRUNCATION_TAG, format_number(truncate_factor)]
    return KEY_SEPARATOR.join(parts)
