"""Parameter validation run before any computation."""

import math
from typing import NamedTuple


class SpiralLimits(NamedTuple):
    """Bounds applied to spiral parameters."""
    min_points: int = 3
    max_points: int = 5000
    max_angle_range: float = 1000
    min_angle: float = 0


class ValidationResult(NamedTuple):
    """Outcome of a parameter check; message is empty when valid."""
    valid: bool
    message: str = ""


def _is_real(value) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def validate_spiral_params(angle_start, angle_end, num_points,
                           limits: SpiralLimits = SpiralLimits()) -> ValidationResult:
    """
    Validate spiral parameters against configured limits.

    Never raises: malformed input is reported as an invalid result.

    Checks run in order and the first failure wins:
    start < end, enough points, not too many points, angle range, then
    non-negative start angle.
    """
    if not (_is_real(angle_start) and _is_real(angle_end) and _is_real(num_points)):
        return ValidationResult(False, "Angles and point count must be finite numbers")

    angle_start, angle_end = float(angle_start), float(angle_end)

    if angle_start >= angle_end:
        return ValidationResult(False, "Start angle must be less than end angle")

    if num_points < limits.min_points:
        return ValidationResult(
            False, f"Need at least {limits.min_points} points for Voronoi diagram"
        )

    if num_points > limits.max_points:
        return ValidationResult(
            False, f"Too many points! Maximum is {limits.max_points} for performance"
        )

    if angle_end - angle_start > limits.max_angle_range:
        return ValidationResult(
            False, f"Angle range too large! Keep it under {limits.max_angle_range:g}"
        )

    if angle_start < limits.min_angle:
        return ValidationResult(
            False, f"Start angle must be at least {limits.min_angle:g}"
        )

    return ValidationResult(True, "")
