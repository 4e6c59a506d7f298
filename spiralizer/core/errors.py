"""Error taxonomy for the spiral pipeline."""


class SpiralizerError(Exception):
    """Base class for all spiralizer errors."""


class ValidationError(SpiralizerError):
    """Parameters are outside the configured bounds."""


class GeometryError(SpiralizerError):
    """The tessellation engine could not triangulate the point set."""


class CacheIOError(SpiralizerError):
    """A precomputed cache store is unreadable or corrupt."""


class InvalidArgument(SpiralizerError, ValueError):
    """A caller passed an argument that violates a function contract."""
