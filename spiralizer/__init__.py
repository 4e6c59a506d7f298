"""
Spiralizer - Voronoi artwork from Fermat spirals.

Generates Fermat-spiral point sets, tessellates them with scipy's Qhull
bindings and serves the result through a multi-tier cache.
"""

__version__ = "0.1.0"
