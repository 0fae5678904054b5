"""
Utility functions for the catchment index backend.
"""

from utils.geometry import (
    boundary_to_vertices,
    buffer_to_disk,
    contains_point,
    intersects,
    parse_multipolygon,
    polygon_from_vertices,
)

__all__ = [
    "contains_point",
    "intersects",
    "buffer_to_disk",
    "parse_multipolygon",
    "polygon_from_vertices",
    "boundary_to_vertices",
]
