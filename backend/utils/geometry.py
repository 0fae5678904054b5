"""
Geometry capability for catchment boundaries.

Thin, stateless wrappers around shapely predicates and constructors used
by the catchment index: point containment, intersection, buffering a
point into a disk, and conversions between vertex sequences, GeoJSON
and shapely geometries.
"""

import json
from collections.abc import Iterable
from typing import Any

from shapely.errors import GEOSException, ShapelyError
from shapely.geometry import MultiPolygon, Point, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from core.exceptions import MalformedGeometryError, TopologyError

Boundary = Polygon | MultiPolygon


def as_point(value: Any) -> Point:
    """
    Coerce a point-like value into a shapely Point.

    Parameters
    ----------
    value : Point | tuple[float, float] | object with to_point()
        Point, (x, y) pair or LngLat model

    Returns
    -------
    Point
        Shapely Point
    """
    if isinstance(value, Point):
        return value
    if hasattr(value, "to_point"):
        return value.to_point()
    try:
        x, y = value
        return Point(float(x), float(y))
    except (TypeError, ValueError) as e:
        raise MalformedGeometryError(f"Not a point: {value!r}") from e


def contains_point(boundary: BaseGeometry, point: Point) -> bool:
    """
    Test whether a boundary contains a point.

    Follows shapely's convention: points on the boundary line are not
    contained.
    """
    try:
        return bool(boundary.contains(point))
    except (GEOSException, ShapelyError) as e:
        raise MalformedGeometryError(f"Containment test failed: {e}") from e


def intersects(a: BaseGeometry, b: BaseGeometry) -> bool:
    """Test whether two geometries share at least one point."""
    try:
        return bool(a.intersects(b))
    except (GEOSException, ShapelyError) as e:
        raise MalformedGeometryError(f"Intersection test failed: {e}") from e


def buffer_to_disk(point: Point, radius: float, quad_segs: int = 16) -> Polygon:
    """
    Buffer a point into a disk polygon.

    Parameters
    ----------
    point : Point
        Disk center
    radius : float
        Radius in coordinate units (degrees for lon/lat data), must be > 0
    quad_segs : int
        Segments used to approximate a quarter circle

    Returns
    -------
    Polygon
        Disk approximation

    Examples
    --------
    >>> disk = buffer_to_disk(Point(1.0, 0.5), 0.1)
    >>> disk.contains(Point(1.05, 0.5))
    True
    """
    if radius is None or not radius > 0:
        raise ValueError(f"Radius must be positive, got {radius}")
    return point.buffer(radius, quad_segs=quad_segs)


def polygon_from_vertices(vertices: Iterable[Any]) -> Polygon:
    """
    Build a closed polygon from a flat vertex sequence.

    The ring is closed automatically; a repeated closing vertex is
    accepted.

    Parameters
    ----------
    vertices : iterable
        (x, y) pairs or LngLat models

    Returns
    -------
    Polygon
        Single polygon without holes

    Raises
    ------
    MalformedGeometryError
        Fewer than 3 distinct vertices
    """
    coords = []
    for vertex in vertices:
        p = as_point(vertex)
        coords.append((p.x, p.y))

    if len(coords) > 1 and coords[0] == coords[-1]:
        coords = coords[:-1]

    if len(set(coords)) < 3:
        raise MalformedGeometryError(
            "Need at least 3 distinct vertices to build boundary",
            {"distinct_vertices": len(set(coords))},
        )

    return Polygon(coords)


def parse_multipolygon(geojson: str | dict) -> MultiPolygon:
    """
    Parse a GeoJSON multipolygon, keeping every part and hole.

    A GeoJSON Polygon is accepted and promoted to a one-part
    MultiPolygon.

    Parameters
    ----------
    geojson : str | dict
        GeoJSON geometry (string or already decoded)

    Returns
    -------
    MultiPolygon
        Parsed boundary
    """
    try:
        data = json.loads(geojson) if isinstance(geojson, str) else geojson
        geom = shape(data)
    except (ValueError, TypeError, KeyError, AttributeError, ShapelyError) as e:
        raise MalformedGeometryError(f"Invalid GeoJSON geometry: {e}") from e

    if isinstance(geom, Polygon):
        geom = MultiPolygon([geom])
    if not isinstance(geom, MultiPolygon):
        raise MalformedGeometryError(
            f"Expected MultiPolygon geometry, got {geom.geom_type}"
        )
    if geom.is_empty:
        raise MalformedGeometryError("Empty MultiPolygon")
    return geom


def boundary_to_vertices(boundary: Boundary) -> list[tuple[float, float]]:
    """
    Flatten a boundary to its exterior vertex ring.

    The closing vertex is omitted, so the result can be fed back to
    polygon_from_vertices().

    Raises
    ------
    TopologyError
        Boundary has holes or more than one part
    """
    if isinstance(boundary, MultiPolygon):
        if len(boundary.geoms) != 1:
            raise TopologyError(
                "Multi-part boundary cannot be expressed as one vertex ring",
                {"parts": len(boundary.geoms)},
            )
        boundary = boundary.geoms[0]

    if not isinstance(boundary, Polygon):
        raise TopologyError(f"Unsupported boundary type {boundary.geom_type}")
    if len(boundary.interiors) > 0:
        raise TopologyError(
            "Holed boundary cannot be expressed as one vertex ring",
            {"holes": len(boundary.interiors)},
        )

    return [(x, y) for x, y, *_ in boundary.exterior.coords[:-1]]


def validate_boundary(boundary: BaseGeometry) -> None:
    """
    Reject empty, non-areal or invalid (e.g. self-intersecting) boundaries.

    Raises
    ------
    MalformedGeometryError
        With the shapely validity explanation
    """
    if not isinstance(boundary, (Polygon, MultiPolygon)):
        raise MalformedGeometryError(
            f"Boundary must be Polygon or MultiPolygon, got {boundary.geom_type}"
        )
    if boundary.is_empty:
        raise MalformedGeometryError("Boundary is empty")
    if not boundary.is_valid:
        raise MalformedGeometryError(
            "Invalid boundary", {"reason": explain_validity(boundary)}
        )


def boundary_to_geojson(boundary: BaseGeometry) -> dict[str, Any]:
    """Convert geometry to a GeoJSON geometry mapping."""
    return dict(mapping(boundary))
