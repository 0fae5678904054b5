"""
Read access to the pre-seeded grid of cells.

The grid is an external, immutable tiling used only to narrow spatial
queries. Lookups run as ST_Intersects against the spatial index of the
grid_cells table. An empty catalog is a valid state meaning "no
narrowing available".
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from shapely.geometry import Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import IndexUnavailableError, MalformedGeometryError
from core.tables import (
    from_db_geometry,
    grid_cells,
    intersects_region,
    to_db_geometry,
)
from utils.geometry import validate_boundary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridCell:
    """
    One tile of the grid.

    Attributes
    ----------
    id : str
        Cell identity from the external dataset
    boundary : Polygon
        Cell polygon
    """

    id: str
    boundary: Polygon


def _fetch_cells(db: Session, region: BaseGeometry) -> list[GridCell]:
    """Cells whose boundary intersects the region."""
    query = select(grid_cells.c.id, grid_cells.c.boundary).where(
        intersects_region(grid_cells, region)
    )
    try:
        rows = db.execute(query).all()
    except SQLAlchemyError as e:
        db.rollback()
        raise IndexUnavailableError(f"Grid catalog unavailable: {e}") from e

    return [
        GridCell(id=row.id, boundary=from_db_geometry(row.boundary)) for row in rows
    ]


def cells_containing(db: Session, point: Point) -> set[str]:
    """
    Get ids of cells covering a point.

    Points on a shared cell edge belong to every adjacent cell.

    Parameters
    ----------
    db : Session
        Database session
    point : Point
        Query point

    Returns
    -------
    set[str]
        Grid cell ids (empty if the point is not covered)
    """
    return {cell.id for cell in _fetch_cells(db, point)}


def cells_intersecting(db: Session, geometry: BaseGeometry) -> set[str]:
    """
    Get ids of cells intersecting a geometry.

    Parameters
    ----------
    db : Session
        Database session
    geometry : BaseGeometry
        Catchment boundary or query disk

    Returns
    -------
    set[str]
        Grid cell ids (empty if the catalog has no overlapping cells)
    """
    return {cell.id for cell in _fetch_cells(db, geometry)}


def covering_cells(
    db: Session, region: BaseGeometry, require_full_coverage: bool = True
) -> set[str] | None:
    """
    Get cells usable to narrow a query over a region.

    Returns None when the grid cannot narrow the query: no cell touches
    the region, or (with require_full_coverage) part of the region lies
    outside every cell, where catchments would have no association.

    Parameters
    ----------
    db : Session
        Database session
    region : BaseGeometry
        Query point or disk
    require_full_coverage : bool
        Demand the cells cover the whole region

    Returns
    -------
    set[str] | None
        Relevant cell ids, or None for "no narrowing available"
    """
    cells = _fetch_cells(db, region)
    if not cells:
        return None

    if require_full_coverage and not isinstance(region, Point):
        covered = unary_union([cell.boundary for cell in cells])
        if not covered.covers(region):
            logger.debug(
                f"Grid covers region only partially ({len(cells)} cells), "
                "narrowing disabled"
            )
            return None

    return {cell.id for cell in cells}


def count_cells(db: Session) -> int:
    """Number of seeded cells."""
    try:
        return db.execute(select(func.count()).select_from(grid_cells)).scalar_one()
    except SQLAlchemyError as e:
        db.rollback()
        raise IndexUnavailableError(f"Grid catalog unavailable: {e}") from e


def insert_grid_cells(db: Session, cells: Iterable[GridCell]) -> int:
    """
    Seed grid cells from an external dataset.

    Only seeding tools call this; the query engine never modifies the
    catalog.

    Returns
    -------
    int
        Number of inserted cells
    """
    records = []
    for cell in cells:
        if not isinstance(cell.boundary, Polygon):
            raise MalformedGeometryError(
                f"Grid cell {cell.id} must be a Polygon, "
                f"got {cell.boundary.geom_type}"
            )
        validate_boundary(cell.boundary)
        records.append(
            {
                "id": str(cell.id),
                "boundary": to_db_geometry(cell.boundary),
            }
        )

    if records:
        db.execute(insert(grid_cells), records)
    logger.info(f"Inserted {len(records)} grid cells")
    return len(records)
