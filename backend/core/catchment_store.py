"""
Persistence of catchment records.

Session-level CRUD for catchments plus the candidate selection used by
the spatial query engine: optional association semi-join, name
substring and geometry intersection filters evaluated by the database.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from shapely.geometry.base import BaseGeometry
from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import CatchmentNotFoundError
from core.tables import (
    catchment_grid_cells,
    catchments,
    from_db_geometry,
    intersects_region,
    to_db_geometry,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Catchment:
    """
    Named catchment region.

    Attributes
    ----------
    id : str
        Externally assigned identity, immutable
    name : str | None
        Display name
    boundary : Polygon | MultiPolygon
        Catchment boundary, holes and parts preserved
    """

    id: str
    name: str | None
    boundary: BaseGeometry


def _to_catchment(row) -> Catchment:
    return Catchment(
        id=row.id, name=row.name, boundary=from_db_geometry(row.boundary)
    )


def insert_catchment(
    db: Session, catchment: Catchment, unique_name: bool = False
) -> None:
    """
    Insert a new catchment row.

    With unique_name the name is also claimed under the unique
    constraint, so a concurrent insert of the same name fails.
    """
    db.execute(
        insert(catchments).values(
            id=str(catchment.id),
            name=catchment.name,
            claimed_name=catchment.name if unique_name else None,
            boundary=to_db_geometry(catchment.boundary),
            index_stale=True,
        )
    )


def load_catchment(db: Session, catchment_id: str) -> Catchment | None:
    """Load one catchment, or None if missing."""
    row = db.execute(
        select(catchments.c.id, catchments.c.name, catchments.c.boundary).where(
            catchments.c.id == str(catchment_id)
        )
    ).one_or_none()
    return _to_catchment(row) if row is not None else None


def require_catchment(db: Session, catchment_id: str) -> Catchment:
    """Load one catchment, raising CatchmentNotFoundError if missing."""
    catchment = load_catchment(db, catchment_id)
    if catchment is None:
        raise CatchmentNotFoundError(str(catchment_id))
    return catchment


def update_name(
    db: Session, catchment_id: str, name: str | None, unique_name: bool = False
) -> None:
    """Rename a catchment; association entries are unaffected."""
    result = db.execute(
        update(catchments)
        .where(catchments.c.id == str(catchment_id))
        .values(name=name, claimed_name=name if unique_name else None)
    )
    if result.rowcount == 0:
        raise CatchmentNotFoundError(str(catchment_id))


def update_boundary(db: Session, catchment_id: str, boundary: BaseGeometry) -> None:
    """
    Replace a catchment boundary.

    Flags the catchment's association as stale until the next re-index.
    """
    result = db.execute(
        update(catchments)
        .where(catchments.c.id == str(catchment_id))
        .values(boundary=to_db_geometry(boundary), index_stale=True)
    )
    if result.rowcount == 0:
        raise CatchmentNotFoundError(str(catchment_id))


def delete_catchment(db: Session, catchment_id: str) -> None:
    """Delete a catchment row."""
    result = db.execute(
        delete(catchments).where(catchments.c.id == str(catchment_id))
    )
    if result.rowcount == 0:
        raise CatchmentNotFoundError(str(catchment_id))


def catchment_exists(db: Session, catchment_id: str) -> bool:
    """Check whether a catchment with this id exists."""
    query = select(catchments.c.id).where(catchments.c.id == str(catchment_id))
    return db.execute(query.limit(1)).first() is not None


def name_exists(db: Session, name: str) -> bool:
    """Check whether a catchment with exactly this name exists."""
    query = select(catchments.c.id).where(catchments.c.name == name)
    return db.execute(query.limit(1)).first() is not None


def is_name_conflict(error: IntegrityError) -> bool:
    """Whether an integrity error comes from the unique name constraint."""
    return "claimed_name" in str(error.orig)


def get_name(db: Session, catchment_id: str) -> str | None:
    """Get a catchment's name."""
    row = db.execute(
        select(catchments.c.name).where(catchments.c.id == str(catchment_id))
    ).one_or_none()
    if row is None:
        raise CatchmentNotFoundError(str(catchment_id))
    return row.name


def iter_catchments(
    db: Session,
    cell_ids: set[str] | None = None,
    name_contains: str | None = None,
    intersecting: BaseGeometry | None = None,
    fetch_size: int = 1000,
) -> Iterator[Catchment]:
    """
    Stream catchments matching the database-side filters.

    Parameters
    ----------
    db : Session
        Database session
    cell_ids : set[str], optional
        Keep only catchments associated with at least one of these cells,
        plus catchments whose association is flagged stale. None or empty
        means no association filter (full scan).
    name_contains : str, optional
        Substring the name must contain (SQL LIKE, wildcards escaped)
    intersecting : BaseGeometry, optional
        Keep only catchments whose boundary intersects this geometry
        (ST_Intersects, served by the spatial index)
    fetch_size : int
        Rows per fetch batch

    Yields
    ------
    Catchment
        Each matching catchment once
    """
    query = select(catchments.c.id, catchments.c.name, catchments.c.boundary)

    if cell_ids:
        associated = select(catchment_grid_cells.c.catchment_id).where(
            catchment_grid_cells.c.grid_cell_id.in_(sorted(cell_ids))
        )
        query = query.where(
            or_(catchments.c.id.in_(associated), catchments.c.index_stale.is_(True))
        )
    if name_contains is not None:
        query = query.where(catchments.c.name.contains(name_contains, autoescape=True))
    if intersecting is not None:
        query = query.where(intersects_region(catchments, intersecting))

    query = query.order_by(catchments.c.id)
    result = db.execute(query.execution_options(yield_per=fetch_size))
    for row in result:
        yield _to_catchment(row)


def iter_id_name_pairs(
    db: Session, fetch_size: int = 1000
) -> Iterator[tuple[str, str | None]]:
    """Stream (id, name) pairs of every catchment."""
    query = select(catchments.c.id, catchments.c.name).order_by(catchments.c.id)
    result = db.execute(query.execution_options(yield_per=fetch_size))
    for row in result:
        yield row.id, row.name


def iter_catchment_ids(db: Session, fetch_size: int = 1000) -> Iterator[str]:
    """Stream every catchment id."""
    query = select(catchments.c.id).order_by(catchments.c.id)
    result = db.execute(query.execution_options(yield_per=fetch_size))
    for row in result:
        yield row.id


def mark_all_stale(db: Session) -> int:
    """
    Flag every catchment's association as stale.

    Used when the grid catalog is (re)seeded, which invalidates all
    existing associations until catchments are re-indexed.
    """
    result = db.execute(update(catchments).values(index_stale=True))
    logger.info(f"Flagged {result.rowcount} catchments for re-index")
    return result.rowcount


def count_stale(db: Session) -> int:
    """Number of catchments awaiting a successful re-index."""
    query = (
        select(func.count())
        .select_from(catchments)
        .where(catchments.c.index_stale.is_(True))
    )
    return db.execute(query).scalar_one()
