"""
Catchment to grid-cell association index.

The association is a derived cache: for an up-to-date catchment it holds
exactly the grid cells whose boundary intersects the catchment boundary.
It is rebuilt from scratch per catchment by reindex_catchment() after a
boundary write commits, and may be stale in between. Each boundary write
flags the catchment as stale and a successful re-index clears the flag;
flagged catchments are always kept as query candidates. Queries use the
association only to narrow candidates and always re-verify geometry, so
staleness never produces a wrong result.
"""

import logging
import time

from shapely.geometry.base import BaseGeometry
from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from core import grid_catalog
from core.exceptions import CatchmentNotFoundError
from core.tables import catchment_grid_cells, catchments, from_db_geometry
from utils.geometry import validate_boundary

logger = logging.getLogger(__name__)


def compute_grid_cells(db: Session, boundary: BaseGeometry) -> set[str]:
    """
    Compute the cells a boundary overlaps.

    Parameters
    ----------
    db : Session
        Database session
    boundary : Polygon | MultiPolygon
        Catchment boundary

    Returns
    -------
    set[str]
        Ids of grid cells intersecting the boundary

    Raises
    ------
    MalformedGeometryError
        Boundary is empty or invalid (e.g. self-intersecting)
    IndexUnavailableError
        Grid catalog could not be read
    """
    validate_boundary(boundary)
    return grid_catalog.cells_intersecting(db, boundary)


def replace_associations(db: Session, catchment_id: str, cell_ids: set[str]) -> None:
    """
    Replace a catchment's association entries.

    Delete and insert run in the caller's transaction, so other sessions
    see either the old or the new set once it commits, never a mix.
    """
    db.execute(
        delete(catchment_grid_cells).where(
            catchment_grid_cells.c.catchment_id == catchment_id
        )
    )
    if cell_ids:
        db.execute(
            insert(catchment_grid_cells),
            [
                {"catchment_id": catchment_id, "grid_cell_id": cell_id}
                for cell_id in sorted(cell_ids)
            ],
        )


def reindex_catchment(db: Session, catchment_id: str) -> set[str]:
    """
    Rebuild one catchment's association from its current boundary.

    Clears the catchment's stale flag in the same transaction.

    Locks the catchment row for the duration of the transaction where the
    database supports it, so concurrent re-indexes of the same catchment
    serialize while different catchments proceed independently.
    Idempotent for an unchanged boundary.

    Parameters
    ----------
    db : Session
        Database session (committed by the caller)
    catchment_id : str
        Catchment to re-index

    Returns
    -------
    set[str]
        New association entry set

    Raises
    ------
    CatchmentNotFoundError
        No such catchment
    MalformedGeometryError
        Stored boundary is invalid; prior entries are left untouched
    """
    catchment_id = str(catchment_id)
    t0 = time.time()

    row = db.execute(
        select(catchments.c.boundary)
        .where(catchments.c.id == catchment_id)
        .with_for_update()
    ).one_or_none()
    if row is None:
        raise CatchmentNotFoundError(catchment_id)

    cell_ids = compute_grid_cells(db, from_db_geometry(row.boundary))
    replace_associations(db, catchment_id, cell_ids)
    db.execute(
        update(catchments)
        .where(catchments.c.id == catchment_id)
        .values(index_stale=False)
    )

    logger.debug(
        f"Reindexed catchment {catchment_id}: {len(cell_ids)} cells "
        f"in {(time.time() - t0) * 1000:.1f}ms"
    )
    return cell_ids


def grid_cells_for_catchment(db: Session, catchment_id: str) -> set[str]:
    """Current association entries of a catchment."""
    rows = db.execute(
        select(catchment_grid_cells.c.grid_cell_id).where(
            catchment_grid_cells.c.catchment_id == str(catchment_id)
        )
    ).all()
    return {row.grid_cell_id for row in rows}


def catchment_ids_for_cells(db: Session, cell_ids: set[str]) -> set[str]:
    """Catchments associated with at least one of the given cells."""
    if not cell_ids:
        return set()
    rows = db.execute(
        select(catchment_grid_cells.c.catchment_id)
        .where(catchment_grid_cells.c.grid_cell_id.in_(sorted(cell_ids)))
        .distinct()
    ).all()
    return {row.catchment_id for row in rows}


def delete_associations(db: Session, catchment_id: str) -> None:
    """Drop all association entries of a catchment."""
    db.execute(
        delete(catchment_grid_cells).where(
            catchment_grid_cells.c.catchment_id == str(catchment_id)
        )
    )


def is_stale(db: Session, catchment_id: str) -> bool:
    """Whether a catchment's association awaits a successful re-index."""
    row = db.execute(
        select(catchments.c.index_stale).where(catchments.c.id == str(catchment_id))
    ).one_or_none()
    if row is None:
        raise CatchmentNotFoundError(str(catchment_id))
    return bool(row.index_stale)
