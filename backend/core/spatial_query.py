"""
Two-phase spatial queries over catchments.

Phase one narrows the candidate set through the grid association: the
grid catalog names the cells relevant to the query region and only
catchments associated with those cells are loaded. Phase two re-tests
every candidate with an exact shapely predicate. When no narrowing is
available (empty or partial grid coverage, unreachable index, ungridded
strategy) the same algorithm simply scans every catchment.

Because phase two is never skipped, a stale association can only hide
candidates from narrowing; it can never add a wrong result.
"""

import logging
import time
from collections.abc import Callable, Iterable
from typing import Literal

from shapely.geometry.base import BaseGeometry
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core import catchment_store, grid_catalog
from core.catchment_store import Catchment
from core.exceptions import IndexUnavailableError
from utils.geometry import as_point, buffer_to_disk, contains_point, intersects

logger = logging.getLogger(__name__)

RadiusStrategy = Literal["gridded", "ungridded"]

# (session, query region) -> relevant cell ids, or None if no narrowing
NarrowingProvider = Callable[[Session, BaseGeometry], set[str] | None]

# (catchment boundary, query region) -> match
Predicate = Callable[[BaseGeometry, BaseGeometry], bool]


def grid_narrowing(require_full_coverage: bool = True) -> NarrowingProvider:
    """
    Narrowing provider backed by the grid catalog.

    Parameters
    ----------
    require_full_coverage : bool
        Refuse to narrow when the grid covers the region only partially
    """

    def provider(db: Session, region: BaseGeometry) -> set[str] | None:
        return grid_catalog.covering_cells(db, region, require_full_coverage)

    return provider


def _relevant_cells(
    db: Session, region: BaseGeometry, narrowing: NarrowingProvider | None
) -> set[str] | None:
    if narrowing is None:
        return None
    try:
        cells = narrowing(db, region)
    except IndexUnavailableError as e:
        logger.warning(f"Grid narrowing unavailable, scanning all catchments: {e}")
        return None
    return cells or None


def _verify(
    candidates: Iterable[Catchment], region: BaseGeometry, predicate: Predicate
) -> tuple[dict[str, Catchment], int]:
    matches: dict[str, Catchment] = {}
    n_tested = 0
    for catchment in candidates:
        n_tested += 1
        if predicate(catchment.boundary, region):
            matches[catchment.id] = catchment
    return matches, n_tested


def query_catchments(
    db: Session,
    region: BaseGeometry,
    predicate: Predicate,
    narrowing: NarrowingProvider | None = None,
    name_contains: str | None = None,
    spatial_prefilter: bool = False,
    fetch_size: int = 1000,
) -> list[Catchment]:
    """
    Find catchments matching an exact predicate against a region.

    Parameters
    ----------
    db : Session
        Database session
    region : BaseGeometry
        Query point or disk
    predicate : callable
        Exact test (boundary, region) -> bool, applied to every candidate
    narrowing : NarrowingProvider, optional
        Source of relevant grid cells; None means full scan
    name_contains : str, optional
        Name substring evaluated by the database
    spatial_prefilter : bool
        Let the database drop catchments whose boundary does not
        intersect the region (ST_Intersects)
    fetch_size : int
        Rows per fetch batch

    Returns
    -------
    list[Catchment]
        Matching catchments, unique, sorted by id

    Raises
    ------
    MalformedGeometryError
        A geometry test failed; the whole query fails
    """
    t0 = time.time()
    cells = _relevant_cells(db, region, narrowing)
    prefilter_region = region if spatial_prefilter else None

    def candidates(cell_ids: set[str] | None):
        return catchment_store.iter_catchments(
            db,
            cell_ids=cell_ids,
            name_contains=name_contains,
            intersecting=prefilter_region,
            fetch_size=fetch_size,
        )

    try:
        matches, n_tested = _verify(candidates(cells), region, predicate)
    except SQLAlchemyError as e:
        if cells is None:
            raise
        # Association table unreadable: restart as a full scan
        db.rollback()
        logger.warning(f"Association lookup failed, scanning all catchments: {e}")
        cells = None
        matches, n_tested = _verify(candidates(None), region, predicate)

    scope = f"{len(cells)} cells" if cells else "full scan"
    logger.debug(
        f"Spatial query ({scope}): "
        f"{n_tested} candidates tested, {len(matches)} matched "
        f"in {(time.time() - t0) * 1000:.1f}ms"
    )
    return [matches[key] for key in sorted(matches)]


def find_containing(
    db: Session,
    point,
    use_grid: bool = True,
    fetch_size: int = 1000,
) -> list[Catchment]:
    """
    Find catchments whose boundary contains a point.

    Parameters
    ----------
    db : Session
        Database session
    point : Point | tuple[float, float] | LngLat
        Query point
    use_grid : bool
        Narrow through the grid association and the spatial index; False
        scans every catchment

    Returns
    -------
    list[Catchment]
        Catchments passing the exact containment test
    """
    return query_catchments(
        db,
        as_point(point),
        contains_point,
        narrowing=grid_narrowing() if use_grid else None,
        spatial_prefilter=use_grid,
        fetch_size=fetch_size,
    )


def make_disk(center, radius: float, quad_segs: int = 16) -> BaseGeometry:
    """Build the query disk once per radius query."""
    return buffer_to_disk(as_point(center), radius, quad_segs=quad_segs)


def find_within_radius(
    db: Session,
    radius: float,
    center,
    strategy: RadiusStrategy = "gridded",
    quad_segs: int = 16,
    require_full_coverage: bool = True,
    fetch_size: int = 1000,
) -> list[Catchment]:
    """
    Find catchments intersecting a disk around a point.

    Both strategies return identical results; "gridded" narrows through
    the association first, "ungridded" tests every catchment.

    Parameters
    ----------
    db : Session
        Database session
    radius : float
        Disk radius in coordinate units (degrees for lon/lat)
    center : Point | tuple[float, float] | LngLat
        Disk center
    strategy : {"gridded", "ungridded"}
        Candidate selection strategy
    quad_segs : int
        Disk approximation resolution

    Returns
    -------
    list[Catchment]
        Catchments whose boundary intersects the disk
    """
    if strategy not in ("gridded", "ungridded"):
        raise ValueError(f"Unknown radius strategy: {strategy}")

    disk = make_disk(center, radius, quad_segs)
    narrowing = grid_narrowing(require_full_coverage) if strategy == "gridded" else None
    return query_catchments(
        db,
        disk,
        intersects,
        narrowing=narrowing,
        spatial_prefilter=strategy == "gridded",
        fetch_size=fetch_size,
    )
