"""
Name-based catchment lookups.

Substring filters are evaluated by the database (LIKE; case sensitivity
follows the database collation). Regular expressions cannot be evaluated
portably in SQL, so find_by_name_regex() is a separate full-scan
fallback that pulls every (id, name) pair into memory.
"""

import logging
import re
import time

from sqlalchemy.orm import Session

from core import catchment_store
from core.catchment_store import Catchment
from core.spatial_query import grid_narrowing, make_disk, query_catchments
from utils.geometry import intersects

logger = logging.getLogger(__name__)


def find_by_name_substring(
    db: Session, substring: str, fetch_size: int = 1000
) -> list[Catchment]:
    """
    Find catchments whose name contains a substring.

    Parameters
    ----------
    db : Session
        Database session
    substring : str
        Text to look for; LIKE wildcards in it are matched literally

    Returns
    -------
    list[Catchment]
        Matching catchments sorted by id
    """
    return list(
        catchment_store.iter_catchments(
            db, name_contains=substring, fetch_size=fetch_size
        )
    )


def find_by_name_and_radius(
    db: Session,
    substring: str,
    radius: float,
    center,
    quad_segs: int = 16,
    require_full_coverage: bool = True,
    fetch_size: int = 1000,
) -> list[Catchment]:
    """
    Find catchments matching a name substring within a radius.

    The substring and the disk intersection are filtered by the
    database together with grid narrowing; survivors get the exact disk
    intersection test.

    Parameters
    ----------
    db : Session
        Database session
    substring : str
        Text the name must contain
    radius : float
        Disk radius in coordinate units
    center : Point | tuple[float, float] | LngLat
        Disk center

    Returns
    -------
    list[Catchment]
        Matching catchments sorted by id
    """
    disk = make_disk(center, radius, quad_segs)
    return query_catchments(
        db,
        disk,
        intersects,
        narrowing=grid_narrowing(require_full_coverage),
        name_contains=substring,
        spatial_prefilter=True,
        fetch_size=fetch_size,
    )


def find_by_name_regex(
    db: Session,
    pattern: str | re.Pattern,
    fetch_size: int = 1000,
    warn_threshold: int = 10_000,
) -> list[tuple[str, str | None]]:
    """
    Find (id, name) pairs whose name matches a regular expression.

    Warning: full scan. Every catchment's id and name is loaded and
    matched in-process, costing O(n) memory and CPU. Do not combine with
    spatial queries; use find_by_name_and_radius() for those.

    A missing name is matched as the empty string.

    Parameters
    ----------
    db : Session
        Database session
    pattern : str | re.Pattern
        Regular expression, applied with re.search
    warn_threshold : int
        Log a warning when more rows than this are scanned

    Returns
    -------
    list[tuple[str, str | None]]
        (id, stored name) pairs, sorted by id

    Examples
    --------
    >>> find_by_name_regex(db, r"^.*Basin$")
    [('c1', 'North Basin'), ('c2', 'South Basin')]
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern

    t0 = time.time()
    pairs = list(catchment_store.iter_id_name_pairs(db, fetch_size=fetch_size))
    matched = [
        (catchment_id, name)
        for catchment_id, name in pairs
        if regex.search(name or "")
    ]

    if len(pairs) > warn_threshold:
        logger.warning(
            f"Regex name search scanned {len(pairs):,} catchments in memory; "
            "consider a substring filter instead"
        )
    logger.debug(
        f"Regex name search: {len(matched)}/{len(pairs)} matched "
        f"in {(time.time() - t0) * 1000:.1f}ms"
    )
    return matched
