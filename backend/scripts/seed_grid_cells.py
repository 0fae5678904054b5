"""
Seed the grid catalog from an external GeoJSON FeatureCollection.

The grid tiling itself is produced elsewhere; this script only loads it.
Each feature must carry a Polygon geometry and a cell identity, taken
from a property (default "id") or the feature's top-level "id".

Usage:
    python -m scripts.seed_grid_cells --input ../data/grid_cells.geojson

    python -m scripts.seed_grid_cells \
        --input ../data/grid_cells.geojson --id-property cell_id --dry-run
"""

import argparse
import json
import sys
import time
from pathlib import Path

import structlog
from shapely.errors import ShapelyError
from shapely.geometry import shape

from core.catchment_store import mark_all_stale
from core.exceptions import CatchmentIndexError, MalformedGeometryError
from core.grid_catalog import GridCell, count_cells, insert_grid_cells

logger = structlog.get_logger(__name__)


def load_grid_cells(path: str | Path, id_property: str = "id") -> list[GridCell]:
    """
    Read grid cells from a GeoJSON FeatureCollection file.

    Parameters
    ----------
    path : str | Path
        GeoJSON file
    id_property : str
        Feature property holding the cell identity

    Returns
    -------
    list[GridCell]
        Cells in file order

    Raises
    ------
    MalformedGeometryError
        Missing identity, duplicate identity or non-polygon geometry
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    if data.get("type") != "FeatureCollection":
        raise MalformedGeometryError(
            f"Expected FeatureCollection, got {data.get('type')}"
        )

    cells = []
    seen = set()
    for i, feature in enumerate(data.get("features", [])):
        properties = feature.get("properties") or {}
        cell_id = properties.get(id_property, feature.get("id"))
        if cell_id is None:
            raise MalformedGeometryError(f"Feature {i} has no cell id")
        cell_id = str(cell_id)
        if cell_id in seen:
            raise MalformedGeometryError(f"Duplicate cell id {cell_id}")
        seen.add(cell_id)

        try:
            geom = shape(feature["geometry"])
        except (KeyError, TypeError, ValueError, ShapelyError) as e:
            raise MalformedGeometryError(f"Feature {i} geometry: {e}") from e
        if geom.geom_type != "Polygon":
            raise MalformedGeometryError(
                f"Cell {cell_id} must be a Polygon, got {geom.geom_type}"
            )
        cells.append(GridCell(id=cell_id, boundary=geom))

    return cells


def seed_grid_cells(db, cells: list[GridCell]) -> int:
    """
    Insert cells into an empty catalog.

    Every existing catchment is flagged stale so queries stay exact until
    scripts.reindex_catchments has built the associations.

    Raises
    ------
    CatchmentIndexError
        Catalog already seeded (cells are immutable once loaded)
    """
    existing = count_cells(db)
    if existing > 0:
        raise CatchmentIndexError(
            "Grid catalog already seeded", {"cells": existing}
        )
    inserted = insert_grid_cells(db, cells)
    n_stale = mark_all_stale(db)
    if n_stale:
        logger.info("catchments_flagged_for_reindex", catchments=n_stale)
    return inserted


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Load grid cells into the grid catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--input", "-i", required=True, help="GeoJSON FeatureCollection of cells"
    )
    parser.add_argument(
        "--id-property",
        default="id",
        help="Feature property holding the cell id (default: id)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the file but skip database insert",
    )
    args = parser.parse_args(argv)

    from core.logging_config import configure_logging

    configure_logging()

    if not Path(args.input).exists():
        print(f"Error: file not found: {args.input}", file=sys.stderr)
        return 1

    start_time = time.time()
    try:
        cells = load_grid_cells(args.input, args.id_property)
    except MalformedGeometryError as e:
        logger.error("grid_file_invalid", path=args.input, error=str(e))
        return 1
    logger.info("grid_file_loaded", path=args.input, cells=len(cells))

    if args.dry_run:
        logger.info("dry_run_skip_insert")
        return 0

    from core.database import get_db_session

    try:
        with get_db_session() as db:
            inserted = seed_grid_cells(db, cells)
    except CatchmentIndexError as e:
        logger.error("grid_seed_failed", error=str(e))
        return 1

    logger.info(
        "grid_seeded",
        cells=inserted,
        elapsed_s=round(time.time() - start_time, 2),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
