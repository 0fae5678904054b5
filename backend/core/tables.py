"""
Table definitions for catchments, grid cells and their association.

Boundaries are PostGIS geometry columns (SpatiaLite on SQLite) with
spatial indexes, so intersection filters run in the database. Exact
predicates are still re-checked in shapely after loading.
"""

from geoalchemy2 import Geometry
from geoalchemy2.shape import from_shape, to_shape
from shapely.geometry.base import BaseGeometry
from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Engine

# Boundaries are stored as lon/lat
SRID = 4326

metadata = MetaData()

catchments = Table(
    "catchments",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=True),
    # Copy of name kept only while uniqueness is enforced; NULLs never clash
    Column("claimed_name", String(255), nullable=True),
    Column(
        "boundary",
        Geometry(geometry_type="GEOMETRY", srid=SRID),
        nullable=False,
    ),
    # Set by boundary writes, cleared by a successful re-index
    Column("index_stale", Boolean, nullable=False, default=True),
    UniqueConstraint("claimed_name", name="uq_catchments_claimed_name"),
    Index("idx_catchments_name", "name"),
    Index("idx_catchments_index_stale", "index_stale"),
)

grid_cells = Table(
    "grid_cells",
    metadata,
    Column("id", String(64), primary_key=True),
    Column(
        "boundary",
        Geometry(geometry_type="POLYGON", srid=SRID),
        nullable=False,
    ),
)

# Derived cache: rebuilt per catchment by the association index
catchment_grid_cells = Table(
    "catchment_grid_cells",
    metadata,
    Column(
        "catchment_id",
        String(64),
        ForeignKey("catchments.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "grid_cell_id",
        String(64),
        ForeignKey("grid_cells.id"),
        primary_key=True,
    ),
    Index("idx_catchment_grid_cells_cell", "grid_cell_id"),
)


def to_db_geometry(geometry: BaseGeometry):
    """Wrap a shapely geometry for binding to a geometry column."""
    return from_shape(geometry, srid=SRID)


def from_db_geometry(element) -> BaseGeometry:
    """Convert a loaded geometry column value back to shapely."""
    return to_shape(element)


def intersects_region(table: Table, region: BaseGeometry):
    """SQL condition: the row's boundary intersects the region."""
    return func.ST_Intersects(table.c.boundary, to_db_geometry(region))


def create_schema(engine: Engine) -> None:
    """Create all tables (development and tests; production uses Alembic)."""
    metadata.create_all(engine)
