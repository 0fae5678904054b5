"""
Create catchments, grid_cells and catchment_grid_cells tables.

Boundaries are PostGIS geometries (EPSG:4326) with GIST indexes.
catchment_grid_cells is the derived association between catchments and
the grid cells their boundary intersects.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from geoalchemy2 import Geometry

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create catchment index tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    # ===================
    # catchments table
    # ===================
    op.create_table(
        "catchments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "name",
            sa.String(255),
            nullable=True,
            comment="Catchment name (NULL allowed)",
        ),
        sa.Column(
            "claimed_name",
            sa.String(255),
            nullable=True,
            comment="Name held while uniqueness is enforced",
        ),
        sa.Column(
            "boundary",
            Geometry(geometry_type="GEOMETRY", srid=4326, spatial_index=False),
            nullable=False,
            comment="Polygon or MultiPolygon in EPSG:4326",
        ),
        sa.Column(
            "index_stale",
            sa.Boolean,
            nullable=False,
            server_default=sa.true(),
            comment="Association awaits re-index after a boundary write",
        ),
        sa.UniqueConstraint("claimed_name", name="uq_catchments_claimed_name"),
        comment="Named catchment regions",
    )
    op.create_index("idx_catchments_name", "catchments", ["name"])
    op.create_index(
        "idx_catchments_boundary",
        "catchments",
        ["boundary"],
        postgresql_using="gist",
    )
    op.create_index("idx_catchments_index_stale", "catchments", ["index_stale"])

    # ===================
    # grid_cells table
    # ===================
    op.create_table(
        "grid_cells",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "boundary",
            Geometry(geometry_type="POLYGON", srid=4326, spatial_index=False),
            nullable=False,
            comment="Cell polygon in EPSG:4326",
        ),
        comment="Immutable grid tiling, seeded externally",
    )
    op.create_index(
        "idx_grid_cells_boundary",
        "grid_cells",
        ["boundary"],
        postgresql_using="gist",
    )

    # ===================
    # catchment_grid_cells table
    # ===================
    op.create_table(
        "catchment_grid_cells",
        sa.Column(
            "catchment_id",
            sa.String(64),
            sa.ForeignKey("catchments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "grid_cell_id",
            sa.String(64),
            sa.ForeignKey("grid_cells.id"),
            primary_key=True,
        ),
        comment="Derived catchment to grid-cell association",
    )
    # Lookup by cell (the primary key covers lookup by catchment)
    op.create_index(
        "idx_catchment_grid_cells_cell",
        "catchment_grid_cells",
        ["grid_cell_id"],
    )


def downgrade() -> None:
    """Drop catchment index tables."""
    op.drop_index("idx_catchment_grid_cells_cell", table_name="catchment_grid_cells")
    op.drop_table("catchment_grid_cells")

    op.drop_index("idx_grid_cells_boundary", table_name="grid_cells")
    op.drop_table("grid_cells")

    op.drop_index("idx_catchments_index_stale", table_name="catchments")
    op.drop_index("idx_catchments_boundary", table_name="catchments")
    op.drop_index("idx_catchments_name", table_name="catchments")
    op.drop_table("catchments")
