"""
Unit tests for core.grid_catalog module.

Tests cover cell lookup by point and geometry, coverage checks used for
narrowing, catalog failures and seeding validation.
"""

import pytest
from shapely.geometry import MultiPolygon, Point, Polygon, box
from sqlalchemy.exc import OperationalError

from core.exceptions import IndexUnavailableError, MalformedGeometryError
from core.grid_catalog import (
    GridCell,
    cells_containing,
    cells_intersecting,
    count_cells,
    covering_cells,
    insert_grid_cells,
)


class TestCellsContaining:
    """Tests for cells_containing function."""

    def test_interior_point(self, db, grid_ab):
        assert cells_containing(db, Point(0.5, 0.5)) == {"A"}

    def test_point_on_shared_edge_belongs_to_both(self, db, grid_ab):
        assert cells_containing(db, Point(1.0, 0.5)) == {"A", "B"}

    def test_point_outside_grid(self, db, grid_ab):
        assert cells_containing(db, Point(5.0, 5.0)) == set()

    def test_empty_catalog(self, db):
        assert cells_containing(db, Point(0.5, 0.5)) == set()


class TestCellsIntersecting:
    """Tests for cells_intersecting function."""

    def test_polygon_spanning_both_cells(self, db, grid_ab):
        assert cells_intersecting(db, box(0.5, 0.2, 1.5, 0.8)) == {"A", "B"}

    def test_multipart_shape_touching_one_cell(self, db, grid_ab):
        """Overall extent reaches into B but no part touches it."""
        shape = MultiPolygon(
            [
                Polygon([(0.1, 0.1), (0.9, 0.1), (0.1, 0.9)]),
                box(1.5, 1.5, 1.8, 1.8),
            ]
        )
        assert cells_intersecting(db, shape) == {"A"}

    def test_intersection_evaluated_by_database(self, mock_db):
        mock_db.execute.return_value.all.return_value = []

        assert cells_intersecting(mock_db, box(0, 0, 1, 1)) == set()

        query = mock_db.execute.call_args.args[0]
        assert "ST_Intersects" in str(query)


class TestCoveringCells:
    """Tests for covering_cells function."""

    def test_disk_fully_covered(self, db, grid_ab):
        disk = Point(1.0, 0.5).buffer(0.1)
        assert covering_cells(db, disk) == {"A", "B"}

    def test_empty_catalog_returns_none(self, db):
        assert covering_cells(db, Point(0.5, 0.5).buffer(0.1)) is None

    def test_point_outside_grid_returns_none(self, db, grid_ab):
        assert covering_cells(db, Point(5.0, 5.0)) is None

    def test_partial_coverage_returns_none(self, db, grid_ab):
        # Disk pokes out above y=1
        disk = Point(0.5, 0.95).buffer(0.2)
        assert covering_cells(db, disk) is None

    def test_partial_coverage_allowed(self, db, grid_ab):
        disk = Point(0.5, 0.95).buffer(0.2)
        assert covering_cells(db, disk, require_full_coverage=False) == {"A"}

    def test_point_skips_coverage_check(self, db, grid_ab):
        assert covering_cells(db, Point(0.5, 0.5)) == {"A"}


class TestCatalogUnavailable:
    """Tests for database failures while reading the catalog."""

    def test_query_failure_raises_index_unavailable(self, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(IndexUnavailableError, match="Grid catalog unavailable"):
            cells_containing(mock_db, Point(0.5, 0.5))

        mock_db.rollback.assert_called_once()

    def test_count_failure_raises_index_unavailable(self, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(IndexUnavailableError):
            count_cells(mock_db)


class TestInsertGridCells:
    """Tests for insert_grid_cells function."""

    def test_count_after_insert(self, db, grid_ab):
        assert count_cells(db) == 2

    def test_inserts_and_returns_count(self, db):
        n = insert_grid_cells(db, [GridCell(id="X", boundary=box(5, 5, 6, 6))])

        assert n == 1
        assert cells_containing(db, Point(5.5, 5.5)) == {"X"}

    def test_empty_input(self, mock_db):
        assert insert_grid_cells(mock_db, []) == 0
        mock_db.execute.assert_not_called()

    def test_non_polygon_rejected(self, mock_db):
        cell = GridCell(id="P", boundary=Point(0, 0))

        with pytest.raises(MalformedGeometryError, match="must be a Polygon"):
            insert_grid_cells(mock_db, [cell])
        mock_db.execute.assert_not_called()

    def test_invalid_polygon_rejected(self, mock_db):
        bowtie = Polygon([(0, 0), (1, 1), (1, 0), (0, 1)])

        with pytest.raises(MalformedGeometryError):
            insert_grid_cells(mock_db, [GridCell(id="Z", boundary=bowtie)])
