"""
Unit tests for the grid seeding and re-index scripts.
"""

import json

import pytest
from shapely.geometry import box, mapping

from core.association_index import is_stale, reindex_catchment
from core.catchment_store import Catchment, insert_catchment
from core.exceptions import CatchmentIndexError, MalformedGeometryError
from core.grid_catalog import GridCell, count_cells
from scripts import reindex_catchments, seed_grid_cells


def _feature(cell_id, geometry, id_property="id"):
    return {
        "type": "Feature",
        "properties": {id_property: cell_id},
        "geometry": mapping(geometry),
    }


@pytest.fixture
def grid_file(tmp_path):
    path = tmp_path / "grid.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    _feature("A", box(0, 0, 1, 1)),
                    _feature("B", box(1, 0, 2, 1)),
                ],
            }
        )
    )
    return path


class TestLoadGridCells:
    """Tests for load_grid_cells function."""

    def test_load(self, grid_file):
        cells = seed_grid_cells.load_grid_cells(grid_file)

        assert [c.id for c in cells] == ["A", "B"]
        assert cells[1].boundary.bounds == (1.0, 0.0, 2.0, 1.0)

    def test_custom_id_property(self, tmp_path):
        path = tmp_path / "grid.geojson"
        path.write_text(
            json.dumps(
                {
                    "type": "FeatureCollection",
                    "features": [_feature(7, box(0, 0, 1, 1), "cell_id")],
                }
            )
        )

        cells = seed_grid_cells.load_grid_cells(path, id_property="cell_id")

        assert cells[0].id == "7"

    def test_duplicate_id(self, tmp_path):
        path = tmp_path / "grid.geojson"
        path.write_text(
            json.dumps(
                {
                    "type": "FeatureCollection",
                    "features": [
                        _feature("A", box(0, 0, 1, 1)),
                        _feature("A", box(1, 0, 2, 1)),
                    ],
                }
            )
        )

        with pytest.raises(MalformedGeometryError, match="Duplicate cell id"):
            seed_grid_cells.load_grid_cells(path)

    def test_non_polygon_cell(self, tmp_path):
        path = tmp_path / "grid.geojson"
        path.write_text(
            json.dumps(
                {
                    "type": "FeatureCollection",
                    "features": [
                        {
                            "type": "Feature",
                            "properties": {"id": "P"},
                            "geometry": {"type": "Point", "coordinates": [0, 0]},
                        }
                    ],
                }
            )
        )

        with pytest.raises(MalformedGeometryError, match="must be a Polygon"):
            seed_grid_cells.load_grid_cells(path)

    def test_not_a_feature_collection(self, tmp_path):
        path = tmp_path / "grid.geojson"
        path.write_text(json.dumps({"type": "Polygon", "coordinates": []}))

        with pytest.raises(MalformedGeometryError):
            seed_grid_cells.load_grid_cells(path)


class TestSeedGridCells:
    """Tests for seed_grid_cells function."""

    def test_seed_marks_catchments_stale(self, db):
        catchment = Catchment(id="c1", name=None, boundary=box(0.1, 0.1, 0.9, 0.9))
        insert_catchment(db, catchment)
        reindex_catchment(db, "c1")
        assert not is_stale(db, "c1")

        n = seed_grid_cells.seed_grid_cells(
            db, [GridCell(id="A", boundary=box(0, 0, 1, 1))]
        )

        assert n == 1
        assert count_cells(db) == 1
        assert is_stale(db, "c1")

    def test_seeding_twice_rejected(self, db, grid_ab):
        with pytest.raises(CatchmentIndexError, match="already seeded"):
            seed_grid_cells.seed_grid_cells(
                db, [GridCell(id="C", boundary=box(2, 0, 3, 1))]
            )

    def test_main_dry_run(self, grid_file):
        assert seed_grid_cells.main(["--input", str(grid_file), "--dry-run"]) == 0

    def test_main_missing_file(self, tmp_path):
        missing = tmp_path / "missing.geojson"
        assert seed_grid_cells.main(["--input", str(missing)]) == 1


class TestReindexMain:
    """Tests for reindex_catchments.main."""

    def test_all_succeed(self, repository, grid_ab):
        repository.add("c1", None, [(0.1, 0.1), (0.9, 0.1), (0.9, 0.9)])

        assert reindex_catchments.main([], repository=repository) == 0

    def test_failure_exit_code(self, repository, grid_ab):
        repository.add("c1", None, [(0.1, 0.1), (0.9, 0.1), (0.9, 0.9)])

        argv = ["--catchment-id", "c1", "--catchment-id", "nope"]
        assert reindex_catchments.main(argv, repository=repository) == 1
