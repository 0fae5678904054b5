"""
Shared test fixtures for pytest.

Provides an in-memory SpatiaLite database with the catchment schema, a
repository bound to it, and a two-cell grid used across unit and
integration tests:

    A: x in [0, 1], y in [0, 1]
    B: x in [1, 2], y in [0, 1]
"""

import sqlite3
from unittest.mock import MagicMock

import pytest
from shapely.geometry import box

from core.catchment_repository import CatchmentRepository
from core.config import Settings, get_settings
from core.database import get_db_session, get_engine, make_session_factory
from core.grid_catalog import GridCell, insert_grid_cells
from core.tables import create_schema


def _spatialite_available() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        conn.enable_load_extension(True)
        conn.load_extension(get_settings().spatialite_library_path)
    except (AttributeError, sqlite3.OperationalError):
        return False
    finally:
        conn.close()
    return True


SPATIALITE_AVAILABLE = _spatialite_available()


@pytest.fixture
def mock_db():
    """Create mock database session."""
    return MagicMock()


@pytest.fixture
def engine():
    """Fresh in-memory SpatiaLite engine with all tables."""
    if not SPATIALITE_AVAILABLE:
        pytest.skip("SpatiaLite extension not available")
    eng = get_engine("sqlite://")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    """Session for direct module-level calls; rolled back on teardown."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def settings():
    """Settings isolated from the environment and .env files."""
    return Settings(_env_file=None, radius_strategy="gridded")


@pytest.fixture
def repository(session_factory, settings):
    return CatchmentRepository(session_factory, settings)


@pytest.fixture
def grid_ab(session_factory):
    """Seed grid cells A and B; returns the cells."""
    cells = [
        GridCell(id="A", boundary=box(0.0, 0.0, 1.0, 1.0)),
        GridCell(id="B", boundary=box(1.0, 0.0, 2.0, 1.0)),
    ]
    with get_db_session(session_factory) as session:
        insert_grid_cells(session, cells)
    return cells


@pytest.fixture
def two_part_geojson():
    """
    MultiPolygon with two disjoint parts; the first has a square hole.

    Part 1: [0.1, 0.9] x [0.1, 0.9] with hole [0.4, 0.6] x [0.4, 0.6]
    Part 2: [1.2, 1.8] x [0.2, 0.8]
    """
    return (
        '{"type": "MultiPolygon", "coordinates": ['
        "[[[0.1, 0.1], [0.9, 0.1], [0.9, 0.9], [0.1, 0.9], [0.1, 0.1]],"
        " [[0.4, 0.4], [0.4, 0.6], [0.6, 0.6], [0.6, 0.4], [0.4, 0.4]]],"
        " [[[1.2, 0.2], [1.8, 0.2], [1.8, 0.8], [1.2, 0.8], [1.2, 0.2]]]"
        "]}"
    )
