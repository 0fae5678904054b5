"""
Unit tests for core.name_filter module.
"""

import logging
import re

import pytest
from shapely.geometry import box

from core.association_index import reindex_catchment
from core.catchment_store import Catchment, insert_catchment
from core.database import get_db_session
from core.name_filter import (
    find_by_name_and_radius,
    find_by_name_regex,
    find_by_name_substring,
)


@pytest.fixture
def named(session_factory, grid_ab):
    """Committed, indexed catchments with a mix of names."""
    records = [
        ("c1", "North Basin", box(0.1, 0.1, 0.4, 0.4)),
        ("c2", "South Basin", box(1.2, 0.2, 1.8, 0.8)),
        ("c3", "Harbor", box(0.5, 0.5, 0.9, 0.9)),
        ("c4", None, box(0.1, 0.6, 0.3, 0.8)),
        ("c5", "100% Basin_x", box(5.0, 5.0, 6.0, 6.0)),
    ]
    with get_db_session(session_factory) as session:
        for catchment_id, name, boundary in records:
            insert_catchment(
                session, Catchment(id=catchment_id, name=name, boundary=boundary)
            )
            reindex_catchment(session, catchment_id)
    return records


def _ids(catchments):
    return [c.id for c in catchments]


class TestFindByNameSubstring:
    """Tests for find_by_name_substring function."""

    def test_matches_sorted_by_id(self, db, named):
        assert _ids(find_by_name_substring(db, "Basin")) == ["c1", "c2", "c5"]

    def test_no_match(self, db, named):
        assert find_by_name_substring(db, "Lagoon") == []

    def test_percent_matched_literally(self, db, named):
        assert _ids(find_by_name_substring(db, "%")) == ["c5"]

    def test_underscore_matched_literally(self, db, named):
        assert _ids(find_by_name_substring(db, "n_x")) == ["c5"]

    def test_unnamed_catchment_never_matches(self, db, named):
        assert "c4" not in _ids(find_by_name_substring(db, ""))


class TestFindByNameAndRadius:
    """Tests for find_by_name_and_radius function."""

    def test_name_and_disk_must_both_match(self, db, named):
        # Harbor intersects the disk but its name does not match
        result = find_by_name_and_radius(db, "Basin", 0.3, (0.5, 0.5))
        assert _ids(result) == ["c1"]

    def test_disk_without_matching_names(self, db, named):
        assert find_by_name_and_radius(db, "Lagoon", 1.0, (1.0, 0.5)) == []

    def test_matches_outside_grid(self, db, named):
        result = find_by_name_and_radius(db, "Basin", 1.0, (5.5, 5.5))
        assert _ids(result) == ["c5"]

    def test_invalid_radius(self, db, named):
        with pytest.raises(ValueError):
            find_by_name_and_radius(db, "Basin", -1.0, (0.5, 0.5))


class TestFindByNameRegex:
    """Tests for find_by_name_regex function."""

    def test_anchored_pattern(self, db, session_factory):
        with get_db_session(session_factory) as session:
            for catchment_id, name in [
                ("c1", "North Basin"),
                ("c2", "South Basin"),
                ("c3", "Harbor"),
            ]:
                insert_catchment(
                    session,
                    Catchment(id=catchment_id, name=name, boundary=box(0, 0, 1, 1)),
                )

        assert find_by_name_regex(db, r"^.*Basin$") == [
            ("c1", "North Basin"),
            ("c2", "South Basin"),
        ]

    def test_search_semantics(self, db, named):
        result = find_by_name_regex(db, "orth")
        assert result == [("c1", "North Basin")]

    def test_missing_name_matched_as_empty(self, db, named):
        assert find_by_name_regex(db, r"^$") == [("c4", None)]

    def test_compiled_pattern(self, db, named):
        result = find_by_name_regex(db, re.compile("harbor", re.IGNORECASE))
        assert result == [("c3", "Harbor")]

    def test_invalid_pattern(self, db, named):
        with pytest.raises(re.error):
            find_by_name_regex(db, "(unclosed")

    def test_large_scan_logs_warning(self, db, named, caplog):
        with caplog.at_level(logging.WARNING, logger="core.name_filter"):
            find_by_name_regex(db, "Basin", warn_threshold=2)

        assert "scanned 5 catchments in memory" in caplog.text

    def test_small_scan_no_warning(self, db, named, caplog):
        with caplog.at_level(logging.WARNING, logger="core.name_filter"):
            find_by_name_regex(db, "Basin")

        assert "scanned" not in caplog.text
