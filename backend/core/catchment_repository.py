"""
Catchment repository: the operations exposed to higher layers.

Every method opens its own scoped session (committed on success, rolled
back on error, always closed). Boundary writes and the re-index they
trigger run as two sequential transactions: the write commits first,
then the association is rebuilt. A failed re-index leaves the write in
place and is reported as ReindexError.
"""

import logging
import re
from collections.abc import Iterable
from uuid import UUID

from shapely.geometry.base import BaseGeometry
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core import association_index, catchment_store, name_filter, spatial_query
from core.catchment_store import Catchment
from core.config import Settings, get_settings
from core.database import get_db_session
from core.exceptions import (
    CatchmentIndexError,
    CatchmentNotFoundError,
    DuplicateNameError,
    ReindexError,
)
from models.schemas import CatchmentGeoJson, ReindexReport
from utils.geometry import (
    boundary_to_geojson,
    boundary_to_vertices,
    parse_multipolygon,
    polygon_from_vertices,
)

logger = logging.getLogger(__name__)

CatchmentId = str | UUID


def _to_geojson(catchment: Catchment) -> CatchmentGeoJson:
    return CatchmentGeoJson(
        id=catchment.id,
        name=catchment.name,
        geometry=boundary_to_geojson(catchment.boundary),
    )


class CatchmentRepository:
    """
    Catchment storage with grid-accelerated spatial queries.

    Parameters
    ----------
    session_factory : sessionmaker, optional
        Source of sessions; defaults to the configured database
    settings : Settings, optional
        Query and mutation settings; defaults to get_settings()
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    def _session(self):
        return get_db_session(self._session_factory)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self, catchment_id: CatchmentId, name: str | None, vertices: Iterable
    ) -> None:
        """
        Add a catchment with a single-polygon boundary.

        Raises
        ------
        MalformedGeometryError
            Vertices do not form a polygon (nothing is written)
        DuplicateNameError
            Name taken and uniqueness enforced
        ReindexError
            Catchment stored but its association could not be built
        """
        boundary = polygon_from_vertices(vertices)
        self._add(Catchment(id=str(catchment_id), name=name, boundary=boundary))

    def add_geojson(
        self, catchment_id: CatchmentId, name: str | None, geojson: str | dict
    ) -> None:
        """
        Add a catchment with a GeoJSON multipolygon boundary.

        Keeps holes and disjoint parts that a flat vertex list would lose.
        """
        boundary = parse_multipolygon(geojson)
        self._add(Catchment(id=str(catchment_id), name=name, boundary=boundary))

    def _add(self, catchment: Catchment) -> None:
        unique = self._settings.enforce_unique_names and catchment.name is not None
        try:
            with self._session() as db:
                if unique and catchment_store.name_exists(db, catchment.name):
                    raise DuplicateNameError(catchment.name)
                catchment_store.insert_catchment(db, catchment, unique_name=unique)
        except IntegrityError as e:
            # A concurrent writer claimed the name after our check
            if unique and catchment_store.is_name_conflict(e):
                raise DuplicateNameError(catchment.name) from e
            raise
        logger.info(f"Added catchment {catchment.id}")

        # After the catchment is committed, build its association
        self._reindex_after_write(catchment.id)

    def delete(self, catchment_id: CatchmentId) -> None:
        """
        Delete a catchment and its association entries.

        Raises
        ------
        CatchmentNotFoundError
            No such catchment
        """
        with self._session() as db:
            association_index.delete_associations(db, str(catchment_id))
            catchment_store.delete_catchment(db, str(catchment_id))
        logger.info(f"Deleted catchment {catchment_id}")

    def set_name(self, catchment_id: CatchmentId, name: str | None) -> None:
        """Rename a catchment. The association is not touched."""
        unique = self._settings.enforce_unique_names and name is not None
        try:
            with self._session() as db:
                if unique:
                    current = catchment_store.get_name(db, str(catchment_id))
                    if current != name and catchment_store.name_exists(db, name):
                        raise DuplicateNameError(name)
                catchment_store.update_name(
                    db, str(catchment_id), name, unique_name=unique
                )
        except IntegrityError as e:
            if unique and catchment_store.is_name_conflict(e):
                raise DuplicateNameError(name) from e
            raise

    def set_boundary(self, catchment_id: CatchmentId, vertices: Iterable) -> None:
        """
        Replace a boundary with a polygon built from vertices.

        Raises
        ------
        CatchmentNotFoundError
            No such catchment
        MalformedGeometryError
            Vertices do not form a polygon (nothing is written)
        ReindexError
            Boundary saved but association not refreshed
        """
        boundary = polygon_from_vertices(vertices)
        self._write_boundary(str(catchment_id), boundary)
        self._reindex_after_write(str(catchment_id))

    def set_boundary_geojson(
        self, catchment_id: CatchmentId, geojson: str | dict
    ) -> None:
        """
        Replace a boundary with a GeoJSON multipolygon.

        Re-indexes afterwards unless reindex_on_geojson_boundary is off.
        """
        boundary = parse_multipolygon(geojson)
        self._write_boundary(str(catchment_id), boundary)
        if self._settings.reindex_on_geojson_boundary:
            self._reindex_after_write(str(catchment_id))
        else:
            logger.info(
                f"Catchment {catchment_id} boundary replaced without re-index; "
                "association may be stale"
            )

    def _write_boundary(self, catchment_id: str, boundary: BaseGeometry) -> None:
        with self._session() as db:
            catchment_store.update_boundary(db, catchment_id, boundary)
        logger.info(f"Replaced boundary of catchment {catchment_id}")

    # ------------------------------------------------------------------
    # Association index
    # ------------------------------------------------------------------

    def reindex(self, catchment_id: CatchmentId) -> set[str]:
        """
        Rebuild a catchment's grid association from its current boundary.

        Returns
        -------
        set[str]
            New grid cell ids

        Raises
        ------
        CatchmentNotFoundError
            No such catchment
        MalformedGeometryError
            Stored boundary is invalid; previous entries are kept
        IndexUnavailableError
            Grid catalog unreachable; previous entries are kept
        """
        with self._session() as db:
            return association_index.reindex_catchment(db, str(catchment_id))

    def _reindex_after_write(self, catchment_id: str) -> None:
        try:
            self.reindex(catchment_id)
        except CatchmentNotFoundError:
            # Deleted concurrently; nothing left to index
            logger.info(f"Catchment {catchment_id} vanished before re-index")
        except (CatchmentIndexError, SQLAlchemyError) as e:
            logger.error(f"Re-index of catchment {catchment_id} failed: {e}")
            raise ReindexError(catchment_id, str(e)) from e

    def reindex_all(
        self, catchment_ids: Iterable[CatchmentId] | None = None
    ) -> ReindexReport:
        """
        Re-index many catchments, one transaction each.

        Failures are collected rather than raised.

        Parameters
        ----------
        catchment_ids : iterable, optional
            Catchments to re-index; defaults to all

        Returns
        -------
        ReindexReport
            Success count and failures by id
        """
        if catchment_ids is None:
            with self._session() as db:
                ids = list(
                    catchment_store.iter_catchment_ids(
                        db, fetch_size=self._settings.fetch_size
                    )
                )
        else:
            ids = [str(catchment_id) for catchment_id in catchment_ids]

        report = ReindexReport()
        for catchment_id in ids:
            try:
                self.reindex(catchment_id)
                report.reindexed += 1
            except (CatchmentIndexError, SQLAlchemyError) as e:
                logger.warning(f"Re-index of catchment {catchment_id} failed: {e}")
                report.failed[catchment_id] = str(e)

        logger.info(
            f"Re-indexed {report.reindexed}/{len(ids)} catchments, "
            f"{len(report.failed)} failed"
        )
        return report

    def is_index_stale(self, catchment_id: CatchmentId) -> bool:
        """Whether the catchment awaits a successful re-index."""
        with self._session() as db:
            return association_index.is_stale(db, str(catchment_id))

    def get_grid_cells(self, catchment_id: CatchmentId) -> set[str]:
        """Current (possibly stale) association entries of a catchment."""
        with self._session() as db:
            if not catchment_store.catchment_exists(db, str(catchment_id)):
                raise CatchmentNotFoundError(str(catchment_id))
            return association_index.grid_cells_for_catchment(db, str(catchment_id))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def exists(self, catchment_id: CatchmentId) -> bool:
        with self._session() as db:
            return catchment_store.catchment_exists(db, str(catchment_id))

    def exists_name(self, name: str) -> bool:
        with self._session() as db:
            return catchment_store.name_exists(db, name)

    def get(self, catchment_id: CatchmentId) -> Catchment | None:
        """Get a catchment, or None if it does not exist."""
        with self._session() as db:
            return catchment_store.load_catchment(db, str(catchment_id))

    def get_all(self) -> list[Catchment]:
        with self._session() as db:
            return list(
                catchment_store.iter_catchments(
                    db, fetch_size=self._settings.fetch_size
                )
            )

    def get_geojson(self, catchment_id: CatchmentId) -> CatchmentGeoJson:
        """Get a catchment with GeoJSON boundary; raises if missing."""
        with self._session() as db:
            catchment = catchment_store.require_catchment(db, str(catchment_id))
        return _to_geojson(catchment)

    def get_name(self, catchment_id: CatchmentId) -> str | None:
        with self._session() as db:
            return catchment_store.get_name(db, str(catchment_id))

    def get_boundary(self, catchment_id: CatchmentId) -> BaseGeometry:
        """Get the stored boundary geometry with holes and parts intact."""
        with self._session() as db:
            return catchment_store.require_catchment(db, str(catchment_id)).boundary

    def get_boundary_vertices(
        self, catchment_id: CatchmentId
    ) -> list[tuple[float, float]]:
        """
        Get the boundary as a flat vertex ring.

        Raises
        ------
        TopologyError
            Boundary has holes or several parts
        """
        return boundary_to_vertices(self.get_boundary(catchment_id))

    # ------------------------------------------------------------------
    # Spatial queries
    # ------------------------------------------------------------------

    def find_containing(self, point) -> list[Catchment]:
        """Catchments whose boundary contains the point."""
        with self._session() as db:
            return spatial_query.find_containing(
                db, point, fetch_size=self._settings.fetch_size
            )

    def find_ids_containing(self, point) -> set[str]:
        return {catchment.id for catchment in self.find_containing(point)}

    def find_containing_geojson(self, point) -> list[CatchmentGeoJson]:
        return [_to_geojson(c) for c in self.find_containing(point)]

    def find_within_radius(
        self, radius: float, center, strategy: str | None = None
    ) -> list[Catchment]:
        """
        Catchments intersecting a disk of the given radius.

        Parameters
        ----------
        radius : float
            Radius in coordinate units (degrees for lon/lat)
        center : Point | tuple[float, float] | LngLat
            Disk center
        strategy : {"gridded", "ungridded"}, optional
            Defaults to the configured radius_strategy
        """
        settings = self._settings
        with self._session() as db:
            return spatial_query.find_within_radius(
                db,
                radius,
                center,
                strategy=strategy or settings.radius_strategy,
                quad_segs=settings.disk_quad_segs,
                require_full_coverage=settings.require_full_grid_coverage,
                fetch_size=settings.fetch_size,
            )

    def find_within_radius_geojson(
        self, radius: float, center, strategy: str | None = None
    ) -> list[CatchmentGeoJson]:
        return [
            _to_geojson(c) for c in self.find_within_radius(radius, center, strategy)
        ]

    # ------------------------------------------------------------------
    # Name filters
    # ------------------------------------------------------------------

    def find_by_name_substring(self, substring: str) -> list[Catchment]:
        with self._session() as db:
            return name_filter.find_by_name_substring(
                db, substring, fetch_size=self._settings.fetch_size
            )

    def find_by_name_and_radius(
        self, substring: str, radius: float, center
    ) -> list[Catchment]:
        settings = self._settings
        with self._session() as db:
            return name_filter.find_by_name_and_radius(
                db,
                substring,
                radius,
                center,
                quad_segs=settings.disk_quad_segs,
                require_full_coverage=settings.require_full_grid_coverage,
                fetch_size=settings.fetch_size,
            )

    def find_by_name_regex(
        self, pattern: str | re.Pattern
    ) -> list[tuple[str, str | None]]:
        """
        Full-scan regex match on names; see name_filter.find_by_name_regex.

        Loads every catchment's id and name into memory.
        """
        with self._session() as db:
            return name_filter.find_by_name_regex(
                db,
                pattern,
                fetch_size=self._settings.fetch_size,
                warn_threshold=self._settings.regex_scan_warn_threshold,
            )
