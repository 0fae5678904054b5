"""
Pydantic models exchanged with higher layers.

Defines validated point input and GeoJSON-shaped catchment output for
the catchment index, plus the re-index summary produced by bulk jobs.
"""

from typing import Any

from pydantic import BaseModel, Field
from shapely.geometry import Point


class LngLat(BaseModel):
    """
    Point in WGS84 longitude/latitude.

    Attributes
    ----------
    longitude : float
        Longitude in decimal degrees, range -180 to 180
    latitude : float
        Latitude in decimal degrees, range -90 to 90
    """

    longitude: float = Field(
        ...,
        ge=-180,
        le=180,
        description="Longitude in WGS84 (decimal degrees)",
        examples=[21.01],
    )
    latitude: float = Field(
        ...,
        ge=-90,
        le=90,
        description="Latitude in WGS84 (decimal degrees)",
        examples=[52.23],
    )

    def to_point(self) -> Point:
        """Shapely Point in (x=lon, y=lat) order."""
        return Point(self.longitude, self.latitude)


class CatchmentGeoJson(BaseModel):
    """
    Catchment with its boundary as a GeoJSON geometry.

    Attributes
    ----------
    id : str
        Catchment identity
    name : str, optional
        Catchment name
    geometry : dict
        GeoJSON Polygon or MultiPolygon
    """

    id: str = Field(..., description="Catchment identity")
    name: str | None = Field(None, description="Catchment name")
    geometry: dict[str, Any] = Field(
        ..., description="Boundary as GeoJSON Polygon or MultiPolygon"
    )

    def to_feature(self) -> dict[str, Any]:
        """GeoJSON Feature with id and name as properties."""
        return {
            "type": "Feature",
            "geometry": self.geometry,
            "properties": {"id": self.id, "name": self.name},
        }


class ReindexReport(BaseModel):
    """
    Outcome of re-indexing a batch of catchments.

    Attributes
    ----------
    reindexed : int
        Catchments whose association was rebuilt
    failed : dict[str, str]
        Catchment id -> failure reason
    """

    reindexed: int = Field(0, ge=0, description="Successfully re-indexed")
    failed: dict[str, str] = Field(
        default_factory=dict, description="Failures by catchment id"
    )

    @property
    def ok(self) -> bool:
        return not self.failed
