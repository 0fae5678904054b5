"""
Pydantic models for catchment index inputs and outputs.
"""

from models.schemas import (
    CatchmentGeoJson,
    LngLat,
    ReindexReport,
)

__all__ = [
    "CatchmentGeoJson",
    "LngLat",
    "ReindexReport",
]
