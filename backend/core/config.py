"""
Application configuration module.

Loads settings from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes
    ----------
    database_url : str
        Database connection string (PostgreSQL in production)
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR)
    radius_strategy : str
        "gridded" narrows radius queries via the grid association,
        "ungridded" tests every catchment against the disk
    disk_quad_segs : int
        Segments per quarter circle when buffering a point into a disk
    require_full_grid_coverage : bool
        Only narrow when the grid cells cover the whole query region
    reindex_on_geojson_boundary : bool
        Re-index after GeoJSON multipolygon boundary updates
    enforce_unique_names : bool
        Reject catchment names that already exist
    regex_scan_warn_threshold : int
        Row count above which a regex name scan logs a warning
    fetch_size : int
        Rows fetched per batch when streaming catchments
    spatialite_library_path : str
        SpatiaLite extension loaded into SQLite connections
    """

    # Database - can be set via DATABASE_URL or individual components
    database_url_override: Optional[str] = None
    postgres_db: str = "catchment_db"
    postgres_user: str = "catchment_user"
    postgres_password: str = "catchment_password"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    log_level: str = "INFO"

    # SQLite databases need the SpatiaLite extension for geometry columns
    spatialite_library_path: str = "mod_spatialite"

    # Spatial queries
    radius_strategy: Literal["gridded", "ungridded"] = "gridded"
    disk_quad_segs: int = Field(default=16, ge=1)
    require_full_grid_coverage: bool = True

    # Catchment mutations
    reindex_on_geojson_boundary: bool = True
    enforce_unique_names: bool = False

    # Scans
    regex_scan_warn_threshold: int = 10_000
    fetch_size: int = Field(default=1_000, ge=1)

    @property
    def database_url(self) -> str:
        """Build database connection URL."""
        # Check for DATABASE_URL environment variable first (used in Docker)
        env_url = os.getenv("DATABASE_URL")
        if env_url:
            return env_url
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns
    -------
    Settings
        Application settings
    """
    return Settings()
