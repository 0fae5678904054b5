"""
Database connection and session management.

Provides SQLAlchemy engine and session factory with connection pooling.
Every catchment operation runs inside one scoped session obtained from
get_db_session() and released on every exit path.
"""

from collections.abc import Generator
from contextlib import contextmanager

from geoalchemy2.admin.dialects.sqlite import init_spatialite
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Turn on FK enforcement so association rows cascade on delete."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _load_spatialite(dbapi_connection, connection_record):
    """Load SpatiaLite and create its metadata tables (WGS84 SRIDs only)."""
    dbapi_connection.enable_load_extension(True)
    dbapi_connection.load_extension(get_settings().spatialite_library_path)
    dbapi_connection.enable_load_extension(False)
    init_spatialite(dbapi_connection, init_mode="WGS84")


def get_engine(database_url: str | None = None) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Parameters
    ----------
    database_url : str, optional
        Connection string; defaults to the configured database

    Returns
    -------
    Engine
        SQLAlchemy engine instance
    """
    settings = get_settings()
    url = database_url or settings.database_url
    echo = settings.log_level == "DEBUG"

    if url.startswith("sqlite"):
        # In-memory databases live in a single connection
        pool_kwargs = {}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            pool_kwargs["poolclass"] = StaticPool
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=echo,
            **pool_kwargs,
        )
        event.listen(engine, "connect", _load_spatialite)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=3600,
        echo=echo,
    )


# Global engine instance (lazy initialization)
_engine = None


def get_db_engine() -> Engine:
    """
    Get or create the database engine.

    Returns
    -------
    Engine
        SQLAlchemy engine instance
    """
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def make_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to a specific engine."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@contextmanager
def get_db_session(
    session_factory: sessionmaker | None = None,
) -> Generator[Session, None, None]:
    """
    Context manager for database session.

    Commits on success, rolls back on any exception and always closes
    the session.

    Parameters
    ----------
    session_factory : sessionmaker, optional
        Factory to open the session from; defaults to the global engine

    Yields
    ------
    Session
        SQLAlchemy session

    Examples
    --------
    >>> with get_db_session() as db:
    ...     db.execute(text("SELECT 1"))
    """
    if session_factory is None:
        SessionLocal.configure(bind=get_db_engine())
        session_factory = SessionLocal
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
