"""Database connectivity for CREL.

Provides engine creation, transactional connections and schema bootstrap.

Environment Variables:
    CREL_DATABASE_URL: SQLAlchemy URL (PostgreSQL in production, SQLite for
        local use). When unset, services fall back to in-memory repositories.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine

from crel.persistence.schema import metadata

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

CREL_DATABASE_URL_ENV = "CREL_DATABASE_URL"

_app_engine: Engine | None = None


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid.

    Operations requiring the database must not proceed without it.
    """

    pass


def is_database_configured() -> bool:
    """Return True if CREL_DATABASE_URL is set."""
    return bool(os.environ.get(CREL_DATABASE_URL_ENV))


def _normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """Get the database URL from environment.

    Raises:
        DatabaseConfigError: If CREL_DATABASE_URL is not set.
    """
    url = os.environ.get(CREL_DATABASE_URL_ENV)
    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {CREL_DATABASE_URL_ENV} environment variable."
        )
    return _normalize_url(url)


def create_app_engine(url: str) -> Engine:
    """Create an engine with settings appropriate for the URL's backend."""
    url = _normalize_url(url)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True, echo=False)


def get_app_engine() -> Engine:
    """Get or create the application database engine.

    Raises:
        DatabaseConfigError: If CREL_DATABASE_URL is not set.
    """
    global _app_engine

    if _app_engine is None:
        _app_engine = create_app_engine(get_database_url())
        logger.info("Created application database engine")

    return _app_engine


@contextmanager
def begin_app_conn() -> Generator[Connection, None, None]:
    """Yield a connection inside a transaction; commit on success, roll back on error.

    Raises:
        DatabaseConfigError: If database is not configured.
    """
    engine = get_app_engine()
    with engine.connect() as conn, conn.begin():
        yield conn


def init_schema(engine: Engine) -> None:
    """Create all CREL tables and indexes that do not exist yet."""
    metadata.create_all(engine)
    logger.info("Initialized CREL schema (%d tables)", len(metadata.tables))


def reset_engines() -> None:
    """Dispose the cached engine. Used by tests."""
    global _app_engine
    if _app_engine is not None:
        _app_engine.dispose()
        _app_engine = None
