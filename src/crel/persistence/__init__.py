"""CREL Persistence Module.

Provides database connectivity, the relational schema and tenant-scoped
repositories with an in-memory fallback.
"""

from crel.persistence.db import (
    DatabaseConfigError,
    begin_app_conn,
    create_app_engine,
    get_app_engine,
    get_database_url,
    init_schema,
    is_database_configured,
    reset_engines,
)

__all__ = [
    "DatabaseConfigError",
    "begin_app_conn",
    "create_app_engine",
    "get_app_engine",
    "get_database_url",
    "init_schema",
    "is_database_configured",
    "reset_engines",
]
