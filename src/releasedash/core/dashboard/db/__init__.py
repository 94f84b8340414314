"""
Database layer for the release store.

Main components:
- schema.py: SQL schema definitions and migrations
- connection.py: Database connection management and query helpers
- gateway.py: Async ReleaseStore interface and its SQLite implementation

Usage:
    from releasedash.core.dashboard.db import SqliteReleaseStore

    store = SqliteReleaseStore(db_path)
    store.ensure_schema()
    releases = await store.list_releases()
"""

from releasedash.core.dashboard.db.connection import get_connection, init_db
from releasedash.core.dashboard.db.gateway import ReleaseStore, SqliteReleaseStore
from releasedash.core.dashboard.db.schema import SCHEMA_VERSION, create_schema

__all__ = [
    "ReleaseStore",
    "SqliteReleaseStore",
    "get_connection",
    "init_db",
    "create_schema",
    "SCHEMA_VERSION",
]
