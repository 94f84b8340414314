"""
SQLite connections for the release store.

SqliteReleaseStore runs every operation in a worker thread, so a connection
is opened per operation and never shared between threads. Each connection:
- runs in WAL mode, so dashboard reads do not block a sync's writes
- enforces the foreign keys from dependent rows to their release
- waits for a concurrent writer instead of failing with "database is locked"
- returns rows as dicts

Usage:
    with get_connection(db_path) as conn:
        errored = execute_query(conn, "SELECT id FROM releases WHERE state = ?", ("ERROR",))
        conn.commit()
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from releasedash.core.dashboard.db.schema import create_schema, needs_migration

logger = logging.getLogger(__name__)

# How long a connection waits for another sync's write transaction
BUSY_TIMEOUT_MS = 5000

Params = tuple[Any, ...] | dict[str, Any]


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Row factory keyed by column name, so rows map straight onto model fields."""
    return {column[0]: value for column, value in zip(cursor.description, row)}


def open_connection(db_path: Path) -> sqlite3.Connection:
    """Open and configure a connection to an existing database file."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    conn.row_factory = dict_factory
    return conn


def init_db(db_path: Path | str, *, force_recreate: bool = False) -> sqlite3.Connection:
    """
    Create the release database and its schema.

    Safe to call on an existing database: the schema is only applied when
    the stored schema version is missing or out of date.

    Args:
        db_path: Path to the SQLite database file
        force_recreate: Delete an existing database first (drops all releases)

    Returns:
        Configured connection; the caller closes it
    """
    db_path = Path(db_path)
    if force_recreate and db_path.exists():
        logger.warning("Recreating release database at %s", db_path)
        db_path.unlink()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = open_connection(db_path)
    if needs_migration(conn):
        logger.info("Applying release store schema to %s", db_path)
        create_schema(conn)
    return conn


@contextmanager
def get_connection(db_path: Path | str) -> Iterator[sqlite3.Connection]:
    """
    Connection for one store operation.

    The caller commits; anything not committed when an exception escapes is
    rolled back. The connection is always closed on exit.
    """
    db_path = Path(db_path)
    if not db_path.exists():
        init_db(db_path).close()

    conn = open_connection(db_path)
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute_query(
    conn: sqlite3.Connection, query: str, params: Params | None = None
) -> list[dict[str, Any]]:
    """All rows of ``query``."""
    return conn.execute(query, params or ()).fetchall()


def execute_one(
    conn: sqlite3.Connection, query: str, params: Params | None = None
) -> dict[str, Any] | None:
    """First row of ``query``, or None."""
    return conn.execute(query, params or ()).fetchone()  # type: ignore[no-any-return]
