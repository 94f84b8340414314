"""
SQLite schema for the release store.

Schema Design:
- releases: One row per tracked release cycle
- libraries: Per-release library rows, keyed by (release_id, id)
- changes: Per-release commits, keyed by (release_id, commit_id), each owned
  by one library of the same release
- check_runs: CI check runs on the release branch head, keyed by host id
- release_errors: Append-only log of failed syncs
- schema_info: Version tracking for migrations

Dates are stored as ISO 8601 UTC strings. Child tables reference their
release with ON DELETE CASCADE, but the gateway also deletes children
explicitly so the cascade never depends on connection pragmas.
"""

import sqlite3

from releasedash.core.releases.models import ReleaseState

# Schema version for migrations
SCHEMA_VERSION = 1

RELEASE_STATES = [state.value for state in ReleaseState]

_STATE_CHECK = ", ".join(f"'{state}'" for state in RELEASE_STATES)

# SQLite schema DDL
SCHEMA_DDL = f"""
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

CREATE TABLE IF NOT EXISTS releases (
    id TEXT PRIMARY KEY,
    release_name TEXT NOT NULL,
    release_operator TEXT NOT NULL,
    code_freeze_date TEXT NOT NULL,
    release_date TEXT NOT NULL,
    snapshot_branch_name TEXT NOT NULL DEFAULT '',
    snapshot_branch_link TEXT NOT NULL DEFAULT '',
    release_branch_name TEXT NOT NULL DEFAULT '',
    release_branch_link TEXT NOT NULL DEFAULT '',
    state TEXT NOT NULL DEFAULT 'SCHEDULED' CHECK (state IN ({_STATE_CHECK})),
    is_complete INTEGER NOT NULL DEFAULT 0,
    build_artifact_status TEXT NOT NULL DEFAULT '',
    build_artifact_conclusion TEXT NOT NULL DEFAULT '',
    build_artifact_link TEXT NOT NULL DEFAULT '',
    build_artifact_job_id TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_releases_name ON releases(release_name);
CREATE INDEX IF NOT EXISTS idx_releases_release_branch ON releases(release_branch_name);
CREATE INDEX IF NOT EXISTS idx_releases_snapshot_branch ON releases(snapshot_branch_name);

CREATE TABLE IF NOT EXISTS libraries (
    release_id TEXT NOT NULL REFERENCES releases(id) ON DELETE CASCADE,
    id TEXT NOT NULL,
    library_name TEXT NOT NULL,
    updated_version TEXT NOT NULL,
    opted_in INTEGER NOT NULL DEFAULT 0,
    opted_out INTEGER NOT NULL DEFAULT 0,
    library_group_release INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (release_id, id),
    CHECK (NOT (opted_in AND opted_out))
);

CREATE INDEX IF NOT EXISTS idx_libraries_name ON libraries(release_id, library_name);

CREATE TABLE IF NOT EXISTS changes (
    release_id TEXT NOT NULL REFERENCES releases(id) ON DELETE CASCADE,
    commit_id TEXT NOT NULL,
    library_id TEXT NOT NULL,
    commit_link TEXT NOT NULL DEFAULT '',
    pull_request_id TEXT NOT NULL DEFAULT '',
    pull_request_link TEXT NOT NULL DEFAULT '',
    author TEXT NOT NULL DEFAULT '',
    commit_title TEXT NOT NULL DEFAULT '',
    message TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (release_id, commit_id),
    FOREIGN KEY (release_id, library_id)
        REFERENCES libraries(release_id, id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_changes_library ON changes(release_id, library_id);

CREATE TABLE IF NOT EXISTS check_runs (
    id INTEGER PRIMARY KEY,
    release_id TEXT NOT NULL REFERENCES releases(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    head_sha TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT '',
    conclusion TEXT,
    output_title TEXT,
    https_url TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_check_runs_release ON check_runs(release_id);

CREATE TABLE IF NOT EXISTS release_errors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    release_id TEXT NOT NULL REFERENCES releases(id) ON DELETE CASCADE,
    message TEXT NOT NULL,
    stack_trace TEXT NOT NULL,
    context_msg TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_release_errors_release ON release_errors(release_id, timestamp);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create the database schema.

    Idempotent - safe to call multiple times.

    Args:
        conn: SQLite database connection
    """
    conn.executescript(SCHEMA_DDL)

    conn.execute(
        """
        INSERT OR REPLACE INTO schema_info (version, description)
        VALUES (?, ?)
        """,
        (SCHEMA_VERSION, "Releases, libraries, changes, check runs and release errors"),
    )

    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """
    Get the current schema version from the database.

    Returns:
        Current schema version, or None if schema_info table doesn't exist
    """
    try:
        cursor = conn.execute("SELECT MAX(version) AS version FROM schema_info")
        row = cursor.fetchone()
    except sqlite3.OperationalError:
        # schema_info table doesn't exist
        return None
    if row is None:
        return None
    version = row["version"] if isinstance(row, dict) else row[0]
    return version


def needs_migration(conn: sqlite3.Connection) -> bool:
    """
    Check if database needs migration to current schema version.

    Example:
        >>> import sqlite3
        >>> conn = sqlite3.connect(":memory:")
        >>> assert needs_migration(conn) is True  # No schema yet
        >>> create_schema(conn)
        >>> assert needs_migration(conn) is False  # Up to date
    """
    current_version = get_schema_version(conn)
    if current_version is None:
        return True
    return current_version < SCHEMA_VERSION
