"""
Persistence gateway for releases and their dependent records.

ReleaseStore is the async interface the sync engine and the API depend on.
SqliteReleaseStore implements it over the SQLite schema in schema.py: every
operation runs in a worker thread on its own connection and commits as one
transaction against one logical collection. Nothing spans collections, so a
sync that fails halfway is repaired by running it again.

Usage:
    store = SqliteReleaseStore(Path(".releasedash/releases.db"))
    store.ensure_schema()

    release = await store.get_release(release_id)
    await store.replace_libraries(release.id, libraries)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, TypeVar

from releasedash.core.dashboard.db.connection import (
    execute_one,
    execute_query,
    get_connection,
    init_db,
)
from releasedash.core.exceptions import (
    DuplicateReleaseNameError,
    ReleaseNotFoundError,
    ReleaseValidationError,
    UnknownLibraryError,
)
from releasedash.core.github.models import ChangeEntry
from releasedash.core.releases.models import (
    BranchNaming,
    BuildArtifact,
    Change,
    CheckRun,
    Library,
    LibraryMetadata,
    LibraryView,
    Release,
    ReleaseDraft,
    ReleaseErrorRecord,
    ReleasePatch,
    ReleaseState,
    ReleaseView,
    library_id,
    parse_commit_title,
)
from releasedash.core.releases.validation import (
    ValidationErrorKind,
    ValidationIssue,
    is_valid_release_name,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReleaseStore(Protocol):
    """Async persistence interface for releases."""

    async def get_release(self, release_id: str) -> Release: ...

    async def release_exists(self, release_id: str) -> bool: ...

    async def get_release_id_by_name(self, release_name: str) -> str | None: ...

    async def get_release_id_by_branch(self, branch_name: str) -> str | None: ...

    async def create_releases(self, drafts: list[ReleaseDraft]) -> list[Release]: ...

    async def list_releases(self) -> list[Release]: ...

    async def replace_libraries(
        self, release_id: str, libraries: dict[str, LibraryMetadata]
    ) -> list[Library]: ...

    async def replace_changes(
        self, release_id: str, changes_by_library: dict[str, list[ChangeEntry]]
    ) -> int: ...

    async def replace_check_runs(self, release_id: str, runs: list[CheckRun]) -> int: ...

    async def update_release(self, release_id: str, patch: ReleasePatch) -> Release: ...

    async def delete_release_cascade(self, release_id: str) -> None: ...

    async def record_error(
        self, release_id: str, message: str, stack_trace: str, context_msg: str
    ) -> ReleaseErrorRecord: ...

    async def list_libraries(self, release_id: str) -> list[Library]: ...

    async def list_changes(self, release_id: str) -> list[Change]: ...

    async def list_check_runs(self, release_id: str) -> list[CheckRun]: ...

    async def list_release_errors(self, release_id: str) -> list[ReleaseErrorRecord]: ...

    async def get_releases_denormalized(self) -> list[ReleaseView]: ...


def _to_db_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_db_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _release_from_row(row: dict[str, Any]) -> Release:
    return Release(
        id=row["id"],
        release_name=row["release_name"],
        release_operator=row["release_operator"],
        code_freeze_date=_from_db_datetime(row["code_freeze_date"]),
        release_date=_from_db_datetime(row["release_date"]),
        snapshot_branch_name=row["snapshot_branch_name"],
        snapshot_branch_link=row["snapshot_branch_link"],
        release_branch_name=row["release_branch_name"],
        release_branch_link=row["release_branch_link"],
        state=ReleaseState(row["state"]),
        is_complete=bool(row["is_complete"]),
        build_artifact=BuildArtifact(
            status=row["build_artifact_status"],
            conclusion=row["build_artifact_conclusion"],
            link=row["build_artifact_link"],
            job_id=row["build_artifact_job_id"],
        ),
    )


def _release_to_row(release: Release) -> dict[str, Any]:
    return {
        "id": release.id,
        "release_name": release.release_name,
        "release_operator": release.release_operator,
        "code_freeze_date": _to_db_datetime(release.code_freeze_date),
        "release_date": _to_db_datetime(release.release_date),
        "snapshot_branch_name": release.snapshot_branch_name,
        "snapshot_branch_link": release.snapshot_branch_link,
        "release_branch_name": release.release_branch_name,
        "release_branch_link": release.release_branch_link,
        "state": release.state.value,
        "is_complete": int(release.is_complete),
        "build_artifact_status": release.build_artifact.status,
        "build_artifact_conclusion": release.build_artifact.conclusion,
        "build_artifact_link": release.build_artifact.link,
        "build_artifact_job_id": release.build_artifact.job_id,
    }


def _library_from_row(row: dict[str, Any]) -> Library:
    return Library(
        id=row["id"],
        release_id=row["release_id"],
        library_name=row["library_name"],
        updated_version=row["updated_version"],
        opted_in=bool(row["opted_in"]),
        opted_out=bool(row["opted_out"]),
        library_group_release=bool(row["library_group_release"]),
    )


def _error_from_row(row: dict[str, Any]) -> ReleaseErrorRecord:
    return ReleaseErrorRecord(
        id=row["id"],
        release_id=row["release_id"],
        message=row["message"],
        stack_trace=row["stack_trace"],
        context_msg=row["context_msg"],
        timestamp=_from_db_datetime(row["timestamp"]),
    )


class SqliteReleaseStore:
    """
    SQLite implementation of ReleaseStore.

    Example:
        >>> store = SqliteReleaseStore(tmp_path / "releases.db")
        >>> store.ensure_schema()
        >>> [created] = await store.create_releases([draft])
        >>> (await store.get_release(created.id)).state
        <ReleaseState.SCHEDULED: 'SCHEDULED'>
    """

    def __init__(self, db_path: Path | str, naming: BranchNaming | None = None) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            naming: Branch naming used to derive branch fields from release names
        """
        self.db_path = Path(db_path)
        self.naming = naming or BranchNaming()

    def ensure_schema(self) -> None:
        """Create the database and schema if needed."""
        init_db(self.db_path).close()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(func, *args)

    # Releases

    def _get_release(self, release_id: str) -> Release:
        with get_connection(self.db_path) as conn:
            row = execute_one(conn, "SELECT * FROM releases WHERE id = ?", (release_id,))
        if row is None:
            raise ReleaseNotFoundError(release_id)
        return _release_from_row(row)

    async def get_release(self, release_id: str) -> Release:
        """
        Load one release.

        Raises:
            ReleaseNotFoundError: If no release has this id
        """
        return await self._run(self._get_release, release_id)

    def _release_exists(self, release_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            row = execute_one(conn, "SELECT 1 AS found FROM releases WHERE id = ?", (release_id,))
        return row is not None

    async def release_exists(self, release_id: str) -> bool:
        return await self._run(self._release_exists, release_id)

    def _get_release_id_by_name(self, release_name: str) -> str | None:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn, "SELECT id FROM releases WHERE release_name = ?", (release_name,)
            )
        if len(rows) > 1:
            raise DuplicateReleaseNameError(release_name, len(rows))
        return rows[0]["id"] if rows else None

    async def get_release_id_by_name(self, release_name: str) -> str | None:
        """
        Look up a release id by name.

        Raises:
            DuplicateReleaseNameError: If more than one release has this name
        """
        return await self._run(self._get_release_id_by_name, release_name)

    def _get_release_id_by_branch(self, branch_name: str) -> str | None:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn,
                """
                SELECT id FROM releases
                WHERE release_branch_name = ? OR snapshot_branch_name = ?
                """,
                (branch_name, branch_name),
            )
        if len(rows) > 1:
            logger.warning(f"Branch {branch_name} matches {len(rows)} releases, using the first")
        return rows[0]["id"] if rows else None

    async def get_release_id_by_branch(self, branch_name: str) -> str | None:
        """Look up the release tracking a snapshot or release branch."""
        return await self._run(self._get_release_id_by_branch, branch_name)

    def _create_releases(self, drafts: list[ReleaseDraft]) -> list[Release]:
        releases = [
            Release(
                id=uuid.uuid4().hex,
                release_name=draft.release_name,
                release_operator=draft.release_operator,
                code_freeze_date=draft.code_freeze_date,
                release_date=draft.release_date,
                state=ReleaseState.SCHEDULED,
                **self.naming.branch_fields(draft.release_name),
            )
            for draft in drafts
        ]
        with get_connection(self.db_path) as conn:
            for release in releases:
                row = _release_to_row(release)
                columns = ", ".join(row)
                placeholders = ", ".join(f":{name}" for name in row)
                conn.execute(f"INSERT INTO releases ({columns}) VALUES ({placeholders})", row)
            conn.commit()
        return releases

    async def create_releases(self, drafts: list[ReleaseDraft]) -> list[Release]:
        """
        Insert new releases in one transaction.

        New releases start SCHEDULED with branch fields derived from their
        name and an empty build artifact; the first sync fills that in.
        """
        releases = await self._run(self._create_releases, drafts)
        logger.info(f"Created {len(releases)} releases")
        return releases

    def _list_releases(self) -> list[Release]:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn, "SELECT * FROM releases ORDER BY code_freeze_date, release_name"
            )
        return [_release_from_row(row) for row in rows]

    async def list_releases(self) -> list[Release]:
        return await self._run(self._list_releases)

    def _update_release(self, release_id: str, patch: ReleasePatch) -> Release:
        changes = patch.changes()
        with get_connection(self.db_path) as conn:
            row = execute_one(conn, "SELECT * FROM releases WHERE id = ?", (release_id,))
            if row is None:
                raise ReleaseNotFoundError(release_id)
            current = _release_from_row(row)

            merged_fields = current.model_dump()
            merged_fields.update(
                {name: value for name, value in changes.items() if value is not None}
            )

            touches_schedule = any(
                name in changes for name in ("release_name", "code_freeze_date", "release_date")
            )
            if touches_schedule:
                issues = []
                if not is_valid_release_name(merged_fields["release_name"]):
                    issues.append(
                        ValidationIssue(
                            kind=ValidationErrorKind.INVALID_RELEASE_NAME,
                            offending_release={"releaseName": merged_fields["release_name"]},
                        )
                    )
                renamed = merged_fields["release_name"] != current.release_name
                if renamed and execute_one(
                    conn,
                    "SELECT id FROM releases WHERE release_name = ? AND id != ?",
                    (merged_fields["release_name"], release_id),
                ):
                    issues.append(
                        ValidationIssue(
                            kind=ValidationErrorKind.DUPLICATE_RELEASE_NAMES,
                            offending_release={"releaseName": merged_fields["release_name"]},
                        )
                    )
                if merged_fields["release_date"] <= merged_fields["code_freeze_date"]:
                    issues.append(
                        ValidationIssue(
                            kind=ValidationErrorKind.CODEFREEZE_AFTER_RELEASE,
                            offending_release={"releaseName": merged_fields["release_name"]},
                        )
                    )
                if issues:
                    raise ReleaseValidationError(issues)

            if changes.get("release_name") and changes["release_name"] != current.release_name:
                merged_fields.update(self.naming.branch_fields(merged_fields["release_name"]))

            updated = Release.model_validate(merged_fields)
            row = _release_to_row(updated)
            assignments = ", ".join(f"{name} = :{name}" for name in row if name != "id")
            conn.execute(f"UPDATE releases SET {assignments} WHERE id = :id", row)
            conn.commit()
        return updated

    async def update_release(self, release_id: str, patch: ReleasePatch) -> Release:
        """
        Apply a partial update to a release.

        When the patch touches the name or the dates, the merged release must
        have a valid name and a code freeze before its release date. A name
        change re-derives the branch fields.

        Raises:
            ReleaseNotFoundError: If no release has this id
            ReleaseValidationError: If the merged release is invalid
        """
        return await self._run(self._update_release, release_id, patch)

    def _delete_release_cascade(self, release_id: str) -> None:
        with get_connection(self.db_path) as conn:
            found = execute_one(conn, "SELECT 1 AS found FROM releases WHERE id = ?", (release_id,))
            if found is None:
                raise ReleaseNotFoundError(release_id)
            conn.execute("DELETE FROM changes WHERE release_id = ?", (release_id,))
            conn.execute("DELETE FROM libraries WHERE release_id = ?", (release_id,))
            conn.execute("DELETE FROM check_runs WHERE release_id = ?", (release_id,))
            conn.execute("DELETE FROM release_errors WHERE release_id = ?", (release_id,))
            conn.execute("DELETE FROM releases WHERE id = ?", (release_id,))
            conn.commit()

    async def delete_release_cascade(self, release_id: str) -> None:
        """
        Delete a release and every record that belongs to it, as one unit.

        Raises:
            ReleaseNotFoundError: If no release has this id
        """
        await self._run(self._delete_release_cascade, release_id)
        logger.info(f"Deleted release {release_id} and its dependent records")

    # Libraries

    def _replace_libraries(
        self, release_id: str, libraries: dict[str, LibraryMetadata]
    ) -> list[Library]:
        rows = [
            Library(
                id=library_id(name, metadata.updated_version),
                release_id=release_id,
                library_name=name,
                **metadata.model_dump(),
            )
            for name, metadata in libraries.items()
        ]
        new_ids = [library.id for library in rows]

        with get_connection(self.db_path) as conn:
            existing = execute_query(
                conn, "SELECT id FROM libraries WHERE release_id = ?", (release_id,)
            )
            stale = [row["id"] for row in existing if row["id"] not in new_ids]
            for stale_id in stale:
                conn.execute(
                    "DELETE FROM changes WHERE release_id = ? AND library_id = ?",
                    (release_id, stale_id),
                )
                conn.execute(
                    "DELETE FROM libraries WHERE release_id = ? AND id = ?",
                    (release_id, stale_id),
                )

            for library in rows:
                conn.execute(
                    """
                    INSERT INTO libraries (
                        release_id, id, library_name, updated_version,
                        opted_in, opted_out, library_group_release
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(release_id, id) DO UPDATE SET
                        library_name = excluded.library_name,
                        updated_version = excluded.updated_version,
                        opted_in = excluded.opted_in,
                        opted_out = excluded.opted_out,
                        library_group_release = excluded.library_group_release
                    """,
                    (
                        release_id,
                        library.id,
                        library.library_name,
                        library.updated_version,
                        int(library.opted_in),
                        int(library.opted_out),
                        int(library.library_group_release),
                    ),
                )
            conn.commit()

        logger.debug(f"Release {release_id}: removed {len(stale)} libraries, wrote {len(rows)}")
        return rows

    async def replace_libraries(
        self, release_id: str, libraries: dict[str, LibraryMetadata]
    ) -> list[Library]:
        """
        Replace the release's library rows with ``libraries``.

        Rows whose id is not in the new set are removed, along with their
        changes. A library whose version did not change keeps its row.
        """
        return await self._run(self._replace_libraries, release_id, libraries)

    def _list_libraries(self, release_id: str) -> list[Library]:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn,
                "SELECT * FROM libraries WHERE release_id = ? ORDER BY library_name",
                (release_id,),
            )
        return [_library_from_row(row) for row in rows]

    async def list_libraries(self, release_id: str) -> list[Library]:
        return await self._run(self._list_libraries, release_id)

    # Changes

    def _replace_changes(
        self, release_id: str, changes_by_library: dict[str, list[ChangeEntry]]
    ) -> int:
        with get_connection(self.db_path) as conn:
            library_rows = execute_query(
                conn,
                "SELECT id, library_name FROM libraries WHERE release_id = ?",
                (release_id,),
            )
            ids_by_name = {row["library_name"]: row["id"] for row in library_rows}

            # A commit listed under several libraries keeps the last one
            changes: dict[str, Change] = {}
            for library_name, entries in changes_by_library.items():
                owner_id = ids_by_name.get(library_name)
                if owner_id is None:
                    raise UnknownLibraryError(library_name, release_id)
                for entry in entries:
                    changes[entry.commit_id] = Change(
                        release_id=release_id,
                        library_id=owner_id,
                        commit_id=entry.commit_id,
                        commit_link=entry.commit_link,
                        pull_request_id=entry.pr_id,
                        pull_request_link=entry.pr_link,
                        author=entry.author,
                        commit_title=parse_commit_title(entry.message),
                        message=entry.message,
                    )

            existing = execute_query(
                conn, "SELECT commit_id FROM changes WHERE release_id = ?", (release_id,)
            )
            for row in existing:
                if row["commit_id"] not in changes:
                    conn.execute(
                        "DELETE FROM changes WHERE release_id = ? AND commit_id = ?",
                        (release_id, row["commit_id"]),
                    )

            for change in changes.values():
                conn.execute(
                    """
                    INSERT INTO changes (
                        release_id, commit_id, library_id, commit_link,
                        pull_request_id, pull_request_link, author, commit_title, message
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(release_id, commit_id) DO UPDATE SET
                        library_id = excluded.library_id,
                        commit_link = excluded.commit_link,
                        pull_request_id = excluded.pull_request_id,
                        pull_request_link = excluded.pull_request_link,
                        author = excluded.author,
                        commit_title = excluded.commit_title,
                        message = excluded.message
                    """,
                    (
                        change.release_id,
                        change.commit_id,
                        change.library_id,
                        change.commit_link,
                        change.pull_request_id,
                        change.pull_request_link,
                        change.author,
                        change.commit_title,
                        change.message,
                    ),
                )
            conn.commit()
        return len(changes)

    async def replace_changes(
        self, release_id: str, changes_by_library: dict[str, list[ChangeEntry]]
    ) -> int:
        """
        Replace the release's change rows.

        Each library must already have been written for this release.

        Returns:
            Number of change rows written

        Raises:
            UnknownLibraryError: If a library has no row for this release
        """
        return await self._run(self._replace_changes, release_id, changes_by_library)

    def _list_changes(self, release_id: str) -> list[Change]:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn, "SELECT * FROM changes WHERE release_id = ? ORDER BY commit_id", (release_id,)
            )
        return [Change.model_validate(row) for row in rows]

    async def list_changes(self, release_id: str) -> list[Change]:
        return await self._run(self._list_changes, release_id)

    # Check runs

    def _replace_check_runs(self, release_id: str, runs: list[CheckRun]) -> int:
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM check_runs WHERE release_id = ?", (release_id,))
            for run in runs:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO check_runs (
                        id, release_id, name, head_sha, status, conclusion, output_title, https_url
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        run.id,
                        release_id,
                        run.name,
                        run.head_sha,
                        run.status,
                        run.conclusion,
                        run.output_title,
                        run.https_url,
                    ),
                )
            conn.commit()
        return len(runs)

    async def replace_check_runs(self, release_id: str, runs: list[CheckRun]) -> int:
        """Replace all check runs of a release."""
        return await self._run(self._replace_check_runs, release_id, runs)

    def _list_check_runs(self, release_id: str) -> list[CheckRun]:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn, "SELECT * FROM check_runs WHERE release_id = ? ORDER BY id", (release_id,)
            )
        return [CheckRun.model_validate(row) for row in rows]

    async def list_check_runs(self, release_id: str) -> list[CheckRun]:
        return await self._run(self._list_check_runs, release_id)

    # Release errors

    def _record_error(
        self, release_id: str, message: str, stack_trace: str, context_msg: str
    ) -> ReleaseErrorRecord:
        timestamp = datetime.now(timezone.utc)
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO release_errors (release_id, message, stack_trace, context_msg, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (release_id, message, stack_trace, context_msg, _to_db_datetime(timestamp)),
            )
            conn.commit()
            error_id = cursor.lastrowid
        return ReleaseErrorRecord(
            id=error_id,
            release_id=release_id,
            message=message,
            stack_trace=stack_trace,
            context_msg=context_msg,
            timestamp=timestamp,
        )

    async def record_error(
        self, release_id: str, message: str, stack_trace: str, context_msg: str
    ) -> ReleaseErrorRecord:
        """Append one error record for a release."""
        return await self._run(self._record_error, release_id, message, stack_trace, context_msg)

    def _list_release_errors(self, release_id: str) -> list[ReleaseErrorRecord]:
        with get_connection(self.db_path) as conn:
            rows = execute_query(
                conn,
                "SELECT * FROM release_errors WHERE release_id = ? ORDER BY id",
                (release_id,),
            )
        return [_error_from_row(row) for row in rows]

    async def list_release_errors(self, release_id: str) -> list[ReleaseErrorRecord]:
        return await self._run(self._list_release_errors, release_id)

    # Dashboard reads

    def _get_releases_denormalized(self) -> list[ReleaseView]:
        with get_connection(self.db_path) as conn:
            release_rows = execute_query(
                conn, "SELECT * FROM releases ORDER BY code_freeze_date, release_name"
            )
            library_rows = execute_query(conn, "SELECT * FROM libraries ORDER BY library_name")
            change_rows = execute_query(conn, "SELECT * FROM changes ORDER BY commit_id")
            check_rows = execute_query(conn, "SELECT * FROM check_runs ORDER BY id")
            error_rows = execute_query(conn, "SELECT * FROM release_errors ORDER BY id")

        changes_by_library: dict[tuple[str, str], list[Change]] = {}
        for row in change_rows:
            key = (row["release_id"], row["library_id"])
            changes_by_library.setdefault(key, []).append(Change.model_validate(row))

        libraries_by_release: dict[str, list[LibraryView]] = {}
        for row in library_rows:
            library = _library_from_row(row)
            view = LibraryView(
                **library.model_dump(),
                changes=changes_by_library.get((library.release_id, library.id), []),
            )
            libraries_by_release.setdefault(library.release_id, []).append(view)

        checks_by_release: dict[str, list[CheckRun]] = {}
        for row in check_rows:
            checks_by_release.setdefault(row["release_id"], []).append(CheckRun.model_validate(row))

        # Rows are ordered by id, so the last one seen per release is the latest
        latest_error: dict[str, ReleaseErrorRecord] = {}
        for row in error_rows:
            latest_error[row["release_id"]] = _error_from_row(row)

        views = []
        for row in release_rows:
            release = _release_from_row(row)
            views.append(
                ReleaseView(
                    **release.model_dump(),
                    libraries=libraries_by_release.get(release.id, []),
                    checks=checks_by_release.get(release.id, []),
                    error=latest_error.get(release.id),
                )
            )
        return views

    async def get_releases_denormalized(self) -> list[ReleaseView]:
        """
        Load every release with its libraries (each with its changes), its
        check runs and its most recent error.
        """
        return await self._run(self._get_releases_denormalized)


__all__ = ["ReleaseStore", "SqliteReleaseStore"]
