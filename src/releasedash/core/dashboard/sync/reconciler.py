"""
Metadata reconciliation for a release.

Merges the release manifest (which libraries the release is meant to ship)
with the change report (which libraries actually changed) into per-library
metadata, and resolves each library's version from its version descriptor.

Companion libraries, named ``<root><suffix>`` (``firebase-common/ktx``), ship
together with their root library: their changes are folded into the root
and they are never tracked on their own.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, Field

from releasedash.core.dashboard.sync.concurrency import gather_or_cancel
from releasedash.core.github.models import ChangeEntry, ChangeReportDoc, ManifestDoc
from releasedash.core.releases.models import LibraryMetadata
from releasedash.core.releases.version import extract_version

logger = logging.getLogger(__name__)

DEFAULT_COMPANION_SUFFIX = "/ktx"


class VersionDescriptorSource(Protocol):
    """Anything that can fetch a library's version descriptor from a branch."""

    async def fetch_version_descriptor(self, branch_ref: str, library_path: str) -> str: ...


class LibraryFlags(BaseModel):
    """Release participation flags of one library."""

    opted_in: bool = False
    opted_out: bool = False
    library_group_release: bool = False


class ReconciledRelease(BaseModel):
    """Per-library metadata and folded changes for one release."""

    libraries: dict[str, LibraryMetadata] = Field(default_factory=dict)
    changes_by_library: dict[str, list[ChangeEntry]] = Field(default_factory=dict)


def fold_companions(
    manifest_names: list[str],
    changes_by_library: dict[str, list[ChangeEntry]],
    companion_suffix: str = DEFAULT_COMPANION_SUFFIX,
) -> tuple[list[str], dict[str, list[ChangeEntry]]]:
    """
    Fold companion libraries into their root libraries.

    Changes listed under a companion are appended to its root (the root entry
    is created if missing), and companions are dropped from both inputs.

    Example:
        >>> names, changes = fold_companions(
        ...     ["firebase-common", "firebase-common/ktx"],
        ...     {"firebase-common": [a], "firebase-common/ktx": [b]},
        ... )
        >>> names, changes
        (['firebase-common'], {'firebase-common': [a, b]})

    Returns:
        Tuple of (manifest names, change map) with companions removed
    """
    folded: dict[str, list[ChangeEntry]] = {
        name: list(entries)
        for name, entries in changes_by_library.items()
        if not name.endswith(companion_suffix)
    }
    for name, entries in changes_by_library.items():
        if name.endswith(companion_suffix):
            root = name[: -len(companion_suffix)]
            folded.setdefault(root, []).extend(entries)

    names = [name for name in manifest_names if not name.endswith(companion_suffix)]
    return names, folded


def derive_library_flags(
    manifest_names: list[str],
    changes_by_library: dict[str, list[ChangeEntry]],
) -> dict[str, LibraryFlags]:
    """
    Derive participation flags for every library in the manifest or the change map.

    - opted in: listed in the manifest but absent from the change map
    - opted out: in the change map but not listed in the manifest
    - library group release: in the change map with no changes of its own
    """
    in_manifest = set(manifest_names)
    names = list(dict.fromkeys([*manifest_names, *changes_by_library]))

    flags: dict[str, LibraryFlags] = {}
    for name in names:
        in_changes = name in changes_by_library
        flags[name] = LibraryFlags(
            opted_in=name in in_manifest and not in_changes,
            opted_out=in_changes and name not in in_manifest,
            library_group_release=in_changes and len(changes_by_library[name]) == 0,
        )
    return flags


class MetadataReconciler:
    """
    Builds per-library release metadata from the manifest and change report.

    Example:
        >>> reconciler = MetadataReconciler(github_client)
        >>> result = await reconciler.reconcile("releases/M134.release", manifest, report)
        >>> result.libraries["firebase-common"].updated_version
        '21.0.1'
    """

    def __init__(
        self,
        versions: VersionDescriptorSource,
        companion_suffix: str = DEFAULT_COMPANION_SUFFIX,
    ) -> None:
        self.versions = versions
        self.companion_suffix = companion_suffix

    def descriptor_dir(self, library_name: str) -> str:
        """Directory holding a library's version descriptor."""
        return library_name.removesuffix(self.companion_suffix)

    async def _fetch_version(self, branch_ref: str, library_name: str) -> str:
        text = await self.versions.fetch_version_descriptor(
            branch_ref, self.descriptor_dir(library_name)
        )
        return extract_version(text)

    async def reconcile(
        self,
        branch_ref: str,
        manifest: ManifestDoc,
        report: ChangeReportDoc,
    ) -> ReconciledRelease:
        """
        Reconcile manifest and change report, fetching every library's version.

        Version fetches run concurrently; the first failure aborts the batch.

        Raises:
            VersionNotFoundError: If a version descriptor has no version
            GitHubClientError: If a version descriptor cannot be fetched
        """
        names, changes = fold_companions(
            manifest.libraries, report.changes_by_library_name, self.companion_suffix
        )
        flags = derive_library_flags(names, changes)

        library_names = list(flags)
        logger.debug(f"Fetching versions for {len(library_names)} libraries on {branch_ref}")
        versions = await gather_or_cancel(
            *(self._fetch_version(branch_ref, name) for name in library_names)
        )

        libraries = {
            name: LibraryMetadata(updated_version=version, **flags[name].model_dump())
            for name, version in zip(library_names, versions)
        }
        return ReconciledRelease(libraries=libraries, changes_by_library=changes)
