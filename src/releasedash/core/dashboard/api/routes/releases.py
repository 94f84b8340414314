"""
Release API routes.

Provides the release actions used by the dashboard:
- POST /api/releases - Schedule new releases
- POST /api/releases/refresh - Re-sync a release from GitHub
- POST /api/releases/modify - Change a release and re-sync it
- POST /api/releases/delete - Delete a release and its records
- GET /api/releases - All releases, denormalized for display

Write actions require the API token when one is configured.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from releasedash.core.dashboard.api.deps import get_service, require_api_token
from releasedash.core.exceptions import ReleaseAlreadyExistsError, ReleaseNotFoundError
from releasedash.core.releases.models import (
    CamelModel,
    Release,
    ReleaseEdit,
    ReleaseView,
    SyncResult,
)
from releasedash.core.releases.service import ReleaseService

router = APIRouter()


class CreateReleasesRequest(CamelModel):
    """Request body for POST /api/releases."""

    releases: list[Any] | None = None


class CreateReleasesResponse(CamelModel):
    releases: list[Release]


class ReleaseIdRequest(CamelModel):
    """Request body naming one release."""

    release_id: str


class ModifyReleaseRequest(CamelModel):
    """Request body for POST /api/releases/modify."""

    release_id: str
    release: ReleaseEdit


class DeleteReleaseResponse(CamelModel):
    deleted: bool
    release_id: str


@router.post("/releases", dependencies=[Depends(require_api_token)])
async def create_releases(
    body: CreateReleasesRequest,
    service: ReleaseService = Depends(get_service),
) -> CreateReleasesResponse:
    """
    Schedule new releases.

    Each created release is synced once; a failing initial sync is recorded
    on the release and does not fail the request.

    Raises:
        HTTPException: 404 if a release with the same name already exists
        ReleaseValidationError: Rendered as 400 with the list of issues

    Example request:
        POST /api/releases
        {"releases": [{"releaseName": "M135", "releaseOperator": "octocat",
                       "codeFreezeDate": "2026-11-02T00:00:00Z",
                       "releaseDate": "2026-11-09T00:00:00Z"}]}
    """
    try:
        created = await service.create_releases(body.releases)
    except ReleaseAlreadyExistsError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return CreateReleasesResponse(releases=created)


@router.post("/releases/refresh", dependencies=[Depends(require_api_token)])
async def refresh_release(
    body: ReleaseIdRequest,
    service: ReleaseService = Depends(get_service),
) -> SyncResult:
    """
    Re-sync a release from GitHub.

    Raises:
        HTTPException: 404 if the release does not exist
        ReleaseDashError: Rendered as 500 when the sync fails
    """
    try:
        return await service.refresh_release(body.release_id)
    except ReleaseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/releases/modify", dependencies=[Depends(require_api_token)])
async def modify_release(
    body: ModifyReleaseRequest,
    service: ReleaseService = Depends(get_service),
) -> Release:
    """
    Apply changes to a release, then re-sync it.

    Raises:
        HTTPException: 404 if the release does not exist
        ReleaseValidationError: Rendered as 400 with the list of issues
        ReleaseDashError: Rendered as 500 when the re-sync fails
    """
    try:
        return await service.modify_release(body.release_id, body.release)
    except ReleaseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/releases/delete", dependencies=[Depends(require_api_token)])
async def delete_release(
    body: ReleaseIdRequest,
    service: ReleaseService = Depends(get_service),
) -> DeleteReleaseResponse:
    """
    Delete a release with its libraries, changes, check runs and errors.

    Raises:
        HTTPException: 404 if the release does not exist
    """
    try:
        await service.delete_release(body.release_id)
    except ReleaseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return DeleteReleaseResponse(deleted=True, release_id=body.release_id)


@router.get("/releases")
async def get_releases(service: ReleaseService = Depends(get_service)) -> list[ReleaseView]:
    """All releases with their libraries, changes, check runs and latest error."""
    return await service.get_releases()
