"""
FastAPI application setup for the release dashboard API.

create_app() wires the release store, GitHub client, sync orchestrator and
release service together and registers routes and exception handlers.
"""

import logging
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from releasedash import __version__
from releasedash.core.config import load_config
from releasedash.core.config.models import ReleaseDashConfig
from releasedash.core.dashboard.api.routes import releases, webhooks
from releasedash.core.dashboard.db.gateway import ReleaseStore, SqliteReleaseStore
from releasedash.core.dashboard.sync.orchestrator import SourceHost, SyncOrchestrator
from releasedash.core.exceptions import ReleaseDashError, ReleaseValidationError
from releasedash.core.github.client import GitHubClient
from releasedash.core.github.webhooks import WebhookHandler
from releasedash.core.releases.service import ReleaseService

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes for API responses."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Server errors (5xx)
    SYNC_ERROR = "SYNC_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error_code: ErrorCode
    message: str
    detail: str | None = None
    request_id: str | None = None


_STATUS_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.INVALID_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the standard error format."""
    error_code = _STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "HTTP %d on %s %s: %s",
        exc.status_code,
        request.method,
        request.url.path,
        exc.detail,
    )

    detail_msg = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error_code=error_code,
            message=detail_msg,
            detail=detail_msg,
            request_id=str(id(request)),
        ).model_dump(mode="json"),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed request bodies without exposing internals."""
    logger.warning(
        "Validation error on %s %s: %s",
        request.method,
        request.url.path,
        exc.errors(),
    )

    first_error = exc.errors()[0] if exc.errors() else {}
    field = " -> ".join(str(loc) for loc in first_error.get("loc", []))
    error_msg = first_error.get("msg", "Invalid input")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            detail=f"{field}: {error_msg}" if field else error_msg,
            request_id=str(id(request)),
        ).model_dump(mode="json"),
    )


async def release_validation_handler(
    request: Request, exc: ReleaseValidationError
) -> JSONResponse:
    """Render release validation failures as 400 with every issue listed."""
    logger.info(
        "Release validation failed on %s %s: %s",
        request.method,
        request.url.path,
        exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": ErrorCode.VALIDATION_ERROR.value,
            "message": exc.message,
            "errors": [
                {
                    "kind": issue.kind.value,
                    "message": issue.message,
                    "offendingRelease": issue.offending_release,
                }
                for issue in exc.issues
            ],
            "request_id": str(id(request)),
        },
    )


async def release_error_handler(request: Request, exc: ReleaseDashError) -> JSONResponse:
    """
    Render a failed sync as 500.

    The failure has already been recorded on the release, so the response
    only carries the message.
    """
    logger.error(
        "Release action failed on %s %s: %s",
        request.method,
        request.url.path,
        exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error_code=ErrorCode.SYNC_ERROR,
            message="Release sync failed",
            detail=exc.message,
            request_id=str(id(request)),
        ).model_dump(mode="json"),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all uncaught exceptions.

    Logs the full traceback but returns a clean error response.
    """
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method,
        request.url.path,
        str(exc),
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error_code=ErrorCode.INTERNAL_ERROR,
            message="An internal server error occurred",
            detail=str(exc),
            request_id=str(id(request)),
        ).model_dump(mode="json"),
    )


def create_app(
    config: ReleaseDashConfig | None = None,
    *,
    store: ReleaseStore | None = None,
    host: SourceHost | None = None,
) -> FastAPI:
    """
    Build the release dashboard API.

    Args:
        config: Configuration (defaults to load_config())
        store: Release store (defaults to SQLite at config.store.db_path)
        host: GitHub client (defaults to one built from config)

    Returns:
        Configured FastAPI application

    Example:
        uvicorn releasedash.core.dashboard.api.app:create_app --factory
    """
    if config is None:
        config = load_config()
    if store is None:
        sqlite_store = SqliteReleaseStore(config.store.db_path, config.branch_naming())
        sqlite_store.ensure_schema()
        store = sqlite_store
    if host is None:
        host = GitHubClient.from_config(config)

    orchestrator = SyncOrchestrator(
        store,
        host,
        companion_suffix=config.layout.companion_suffix,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if isinstance(host, GitHubClient):
            await host.aclose()

    app = FastAPI(
        title="releasedash API",
        description="Release tracking API for the release dashboard",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.service = ReleaseService(store, orchestrator)
    app.state.webhooks = WebhookHandler(store, orchestrator)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(releases.router, prefix="/api", tags=["releases"])
    app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ReleaseValidationError, release_validation_handler)
    app.add_exception_handler(ReleaseDashError, release_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
