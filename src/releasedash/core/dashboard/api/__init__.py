"""
FastAPI application for the release dashboard.

API Endpoints:
- POST /api/releases - Schedule releases
- POST /api/releases/refresh - Re-sync a release
- POST /api/releases/modify - Modify and re-sync a release
- POST /api/releases/delete - Delete a release
- GET /api/releases - All releases, denormalized
- POST /api/webhooks/github - GitHub webhook receiver

Usage:
    uvicorn releasedash.core.dashboard.api:create_app --factory --reload
"""

from releasedash.core.dashboard.api.app import create_app

__all__ = ["create_app"]
