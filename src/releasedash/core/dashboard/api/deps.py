"""
Request dependencies for the release API.

Components are built once by create_app() and kept on ``app.state``; these
helpers hand them to route functions.
"""

import hmac

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from releasedash.core.config.models import ReleaseDashConfig
from releasedash.core.github.webhooks import WebhookHandler
from releasedash.core.releases.service import ReleaseService

_bearer = HTTPBearer(auto_error=False)


def get_config(request: Request) -> ReleaseDashConfig:
    return request.app.state.config


def get_service(request: Request) -> ReleaseService:
    return request.app.state.service


def get_webhook_handler(request: Request) -> WebhookHandler:
    return request.app.state.webhooks


def require_api_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    config: ReleaseDashConfig = Depends(get_config),
) -> None:
    """
    Guard write actions with the configured API token.

    No token configured means write actions are open.

    Raises:
        HTTPException: 403 if a token is configured and the request lacks it
    """
    expected = config.api.api_token
    if not expected:
        return
    if credentials is None or not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="A valid API token is required for this action",
        )
