"""
GitHub webhook route.

- POST /api/webhooks/github - Receives GitHub deliveries

Deliveries with a bad or missing signature get 401. Every authenticated
delivery gets 200, whatever happened to the sync it triggered.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from releasedash.core.config.models import ReleaseDashConfig
from releasedash.core.dashboard.api.deps import get_config, get_webhook_handler
from releasedash.core.github.webhooks import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookHandler,
    WebhookOutcome,
    verify_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/github")
async def github_webhook(
    request: Request,
    config: ReleaseDashConfig = Depends(get_config),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> WebhookOutcome:
    """
    Handle a GitHub webhook delivery.

    The signature is checked against the raw body, before it is parsed.
    """
    raw_body = await request.body()
    secret = config.github.webhook_secret or ""
    if not verify_signature(raw_body, secret, request.headers.get(SIGNATURE_HEADER)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning("Ignoring webhook delivery with a non-JSON body")
        return WebhookOutcome(reason="body is not JSON")
    if not isinstance(payload, dict):
        return WebhookOutcome(reason="body is not a JSON object")

    return await handler.handle(request.headers.get(EVENT_HEADER), payload)
