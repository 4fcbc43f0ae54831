"""
Webhook endpoint for Dodo Payments subscription lifecycle events.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from app.api.deps import get_webhook_dispatcher
from app.db import get_session
from app.services.webhook_dispatcher import WebhookDispatcher

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/dodo")
async def dodo_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
    session: Session = Depends(get_session),
):
    """
    Handle Dodo Payments webhook deliveries.

    Events handled:
    - subscription.active / subscription.renewed: subscription active
    - subscription.on_hold / subscription.failed: payment problem, on hold
    - subscription.cancelled / subscription.expired: subscription ended
    - any other subscription.*: status taken from the payload
    - anything else: recorded and acknowledged

    Headers: webhook-id, webhook-timestamp, webhook-signature

    A 500 makes Dodo retry, but a retry carries the same webhook-id and is
    answered as a duplicate, so the failed event itself is not reapplied.
    The subscription catches up on the next event Dodo sends for it.
    """
    # Signature covers the exact bytes, so never re-serialize before verifying
    raw_body = await request.body()

    result = dispatcher.dispatch(session, raw_body, request.headers)
    return JSONResponse(result.body, status_code=result.status_code)
