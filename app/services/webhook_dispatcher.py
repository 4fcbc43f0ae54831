"""
Per-delivery orchestration of Dodo webhooks.

verify signature -> record in ledger -> resolve user -> update subscription
-> mark ledger row -> respond

Every path returns a WebhookResponse. A 2xx tells Dodo to stop retrying;
a 5xx makes it retry, but the retry reuses the webhook-id and the ledger
answers it as a duplicate. A failed event is therefore recorded with its
error and left for the next event of the same subscription, or for an
operator working from list_unprocessed_events.
"""
from dataclasses import dataclass, field
from typing import Any, Mapping

import structlog
from sqlmodel import Session

from app.core.config import Settings
from app.core.context import set_webhook_id
from app.core.errors import capture_exception
from app.core.exceptions import AuthenticationError
from app.core.logging_config import get_logger
from app.services import payload_rules as rules
from app.services.billing_client import BillingClient
from app.services.identity import resolve_user_id
from app.services.subscription_state import apply_subscription_event
from app.services.webhook_ledger import mark_failed, mark_processed, record_or_detect_duplicate

logger = get_logger(__name__)

SUBSCRIPTION_EVENT_PREFIX = "subscription."


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


class WebhookDispatcher:
    """Runs the webhook pipeline for one delivery at a time."""

    def __init__(self, client: BillingClient, settings: Settings):
        self.client = client
        self.settings = settings

    def dispatch(self, session: Session, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResponse:
        try:
            event = self.client.verify(raw_body, headers)
        except AuthenticationError as e:
            logger.warning(
                "Webhook signature verification failed",
                error=str(e),
                webhook_id=headers.get("webhook-id"),
                body_length=len(raw_body),
            )
            return WebhookResponse(401, {"error": "Invalid signature"})

        envelope = rules.extract_envelope(event, headers.get("webhook-id"))
        set_webhook_id(envelope.event_id)

        with structlog.contextvars.bound_contextvars(
            webhook_id=envelope.event_id, event_type=envelope.event_type
        ):
            return self._process(session, event, envelope)

    def _process(self, session: Session, event: dict, envelope: rules.EventEnvelope) -> WebhookResponse:
        logger.info(
            "Processing webhook event",
            customer_id=envelope.customer_id,
            subscription_id=envelope.subscription_id,
        )

        ledger = record_or_detect_duplicate(
            session,
            event_id=envelope.event_id,
            event_type=envelope.event_type,
            payload=event,
            customer_id=envelope.customer_id,
            subscription_id=envelope.subscription_id,
        )
        if ledger.is_duplicate:
            return WebhookResponse(200, {"received": True, "duplicate": True})

        try:
            if envelope.event_type.startswith(SUBSCRIPTION_EVENT_PREFIX):
                self._handle_subscription_event(session, event, envelope)
            else:
                logger.info("Unhandled webhook event type, acknowledging")
        except Exception as exc:
            session.rollback()
            capture_exception(
                exc,
                context={
                    "operation": "dodo_webhook",
                    "event_id": envelope.event_id,
                    "event_type": envelope.event_type,
                    "customer_id": envelope.customer_id,
                },
            )
            mark_failed(session, ledger.row_id, str(exc) or "Processing failed")
            return WebhookResponse(500, {"error": "Handler error"})

        mark_processed(session, ledger.row_id)
        return WebhookResponse(200, {"received": True})

    def _handle_subscription_event(self, session: Session, event: dict, envelope: rules.EventEnvelope) -> None:
        if not envelope.customer_id or not envelope.subscription_id:
            logger.warning(
                "Missing subscription data in webhook event",
                customer_id=envelope.customer_id,
                subscription_id=envelope.subscription_id,
            )
            return

        metadata = rules.first_present(rules.METADATA, event)
        user_id = resolve_user_id(
            session,
            metadata=metadata if isinstance(metadata, dict) else None,
            subscription_id=envelope.subscription_id,
            customer_id=envelope.customer_id,
            email=rules.first_present_str(rules.CUSTOMER_EMAIL, event),
        )

        apply_subscription_event(
            session,
            event_type=envelope.event_type,
            event=event,
            user_id=user_id,
            customer_id=envelope.customer_id,
            subscription_id=envelope.subscription_id,
            settings=self.settings,
        )
