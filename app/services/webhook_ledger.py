"""
Idempotency ledger for webhook deliveries.

Dodo retries deliveries until it gets a 2xx, and retries can race each
other. The unique constraint on ``webhook_event.event_id`` is the only
serialization point: whichever insert commits first owns the event and
every other delivery of it is reported as a duplicate.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.errors import capture_exception
from app.core.logging_config import get_logger
from app.models.webhook_event import WebhookEvent

logger = get_logger(__name__)


class LedgerOutcome(str, Enum):
    OK = "ok"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class LedgerResult:
    outcome: LedgerOutcome
    row_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_duplicate(self) -> bool:
        return self.outcome is LedgerOutcome.DUPLICATE


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def find_event(session: Session, event_id: str) -> Optional[WebhookEvent]:
    return session.exec(
        select(WebhookEvent).where(WebhookEvent.event_id == event_id)
    ).first()


def record_or_detect_duplicate(
    session: Session,
    event_id: str,
    event_type: str,
    payload: dict[str, Any],
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> LedgerResult:
    """
    Record a delivery, or report that it was already recorded.

    Returns:
        OK with the new row id, DUPLICATE when the event id exists (or a
        concurrent delivery inserted it first), FAILED when the ledger
        itself could not be written. FAILED does not stop processing.
    """
    try:
        if find_event(session, event_id) is not None:
            logger.info("Webhook event already recorded, skipping", event_id=event_id)
            return LedgerResult(LedgerOutcome.DUPLICATE)

        row = WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            dodo_customer_id=customer_id,
            dodo_subscription_id=subscription_id,
            payload=payload,
            processed=False,
        )
        session.add(row)
        session.commit()
        row_id = row.id
    except IntegrityError:
        session.rollback()
        logger.info("Webhook event recorded by a concurrent delivery, skipping", event_id=event_id)
        return LedgerResult(LedgerOutcome.DUPLICATE)
    except SQLAlchemyError as e:
        session.rollback()
        capture_exception(e, context={"operation": "webhook_ledger_insert", "event_id": event_id})
        return LedgerResult(LedgerOutcome.FAILED, error=str(e))

    logger.info("Webhook event recorded", event_id=event_id, event_type=event_type, row_id=row_id)
    return LedgerResult(LedgerOutcome.OK, row_id=row_id)


def mark_processed(session: Session, row_id: Optional[int]) -> None:
    """Mark a ledger row processed. Storage errors are logged, not raised."""
    if row_id is None:
        return

    try:
        row = session.get(WebhookEvent, row_id)
        if row is None:
            return
        row.processed = True
        row.processed_at = _utc_now()
        session.add(row)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        capture_exception(e, context={"operation": "webhook_ledger_mark_processed", "row_id": row_id})


def mark_failed(session: Session, row_id: Optional[int], message: str) -> None:
    """Write the failure reason to a ledger row. Storage errors are logged, not raised."""
    if row_id is None:
        return

    try:
        row = session.get(WebhookEvent, row_id)
        if row is None:
            return
        row.error_message = message[:2000]
        session.add(row)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to update webhook error status", row_id=row_id, error=str(e))


def list_unprocessed_events(session: Session, limit: int = 50) -> list[WebhookEvent]:
    """Ledger rows never marked processed (failed or still in flight), newest first."""
    statement = (
        select(WebhookEvent)
        .where(WebhookEvent.processed == False)  # noqa: E712
        .order_by(WebhookEvent.created_at.desc(), WebhookEvent.id.desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())
