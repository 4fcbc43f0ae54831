"""
Ledger of received webhook deliveries.

Every delivery that passes signature verification gets exactly one row,
keyed by the processor's event id. Rows are never deleted: they are the
audit trail and the idempotency check in one table.
"""
from typing import Any, Optional
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel, Column, JSON


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class WebhookEvent(SQLModel, table=True):
    """
    One received webhook delivery.

    Only processed, processed_at and error_message change after insert.
    """
    __tablename__ = "webhook_event"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Event identification
    event_id: str = Field(unique=True, index=True)  # webhook-id header or payload id
    event_type: str = Field(index=True)  # e.g., "subscription.active", "payment.succeeded"

    # Best-effort identifiers pulled from the payload, for lookups during review
    dodo_customer_id: Optional[str] = Field(default=None, nullable=True, index=True)
    dodo_subscription_id: Optional[str] = Field(default=None, nullable=True, index=True)

    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Processing outcome
    processed: bool = Field(default=False, index=True)
    processed_at: Optional[datetime] = Field(default=None, nullable=True)
    error_message: Optional[str] = Field(default=None, nullable=True)

    created_at: datetime = Field(default_factory=_utc_now)
