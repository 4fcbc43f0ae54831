"""
Subscription projection maintained from Dodo Payments webhooks.

Usage:
    from app.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus

    if sub.status == SubscriptionStatus.ACTIVE and sub.plan == SubscriptionPlan.PRO:
        ...
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel, Column, JSON


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionPlan(str, Enum):
    """Internal tier derived from the processor's product id."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    """Lifecycle status. Feature gating elsewhere depends on these values."""

    INACTIVE = "inactive"
    TRIALING = "trialing"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def _value_enum(enum_cls: type[Enum]) -> SAEnum:
    """String column holding enum values rather than member names."""
    return SAEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
        validate_strings=True,
    )


class Subscription(SQLModel, table=True):
    """
    One row per Dodo subscription.

    Attributes:
        id: Primary key
        user_id: Owning user, fixed when the row is created
        dodo_customer_id: Processor customer ID
        dodo_subscription_id: Processor subscription ID (unique)
        product_id: Processor product ID, empty when the event had none
        plan: Tier derived from product_id
        status: Normalized lifecycle status
        current_period_start / current_period_end: Billing period bounds
        cancel_at_period_end: Subscription ends when the period does
        canceled_at: When the subscription was cancelled
        metadata_snapshot: Subscription object from the latest applied event
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)

    dodo_customer_id: str = Field(index=True)
    dodo_subscription_id: str = Field(unique=True, index=True)
    product_id: str = Field(default="")

    # Stored as the lower-case values ("pro", "on_hold"), which other services read
    plan: SubscriptionPlan = Field(
        default=SubscriptionPlan.FREE,
        sa_column=Column(_value_enum(SubscriptionPlan), nullable=False),
    )
    status: SubscriptionStatus = Field(
        default=SubscriptionStatus.INACTIVE,
        sa_column=Column(_value_enum(SubscriptionStatus), nullable=False, index=True),
    )

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = Field(default=False)
    canceled_at: Optional[datetime] = None

    metadata_snapshot: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_entitled(self) -> bool:
        """Paid features are available while active or trialing."""
        return self.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)
