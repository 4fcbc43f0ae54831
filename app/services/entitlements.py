"""
Read-side helpers for code that gates features on the user's plan.

The webhook pipeline is the only writer of Subscription rows; everything
here only reads them.
"""
from typing import Optional

from sqlmodel import Session, select

from app.models.subscription import Subscription, SubscriptionPlan


def get_current_subscription(session: Session, user_id: str) -> Optional[Subscription]:
    """Most recently created subscription for the user, if any."""
    return session.exec(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    ).first()


def has_active_subscription(session: Session, user_id: str) -> bool:
    subscription = get_current_subscription(session, user_id)
    return subscription is not None and subscription.is_entitled


def get_effective_plan(session: Session, user_id: str) -> SubscriptionPlan:
    """
    Plan to enforce limits with.

    Only an active or trialing subscription grants its plan; on hold,
    cancelled, expired or no subscription at all means free.
    """
    subscription = get_current_subscription(session, user_id)
    if subscription is None or not subscription.is_entitled:
        return SubscriptionPlan.FREE
    return subscription.plan
