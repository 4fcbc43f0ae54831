"""
Subscription state machine.

Applies a verified ``subscription.*`` event to the single Subscription row
for its Dodo subscription id. The row is upserted from the payload, then
the event type may force the status:

    subscription.active, subscription.renewed    -> active
    subscription.on_hold, subscription.failed    -> on_hold
    subscription.cancelled, subscription.expired -> cancelled (canceled_at set if unset)
    any other subscription.*                     -> payload status

Applying the same event twice writes the same values; only updated_at moves.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.config import Settings
from app.core.errors import capture_message
from app.core.exceptions import PersistenceError
from app.core.logging_config import get_logger
from app.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from app.services import payload_rules as rules

logger = get_logger(__name__)

STATUS_OVERRIDES: dict[str, SubscriptionStatus] = {
    "subscription.active": SubscriptionStatus.ACTIVE,
    "subscription.renewed": SubscriptionStatus.ACTIVE,
    "subscription.on_hold": SubscriptionStatus.ON_HOLD,
    "subscription.failed": SubscriptionStatus.ON_HOLD,
    "subscription.cancelled": SubscriptionStatus.CANCELLED,
    "subscription.expired": SubscriptionStatus.CANCELLED,
}

# Processor spellings that differ from ours
STATUS_ALIASES: dict[str, SubscriptionStatus] = {
    "canceled": SubscriptionStatus.CANCELLED,
    "failed": SubscriptionStatus.ON_HOLD,
    "pending": SubscriptionStatus.INACTIVE,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_status(raw: Any) -> SubscriptionStatus:
    """Lower-case the processor status and map it onto SubscriptionStatus."""
    if not isinstance(raw, str) or not raw.strip():
        return SubscriptionStatus.INACTIVE

    value = raw.strip().lower()
    try:
        return SubscriptionStatus(value)
    except ValueError:
        pass

    if value in STATUS_ALIASES:
        return STATUS_ALIASES[value]

    logger.warning("Unknown subscription status, treating as inactive", raw_status=raw)
    return SubscriptionStatus.INACTIVE


def derive_plan(
    product_id: Optional[str],
    pro_product_id: Optional[str],
    enterprise_product_id: Optional[str],
) -> SubscriptionPlan:
    """Plan for a product id. Anything not configured, including None, is free."""
    if product_id and product_id == pro_product_id:
        return SubscriptionPlan.PRO
    if product_id and product_id == enterprise_product_id:
        return SubscriptionPlan.ENTERPRISE
    return SubscriptionPlan.FREE


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a period bound from a payload.

    Numbers are epoch seconds, strings are ISO-8601 (naive means UTC).
    Anything else, or anything unparsable, is None. Never raises.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def _plan_for_event(event: dict, settings: Settings) -> tuple[str, SubscriptionPlan]:
    product_id = rules.first_present_str(rules.PRODUCT_ID, event) or ""
    plan = derive_plan(product_id, settings.DODO_PRO_PRODUCT_ID, settings.DODO_ENTERPRISE_PRODUCT_ID)

    if product_id and plan is SubscriptionPlan.FREE:
        # Kept as free, but a paying customer on an unmapped product needs a human
        capture_message(
            "Unknown Dodo product id, subscription recorded as free plan",
            level="warning",
            context={"product_id": product_id},
        )
    return product_id, plan


def _as_bool(value: Any) -> bool:
    """Payload flag as a bool. Strings count only when they spell "true"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    if isinstance(value, (int, float)):
        return value == 1
    return False


def _find_subscription(session: Session, subscription_id: str) -> Optional[Subscription]:
    return session.exec(
        select(Subscription).where(Subscription.dodo_subscription_id == subscription_id)
    ).first()


def _apply_override(subscription: Subscription, forced_status: Optional[SubscriptionStatus], now: datetime) -> None:
    if forced_status is None:
        return
    subscription.status = forced_status
    if forced_status is SubscriptionStatus.CANCELLED and subscription.canceled_at is None:
        subscription.canceled_at = now


def _update_existing(
    subscription: Subscription,
    fields: dict[str, Any],
    forced_status: Optional[SubscriptionStatus],
    now: datetime,
) -> None:
    values = dict(fields)
    if values["canceled_at"] is None and forced_status is SubscriptionStatus.CANCELLED:
        values["canceled_at"] = subscription.canceled_at

    for name, value in values.items():
        setattr(subscription, name, value)
    subscription.updated_at = now
    _apply_override(subscription, forced_status, now)


def _commit(session: Session, subscription_id: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to save subscription {subscription_id}: {e}") from e


def apply_subscription_event(
    session: Session,
    event_type: str,
    event: dict,
    user_id: str,
    customer_id: str,
    subscription_id: str,
    settings: Settings,
) -> Subscription:
    """
    Upsert the Subscription row for ``subscription_id`` from a verified event.

    An existing row keeps its id and user_id; a new row is bound to
    ``user_id``. When another delivery inserts the row between our lookup
    and our insert, the event is applied to that row instead.

    Raises:
        PersistenceError: the row could not be written.
    """
    product_id, plan = _plan_for_event(event, settings)
    fields: dict[str, Any] = {
        "status": normalize_status(rules.first_present(rules.STATUS, event)),
        "plan": plan,
        "product_id": product_id,
        "current_period_start": parse_timestamp(rules.first_present(rules.PERIOD_START, event)),
        "current_period_end": parse_timestamp(rules.first_present(rules.PERIOD_END, event)),
        "cancel_at_period_end": _as_bool(rules.first_present(rules.CANCEL_AT_PERIOD_END, event)),
        "canceled_at": parse_timestamp(rules.first_present(rules.CANCELED_AT, event)),
        "metadata_snapshot": rules.subscription_data(event),
    }
    now = _utc_now()
    forced_status = STATUS_OVERRIDES.get(event_type)

    subscription = _find_subscription(session, subscription_id)
    if subscription:
        _update_existing(subscription, fields, forced_status, now)
        session.add(subscription)
        _commit(session, subscription_id)
        action = "updated"
    else:
        subscription = Subscription(
            user_id=user_id,
            dodo_customer_id=customer_id,
            dodo_subscription_id=subscription_id,
            **fields,
        )
        _apply_override(subscription, forced_status, now)
        session.add(subscription)
        action = "created"
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            subscription = _find_subscription(session, subscription_id)
            if subscription is None:
                raise PersistenceError(f"Failed to save subscription {subscription_id}: insert conflicted")
            logger.info("Subscription inserted concurrently, applying event as update", subscription_id=subscription_id)
            _update_existing(subscription, fields, forced_status, now)
            session.add(subscription)
            _commit(session, subscription_id)
            action = "updated"
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to save subscription {subscription_id}: {e}") from e

    session.refresh(subscription)

    logger.info(
        f"Subscription {action}",
        subscription_id=subscription_id,
        user_id=subscription.user_id,
        plan=subscription.plan.value,
        status=subscription.status.value,
        product_id=product_id or None,
    )
    return subscription
