"""
Map a webhook delivery to the internal user that owns it.

Strategies run in order and the first match wins:

1. ``metadata.app_user_id`` written at checkout by this application
2. the owner of an already-stored subscription (same subscription id,
   then same customer id)
3. the account whose email matches the processor's customer email

Email comes last because the address on the Dodo customer can drift from
the account address.

A miss fails the delivery with a 500, but the event is not reprocessed:
its redelivery is a duplicate in the ledger. Only a later event for the
same subscription, arriving after the user exists, creates the row.
"""
from typing import Any, Optional

from sqlmodel import Session, func, select

from app.core.exceptions import IdentityResolutionError
from app.core.logging_config import get_logger
from app.models.subscription import Subscription
from app.models.user import User

logger = get_logger(__name__)


def _from_metadata(session: Session, metadata: Optional[dict[str, Any]], **_: Any) -> Optional[str]:
    if not isinstance(metadata, dict):
        return None
    app_user_id = metadata.get("app_user_id")
    if app_user_id in (None, ""):
        return None

    user = session.get(User, str(app_user_id))
    if user:
        logger.info("Found user by app_user_id from metadata", user_id=user.id)
        return user.id
    logger.warning("app_user_id in metadata does not match a user", app_user_id=str(app_user_id))
    return None


def _from_existing_subscription(
    session: Session,
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    **_: Any,
) -> Optional[str]:
    if subscription_id:
        existing = session.exec(
            select(Subscription).where(Subscription.dodo_subscription_id == subscription_id)
        ).first()
        if existing:
            logger.info("Found user by existing subscription", user_id=existing.user_id)
            return existing.user_id

    if customer_id:
        existing = session.exec(
            select(Subscription)
            .where(Subscription.dodo_customer_id == customer_id)
            .order_by(Subscription.created_at.desc())
        ).first()
        if existing:
            logger.info("Found user by existing customer", user_id=existing.user_id)
            return existing.user_id

    return None


def _from_email(session: Session, email: Optional[str] = None, **_: Any) -> Optional[str]:
    if not isinstance(email, str) or not email.strip():
        return None

    user = session.exec(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).first()
    if user:
        logger.info("Found user by email", user_id=user.id)
        return user.id
    return None


STRATEGIES = (_from_metadata, _from_existing_subscription, _from_email)


def resolve_user_id(
    session: Session,
    metadata: Optional[dict[str, Any]] = None,
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    email: Optional[str] = None,
) -> str:
    """
    Resolve the owning user id.

    Raises:
        IdentityResolutionError: no strategy matched. Retryable: the user
            may not exist yet when Dodo delivers the first event.
    """
    for strategy in STRATEGIES:
        user_id = strategy(
            session,
            metadata=metadata,
            subscription_id=subscription_id,
            customer_id=customer_id,
            email=email,
        )
        if user_id:
            return user_id

    logger.error(
        "Could not find user for Dodo customer",
        customer_id=customer_id,
        subscription_id=subscription_id,
        email=email,
    )
    raise IdentityResolutionError(customer_id, email)
