"""
Tests for resolving the user behind a webhook delivery.
"""

import pytest
from sqlmodel import Session

from app.core.exceptions import IdentityResolutionError
from app.models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from app.models.user import User
from app.services.identity import resolve_user_id


@pytest.fixture
def existing_subscription(test_session: Session, other_user: User) -> Subscription:
    """A stored subscription owned by other_user."""
    subscription = Subscription(
        user_id=other_user.id,
        dodo_customer_id="cus_known",
        dodo_subscription_id="sub_known",
        product_id="pdt_pro_monthly",
        plan=SubscriptionPlan.PRO,
        status=SubscriptionStatus.ACTIVE,
    )
    test_session.add(subscription)
    test_session.commit()
    test_session.refresh(subscription)
    return subscription


class TestResolveUserId:
    """Tests for the ordered lookup chain."""

    def test_metadata_user_id(self, test_session: Session, sample_user: User):
        user_id = resolve_user_id(test_session, metadata={"app_user_id": sample_user.id})
        assert user_id == sample_user.id

    def test_metadata_wins_over_existing_subscription(
        self, test_session: Session, sample_user: User, existing_subscription: Subscription
    ):
        """Metadata is written by us at checkout, so it beats a stored customer mapping."""
        user_id = resolve_user_id(
            test_session,
            metadata={"app_user_id": sample_user.id},
            subscription_id="sub_known",
            customer_id="cus_known",
        )
        assert user_id == sample_user.id
        assert existing_subscription.user_id != sample_user.id

    def test_unknown_metadata_user_falls_through(
        self, test_session: Session, existing_subscription: Subscription
    ):
        user_id = resolve_user_id(
            test_session,
            metadata={"app_user_id": "usr_deleted"},
            subscription_id="sub_known",
        )
        assert user_id == existing_subscription.user_id

    def test_existing_subscription_by_subscription_id(
        self, test_session: Session, existing_subscription: Subscription
    ):
        user_id = resolve_user_id(test_session, metadata={}, subscription_id="sub_known", customer_id="cus_new")
        assert user_id == existing_subscription.user_id

    def test_existing_subscription_by_customer_id(
        self, test_session: Session, existing_subscription: Subscription
    ):
        """A new subscription for a known customer (e.g. plan change) maps to the same user."""
        user_id = resolve_user_id(test_session, subscription_id="sub_brand_new", customer_id="cus_known")
        assert user_id == existing_subscription.user_id

    def test_existing_subscription_wins_over_email(
        self, test_session: Session, sample_user: User, existing_subscription: Subscription
    ):
        user_id = resolve_user_id(
            test_session,
            subscription_id="sub_known",
            email=sample_user.email,
        )
        assert user_id == existing_subscription.user_id

    def test_email_lookup(self, test_session: Session, sample_user: User):
        user_id = resolve_user_id(
            test_session,
            subscription_id="sub_new",
            customer_id="cus_new",
            email="member@example.com",
        )
        assert user_id == sample_user.id

    def test_email_lookup_ignores_case_and_whitespace(self, test_session: Session, sample_user: User):
        user_id = resolve_user_id(test_session, email="  Member@Example.COM ")
        assert user_id == sample_user.id

    def test_no_match_raises(self, test_session: Session, sample_user: User):
        with pytest.raises(IdentityResolutionError) as exc_info:
            resolve_user_id(
                test_session,
                metadata={"app_user_id": "usr_missing"},
                subscription_id="sub_missing",
                customer_id="cus_missing",
                email="nobody@example.com",
            )

        assert exc_info.value.customer_id == "cus_missing"
        assert "cus_missing" in str(exc_info.value)
        assert "nobody@example.com" in str(exc_info.value)

    def test_nothing_to_go_on_raises(self, test_session: Session):
        with pytest.raises(IdentityResolutionError) as exc_info:
            resolve_user_id(test_session)
        assert "N/A" in str(exc_info.value)
