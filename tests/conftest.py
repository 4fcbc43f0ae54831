"""
Test fixtures for the billing webhook tests.

Provides database session fixtures, seeded users, Dodo-shaped event
payloads and a helper that signs deliveries the way Dodo does.
"""

import base64
import json
import pytest
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool
from standardwebhooks import Webhook

import app.models  # noqa: F401  (registers tables on the metadata)
from app.core.config import Settings
from app.models.user import User
from app.services.billing_client import BillingClient
from app.services.webhook_dispatcher import WebhookDispatcher


# In-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"test-dodo-signing-secret-012345").decode()
TEST_API_KEY = "dodo_test_api_key"
PRO_PRODUCT_ID = "pdt_pro_monthly"
ENTERPRISE_PRODUCT_ID = "pdt_enterprise_monthly"


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


# ============================================
# Configuration / client fixtures
# ============================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with Dodo credentials and both plan product ids configured."""
    return Settings(
        DODO_API_KEY=TEST_API_KEY,
        DODO_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        DODO_ENVIRONMENT="test_mode",
        DODO_PRO_PRODUCT_ID=PRO_PRODUCT_ID,
        DODO_ENTERPRISE_PRODUCT_ID=ENTERPRISE_PRODUCT_ID,
    )


@pytest.fixture
def billing_client(test_settings: Settings) -> BillingClient:
    return BillingClient.from_settings(test_settings)


@pytest.fixture
def dispatcher(billing_client: BillingClient, test_settings: Settings) -> WebhookDispatcher:
    return WebhookDispatcher(billing_client, test_settings)


@pytest.fixture
def sign_delivery() -> Callable[..., tuple[bytes, dict[str, str]]]:
    """
    Serialize an event and sign it like Dodo does.

    Returns (raw_body, headers). Pass ``secret`` to sign with a different key.
    """
    def _sign(
        event: dict[str, Any],
        webhook_id: str = "msg_test_001",
        secret: str = TEST_WEBHOOK_SECRET,
        timestamp: Optional[datetime] = None,
    ) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(event)
        ts = timestamp or datetime.now(timezone.utc)
        signature = Webhook(secret).sign(webhook_id, ts, body)
        headers = {
            "webhook-id": webhook_id,
            "webhook-timestamp": str(int(ts.timestamp())),
            "webhook-signature": signature,
            "content-type": "application/json",
        }
        return body.encode("utf-8"), headers

    return _sign


# ============================================
# Payload fixtures
# ============================================

@pytest.fixture
def subscription_event() -> Callable[..., dict[str, Any]]:
    """
    Factory for Dodo subscription webhook payloads.

    Shape follows Dodo's envelope: {business_id, type, timestamp, data: {...}}.
    Extra keyword arguments are merged into ``data``.
    """
    def _event(
        event_type: str = "subscription.active",
        subscription_id: str = "sub_123",
        customer_id: str = "cus_123",
        product_id: Optional[str] = PRO_PRODUCT_ID,
        status: str = "active",
        email: str = "member@example.com",
        metadata: Optional[dict[str, Any]] = None,
        **data_overrides: Any,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "payload_type": "Subscription",
            "subscription_id": subscription_id,
            "customer": {"customer_id": customer_id, "email": email, "name": "Member"},
            "product_id": product_id,
            "status": status,
            "metadata": metadata if metadata is not None else {},
            "previous_billing_date": "2025-01-01T00:00:00Z",
            "next_billing_date": "2025-02-01T00:00:00Z",
            "cancel_at_next_billing_date": False,
        }
        data.update(data_overrides)
        return {
            "business_id": "bus_test",
            "type": event_type,
            "timestamp": "2025-01-01T00:00:05Z",
            "data": data,
        }

    return _event


# ============================================
# User fixtures
# ============================================

@pytest.fixture
def sample_user(test_session: Session) -> User:
    """User whose email matches the default payload email."""
    user = User(id="usr_member", email="member@example.com", name="Member", email_verified=True)
    test_session.add(user)
    test_session.commit()
    test_session.refresh(user)
    return user


@pytest.fixture
def other_user(test_session: Session) -> User:
    """A second, unrelated account."""
    user = User(id="usr_other", email="other@example.com", name="Other")
    test_session.add(user)
    test_session.commit()
    test_session.refresh(user)
    return user
