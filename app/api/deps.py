from fastapi import Request

from app.core.config import settings
from app.core.exceptions import ConfigurationError
from app.services.billing_client import BillingClient
from app.services.webhook_dispatcher import WebhookDispatcher


def get_billing_client(request: Request) -> BillingClient:
    """
    Billing client built at startup.

    Raises ConfigurationError when the Dodo secret or API key was missing,
    which the app turns into a "not configured" response.
    """
    client = getattr(request.app.state, "billing_client", None)
    if client is None:
        raise ConfigurationError("Dodo webhook client is not configured")
    return client


def get_webhook_dispatcher(request: Request) -> WebhookDispatcher:
    return WebhookDispatcher(get_billing_client(request), settings)
