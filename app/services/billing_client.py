"""
Dodo Payments client used for webhook signature verification.

Dodo signs deliveries with the Standard Webhooks scheme: an HMAC over
"{webhook-id}.{webhook-timestamp}.{raw body}". The body must be verified
exactly as received, so callers pass the raw request bytes.
"""
import binascii
import json
from typing import Any, Mapping

from standardwebhooks import Webhook, WebhookVerificationError

from app.core.config import Settings
from app.core.exceptions import AuthenticationError, ConfigurationError
from app.core.logging_config import get_logger

logger = get_logger(__name__)

WEBHOOK_HEADERS = ("webhook-id", "webhook-timestamp", "webhook-signature")


class BillingClient:
    """
    Holds the Dodo credentials for the lifetime of the process.

    Built once at startup and passed to the webhook dispatcher.
    """

    def __init__(self, api_key: str, webhook_secret: str, environment: str = "test_mode"):
        if not webhook_secret:
            raise ConfigurationError("DODO_WEBHOOK_SECRET not configured")
        if not api_key:
            raise ConfigurationError("DODO_API_KEY not configured - required for webhook verification")

        try:
            self._webhook = Webhook(webhook_secret)
        except (RuntimeError, binascii.Error, ValueError) as e:
            raise ConfigurationError(f"DODO_WEBHOOK_SECRET is not a valid signing secret: {e}") from e

        self.api_key = api_key
        self.environment = environment

    @classmethod
    def from_settings(cls, settings: Settings) -> "BillingClient":
        return cls(
            api_key=settings.DODO_API_KEY,
            webhook_secret=settings.DODO_WEBHOOK_SECRET,
            environment=settings.DODO_ENVIRONMENT or "test_mode",
        )

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        """
        Verify a delivery and return the trusted event.

        Raises:
            AuthenticationError: headers missing, signature mismatch, stale
                timestamp or a body that is not a JSON object.
        """
        webhook_headers = {name: headers.get(name) or "" for name in WEBHOOK_HEADERS}

        try:
            event = self._webhook.verify(raw_body, webhook_headers)
        except WebhookVerificationError as e:
            raise AuthenticationError(str(e)) from e
        except ValueError as e:
            # Malformed signature header or a body that is not JSON
            raise AuthenticationError(f"Malformed webhook: {e}") from e

        if not isinstance(event, dict):
            try:
                event = json.loads(raw_body)
            except ValueError as e:
                raise AuthenticationError("Verified body is not valid JSON") from e
            if not isinstance(event, dict):
                raise AuthenticationError("Verified body is not a JSON object")

        logger.info("Webhook signature verified", webhook_id=webhook_headers["webhook-id"])
        return event
