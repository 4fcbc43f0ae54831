"""
Exception taxonomy for the billing webhook pipeline.

A duplicate delivery is not an error and has no exception here; the
ledger reports it as an outcome.
"""


class BillingError(Exception):
    """Base class for billing pipeline errors."""


class ConfigurationError(BillingError):
    """Webhook secret or API credential is missing."""


class AuthenticationError(BillingError):
    """Delivery signature is missing, malformed or does not match."""


class IdentityResolutionError(BillingError):
    """No internal user matched the delivery after every lookup strategy."""

    def __init__(self, customer_id: str | None, email: str | None):
        self.customer_id = customer_id
        self.email = email
        super().__init__(f"User not found for customer {customer_id}. Email: {email or 'N/A'}")


class PersistenceError(BillingError):
    """Storage failure other than a uniqueness violation."""
