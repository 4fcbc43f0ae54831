"""
Field extraction rules for Dodo webhook payloads.

Dodo nests the same field differently across event families
(``data.customer.customer_id`` on one, ``data.customer_id`` on another),
so each logical field is a list of rules tried in order. A rule takes the
parsed event and returns a value or None; the first present value wins.

Usage:
    customer_id = first_present(CUSTOMER_ID, event)
"""
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

Rule = Callable[[dict], Any]


def path(*keys: str) -> Rule:
    """Rule reading a nested key path from the event root."""
    def rule(event: dict) -> Any:
        node: Any = event
        for key in keys:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        return node

    rule.__name__ = "path:" + ".".join(keys)
    return rule


def subscription_data(event: dict) -> dict:
    """The subscription object: ``data``, else ``subscription``, else the event itself."""
    for key in ("data", "subscription"):
        node = event.get(key)
        if isinstance(node, dict) and node:
            return node
    return event


def data_path(*keys: str) -> Rule:
    """Rule reading a nested key path from the subscription object."""
    inner = path(*keys)

    def rule(event: dict) -> Any:
        return inner(subscription_data(event))

    rule.__name__ = "data:" + ".".join(keys)
    return rule


def is_present(value: Any) -> bool:
    return value is not None and value != "" and value != {}


def first_present(rules: Sequence[Rule], event: dict) -> Any:
    """Apply rules in order and return the first present value, or None."""
    for rule in rules:
        value = rule(event)
        if is_present(value):
            return value
    return None


def first_present_str(rules: Sequence[Rule], event: dict) -> Optional[str]:
    value = first_present(rules, event)
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


EVENT_TYPE: list[Rule] = [path("type"), path("event_type"), path("name")]

EVENT_ID: list[Rule] = [path("id"), path("event_id"), path("eventId")]

CUSTOMER_ID: list[Rule] = [
    data_path("customer", "customer_id"),
    data_path("customer_id"),
    data_path("customer", "id"),
    path("customer", "customer_id"),
    path("customer_id"),
    path("data", "customer_id"),
]

SUBSCRIPTION_ID: list[Rule] = [
    data_path("subscription_id"),
    data_path("id"),
    path("subscription_id"),
    path("data", "subscription_id"),
]

PRODUCT_ID: list[Rule] = [
    data_path("product_id"),
    data_path("product", "id"),
    data_path("product", "product_id"),
    path("product_id"),
]

CUSTOMER_EMAIL: list[Rule] = [
    data_path("customer", "email"),
    data_path("email"),
    path("data", "customer", "email"),
    path("customer", "email"),
    path("email"),
]

METADATA: list[Rule] = [
    data_path("metadata"),
    path("data", "metadata"),
    path("metadata"),
]

STATUS: list[Rule] = [data_path("status"), path("status")]

PERIOD_START: list[Rule] = [
    data_path("current_period_start"),
    data_path("period_start"),
    data_path("currentPeriodStart"),
    data_path("previous_billing_date"),
]

PERIOD_END: list[Rule] = [
    data_path("current_period_end"),
    data_path("period_end"),
    data_path("currentPeriodEnd"),
    data_path("next_billing_date"),
]

CANCEL_AT_PERIOD_END: list[Rule] = [
    data_path("cancel_at_period_end"),
    data_path("cancelAtPeriodEnd"),
    data_path("cancel_at_next_billing_date"),
]

CANCELED_AT: list[Rule] = [
    data_path("canceled_at"),
    data_path("canceledAt"),
    data_path("cancelled_at"),
]


@dataclass(frozen=True)
class EventEnvelope:
    """Identifiers every delivery is logged under."""

    event_id: str
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]


def generate_event_id() -> str:
    """Fallback id for deliveries that carry none. Format: evt_{ms}_{random}"""
    return f"evt_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def extract_envelope(event: dict, webhook_id: Optional[str] = None) -> EventEnvelope:
    """
    Pull event id, type, customer id and subscription id out of an event.

    The ``webhook-id`` header is the processor's delivery id and wins over
    anything in the body.
    """
    event_id = webhook_id or first_present_str(EVENT_ID, event) or generate_event_id()
    return EventEnvelope(
        event_id=event_id,
        event_type=first_present_str(EVENT_TYPE, event) or "unknown",
        customer_id=first_present_str(CUSTOMER_ID, event),
        subscription_id=first_present_str(SUBSCRIPTION_ID, event),
    )
