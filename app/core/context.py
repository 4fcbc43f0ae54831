"""
Request context management for log correlation.

Uses contextvars for async-safe propagation of the request id, the
upstream correlation id and the webhook delivery id currently in flight.

Usage:
    # In middleware (automatic)
    set_request_id(generate_request_id())

    # In the webhook pipeline
    set_webhook_id(event_id)

    # In error handlers
    capture_exception(exc, context=get_context_dict())
"""

from contextvars import ContextVar
from typing import Optional
import uuid

__all__ = [
    "set_request_id",
    "get_request_id",
    "generate_request_id",
    "set_webhook_id",
    "get_webhook_id",
    "set_correlation_id",
    "get_correlation_id",
    "clear_context",
    "get_context_dict",
]

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_webhook_id: ContextVar[Optional[str]] = ContextVar("webhook_id", default=None)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """
    Generate a new request ID.

    Format: req_{16 hex chars}
    """
    return f"req_{uuid.uuid4().hex[:16]}"


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_webhook_id(webhook_id: str) -> None:
    """Set the id of the webhook delivery being processed."""
    _webhook_id.set(webhook_id)


def get_webhook_id() -> Optional[str]:
    return _webhook_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation ID for distributed tracing.

    Passed through the X-Correlation-ID header.
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def clear_context() -> None:
    """Clear all context variables at the end of a request."""
    _request_id.set(None)
    _webhook_id.set(None)
    _correlation_id.set(None)


def get_context_dict() -> dict:
    """Get all context variables as dict, for enriching error reports."""
    return {
        "request_id": get_request_id(),
        "webhook_id": get_webhook_id(),
        "correlation_id": get_correlation_id(),
    }
