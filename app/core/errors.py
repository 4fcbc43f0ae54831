"""
Unified error reporting with Sentry integration.

Provides:
- Automatic Sentry error tracking (when configured)
- Structured logging with request/webhook context enrichment
- Graceful degradation when Sentry is unavailable

Usage:
    # Capture an exception
    capture_exception(exc, context={"subscription_id": "sub_123"})

    # Capture a message (non-exception event worth an operator's attention)
    capture_message("Unknown product id", level="warning")
"""

from typing import Optional, Any, Dict
from datetime import datetime, timezone
import structlog

from app.core.context import get_request_id, get_webhook_id, get_context_dict

logger = structlog.get_logger(__name__)

__all__ = [
    "init_sentry",
    "capture_exception",
    "capture_message",
    "is_sentry_enabled",
]

# Sentry SDK is an optional dependency
_sentry_initialized: bool = False


def init_sentry(
    dsn: str,
    environment: str = "production",
    traces_sample_rate: float = 0.1,
    release: Optional[str] = None,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Args:
        dsn: Sentry DSN (from project settings)
        environment: Environment name (production, staging, development)
        traces_sample_rate: Percentage of transactions to trace (0.0-1.0)
        release: Release version

    Returns:
        True if initialization successful, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration
        import logging

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            ignore_errors=[
                KeyboardInterrupt,
                SystemExit,
            ],
            before_send=_before_send,
        )

        _sentry_initialized = True
        logger.info(
            "Sentry initialized",
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=release,
        )
        return True

    except ImportError:
        logger.warning("Sentry SDK not installed, error tracking disabled")
        return False
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Tag events with the request and webhook delivery ids."""
    if "request" in event:
        url = event["request"].get("url", "")
        if "/health" in url:
            return None

    request_id = get_request_id()
    if request_id:
        event.setdefault("tags", {})["request_id"] = request_id

    webhook_id = get_webhook_id()
    if webhook_id:
        event.setdefault("tags", {})["webhook_id"] = webhook_id

    return event


def is_sentry_enabled() -> bool:
    return _sentry_initialized


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    fingerprint: Optional[list[str]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception with Sentry and structured logging.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"event_id": "msg_123"})
        level: Severity level (debug, info, warning, error, fatal)
        fingerprint: Custom grouping fingerprint for Sentry
        tags: Additional tags for filtering in Sentry

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }

    # Always logged, even without Sentry
    logger.error(
        "Exception captured",
        exc_info=exc,
        **enriched_context,
    )

    if _sentry_initialized:
        try:
            import sentry_sdk

            with sentry_sdk.new_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                if fingerprint:
                    scope.fingerprint = fingerprint

                scope.level = level
                return sentry_sdk.capture_exception(exc)
        except Exception as e:
            logger.warning("Failed to send exception to Sentry", error=str(e))

    return None


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture a message with Sentry (for non-exception events).

    Used for conditions that do not fail a delivery but need an operator
    to look at them, such as an unrecognised product id.

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        **get_context_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **(context or {}),
    }

    log_func = getattr(logger, level, logger.info)
    log_func(message, **enriched_context)

    if _sentry_initialized:
        try:
            import sentry_sdk

            with sentry_sdk.new_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)

                if tags:
                    for key, value in tags.items():
                        scope.set_tag(key, value)

                scope.level = level
                return sentry_sdk.capture_message(message, level=level)
        except Exception as e:
            logger.warning("Failed to send message to Sentry", error=str(e))

    return None
