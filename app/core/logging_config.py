"""
Structured logging configuration using structlog.

JSON-formatted logs in production (searchable/aggregatable) and
human-readable console output everywhere else.

Usage:
    from app.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("subscription updated", subscription_id="sub_123", status="active")

Output in production (JSON):
    {"event": "subscription updated", "subscription_id": "sub_123", "status": "active",
     "timestamp": "2024-01-01T12:00:00Z", "level": "info", "webhook_id": "msg_..."}
"""

import logging
import os
import sys
from typing import Any

import structlog

IS_PRODUCTION = os.getenv("ENVIRONMENT") == "production"
IS_TEST = "pytest" in sys.modules


def configure_logging() -> None:
    """Configure structlog with appropriate processors for the environment."""

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if IS_PRODUCTION:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.INFO,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger with JSON/console output based on environment
    """
    return structlog.get_logger(name)


configure_logging()
