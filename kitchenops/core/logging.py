"""Logging and observability configuration using Pydantic Logfire.

All modules use Python's standard logging library (logging.getLogger(__name__));
Logfire adds spans around service operations.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_actor_context(logger, "info", "Indent submitted", actor_id="7", indent_id="12")
"""

import logging

import logfire

from kitchenops.core.config import settings


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment."""
    logfire.configure(
        token=settings.logfire_token,
        service_name="kitchenops",
        service_version="0.1.0",
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("stock_ledger.adjust_stock"):
            # Your service logic here
            pass
    """
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Additional context fields (event_id, stock_id, etc.)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_actor_context(
    logger: logging.Logger,
    level: str,
    message: str,
    actor_id: str | None = None,
    **extra: object,
) -> None:
    """Log a message with the acting staff member attached.

    Usage:
        log_with_actor_context(logger, "info", "Stock adjusted", actor_id="7", stock_id="3")
    """
    context = {"actor_id": actor_id, **extra} if actor_id else extra
    log_with_context(logger, level, message, **context)
