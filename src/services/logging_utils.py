"""Service layer logging utilities.

Provides structured logging functions for ledger operations, enabling
consistent log format and context across consumption, reversal and belt
lifecycle operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="consume_compound",
        outcome="success",
        compound_code="nk5",
        required_kg="200.000",
    )
"""

import logging
from typing import Any, Optional

LOGGER_NAMESPACE = "belt_tracker.services"

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'belt_tracker.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'belt_tracker.services.compound_consumption_service'
    """
    # Extract just the module name if full path is provided
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging
    and is also appended to the message as key=value pairs.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "consume_compound", "delete_belt")
        outcome: Outcome description (e.g., "success", "retry", "error")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, quantities, etc.)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    details = " ".join(f"{key}={value}" for key, value in context.items())
    message = f"{operation}: {outcome}"
    if details:
        message = f"{message} ({details})"
    logger.log(level, message, extra=extra)


def configure_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
    """Attach a stream handler to the root logger (used by the CLI)."""
    logging.basicConfig(level=level, format=fmt or DEFAULT_LOG_FORMAT)
    logging.getLogger(LOGGER_NAMESPACE).setLevel(level)
