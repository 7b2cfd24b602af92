"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across the stock ledger, consumption
planner and prescription services.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="issue_prescription",
        outcome="success",
        prescription_id="3f6c...",
        line_count=2,
    )

    log_operation(
        logger,
        operation="consume",
        outcome="insufficient_stock",
        level=logging.WARNING,
        short_items=["amoxicillin-id"],
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "clinic_backoffice"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named 'clinic_backoffice.services.<module>'.

    Example:
        >>> logger = get_service_logger("src.services.inventory_service")
        >>> logger.name
        'clinic_backoffice.services.inventory_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.services.{name}")


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
    handlers, and the message itself stays short: "<operation>: <outcome>".

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "adjust_quantity", "consume")
        outcome: Outcome description (e.g., "success", "insufficient_stock")
        level: Log level (default: INFO)
        **context: Additional context fields (entity IDs, counts, errors)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
