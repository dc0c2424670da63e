"""
Centralized logging utilities for serterm.

Provides standardized logging functions for the session, relay and transfer
code so log lines share one format across the codebase.
"""

import logging
from typing import Any


def log_session_action(
    logger: logging.Logger, action_name: str, details: str = ""
) -> None:
    """Log session lifecycle actions with consistent format."""
    detail_str = f": {details}" if details else ""
    logger.info(f"[SESSION] {action_name}{detail_str}")


def log_session_error(
    logger: logging.Logger, action_name: str, error: Exception
) -> None:
    """Log session errors with consistent format."""
    logger.error(f"[SESSION] Error during {action_name}: {error}")


def log_relay_event(logger: logging.Logger, path: str, event_type: str) -> None:
    """Log state changes of a duplex path (uplink/downlink)."""
    logger.debug(f"[{path.upper()}] {event_type}")


def log_transfer_event(
    logger: logging.Logger, event_type: str, details: str = ""
) -> None:
    """Log transfer helper events with consistent format."""
    detail_str = f": {details}" if details else ""
    logger.info(f"[TRANSFER] {event_type}{detail_str}")


def log_debug_operation(
    logger: logging.Logger, operation: str, details: Any = None
) -> None:
    """Log debug information for operations."""
    if details is not None:
        logger.debug(f"{operation}: {details}")
    else:
        logger.debug(f"{operation}")


__all__ = [
    "log_session_action",
    "log_session_error",
    "log_relay_event",
    "log_transfer_event",
    "log_debug_operation",
]
