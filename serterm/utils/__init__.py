"""
Utilities package for serterm.

Contains common utility functions used across the serterm codebase.
"""

from .logging_utils import (
    log_debug_operation,
    log_relay_event,
    log_session_action,
    log_session_error,
    log_transfer_event,
)

__all__ = [
    "log_session_action",
    "log_session_error",
    "log_relay_event",
    "log_transfer_event",
    "log_debug_operation",
]
