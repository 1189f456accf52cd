"""Structured logging."""

from tradeguard.logging.setup import (
    bind_signal_context,
    clear_signal_context,
    get_logger,
    setup_logging,
)

__all__ = ["bind_signal_context", "clear_signal_context", "get_logger", "setup_logging"]
