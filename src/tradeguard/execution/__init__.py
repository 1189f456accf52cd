"""Order execution — routing and error taxonomy."""

from tradeguard.execution.errors import (
    ExchangeRejected,
    InsufficientFunds,
    NetworkError,
    OrderExecutionError,
)
from tradeguard.execution.router import OrderRouter, notional_to_base

__all__ = [
    "ExchangeRejected",
    "InsufficientFunds",
    "NetworkError",
    "OrderExecutionError",
    "OrderRouter",
    "notional_to_base",
]
