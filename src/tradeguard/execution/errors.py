"""Order execution errors — raised by exchange clients, never retried."""

from __future__ import annotations


class OrderExecutionError(Exception):
    """An order could not be placed or its outcome is unknown."""

    kind = "order_error"

    def __init__(self, message: str, symbol: str | None = None) -> None:
        super().__init__(message)
        self.symbol = symbol


class NetworkError(OrderExecutionError):
    """Transport failure or timeout. The order may or may not have executed."""

    kind = "network_error"


class ExchangeRejected(OrderExecutionError):
    """The exchange refused the order."""

    kind = "exchange_rejected"


class InsufficientFunds(ExchangeRejected):
    """The exchange refused the order for lack of balance."""

    kind = "insufficient_funds"
