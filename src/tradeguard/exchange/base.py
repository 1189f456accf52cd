"""Exchange client contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from tradeguard.models import OrderResult, Side


def base_currency(symbol: str) -> str:
    """Base currency of a pair, e.g. BTC for BTC-USD."""
    return symbol.split("-", 1)[0]


def quote_currency(symbol: str) -> str:
    """Quote currency of a pair, e.g. USD for BTC-USD."""
    parts = symbol.split("-", 1)
    return parts[1] if len(parts) == 2 else "USD"


class ExchangeClient(ABC):
    """What the order router needs from an exchange.

    Failures are raised as NetworkError, ExchangeRejected or
    InsufficientFunds from ``tradeguard.execution.errors``.
    """

    name: str

    @abstractmethod
    async def place_market_order(self, symbol: str, side: Side, amount: Decimal) -> OrderResult:
        """Place a market order for *amount* base units of *symbol*."""

    @abstractmethod
    async def get_balance(self) -> dict[str, Decimal]:
        """Available balance per currency."""

    @abstractmethod
    async def get_price(self, symbol: str) -> Decimal:
        """Current reference price of *symbol* in quote currency."""

    async def close(self) -> None:
        return None
