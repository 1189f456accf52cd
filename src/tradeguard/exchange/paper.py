"""PaperExchange — in-process simulated exchange for dry runs and tests."""

from __future__ import annotations

import itertools
from collections import defaultdict
from decimal import Decimal

import structlog

from tradeguard.exchange.base import ExchangeClient, base_currency, quote_currency
from tradeguard.execution.errors import ExchangeRejected, InsufficientFunds
from tradeguard.models import OrderResult, Side

log = structlog.get_logger("paper_exchange")


class PaperExchange(ExchangeClient):
    """Fills market orders instantly at the last price set for the symbol.

    Prices must be supplied explicitly via ``set_price``; an order for a
    symbol without a price is rejected rather than filled at a made-up price.
    Sells of a base currency not held open a short, so only the quote
    balance is checked for buys.
    """

    name = "paper"

    def __init__(
        self,
        balances: dict[str, Decimal] | None = None,
        prices: dict[str, Decimal] | None = None,
    ) -> None:
        self._balances: dict[str, Decimal] = defaultdict(Decimal)
        self._balances.update(balances or {})
        self._prices: dict[str, Decimal] = dict(prices or {})
        self._ids = itertools.count(1)
        self.orders: list[OrderResult] = []

    def set_price(self, symbol: str, price: Decimal) -> None:
        self._prices[symbol] = price

    async def get_price(self, symbol: str) -> Decimal:
        price = self._prices.get(symbol)
        if price is None:
            raise ExchangeRejected(f"no price for {symbol}", symbol=symbol)
        return price

    async def get_balance(self) -> dict[str, Decimal]:
        return {ccy: amt for ccy, amt in self._balances.items() if amt != 0}

    async def place_market_order(self, symbol: str, side: Side, amount: Decimal) -> OrderResult:
        if amount <= 0:
            raise ExchangeRejected(f"invalid order size {amount}", symbol=symbol)
        price = await self.get_price(symbol)
        base, quote = base_currency(symbol), quote_currency(symbol)
        cost = amount * price

        if side == "buy":
            if self._balances[quote] < cost:
                raise InsufficientFunds(
                    f"need {cost} {quote}, have {self._balances[quote]}",
                    symbol=symbol,
                )
            self._balances[quote] -= cost
            self._balances[base] += amount
        else:
            self._balances[quote] += cost
            self._balances[base] -= amount

        result = OrderResult(
            order_id=f"paper-{next(self._ids)}",
            symbol=symbol,
            side=side,
            filled_amount=amount,
            average_price=price,
        )
        self.orders.append(result)
        log.debug("paper_order_filled", order_id=result.order_id, symbol=symbol,
                  side=side, amount=str(amount), price=str(price))
        return result
