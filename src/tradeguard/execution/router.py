"""OrderRouter — turns accepted, sized signals into exchange orders."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import TypeVar

import structlog

from tradeguard.exchange.base import ExchangeClient
from tradeguard.execution.errors import ExchangeRejected, NetworkError, OrderExecutionError
from tradeguard.models import ExitReason, Fill, Position, Signal
from tradeguard.risk.exposure import ExposureTracker, PositionNotFound

log = structlog.get_logger("order_router")

T = TypeVar("T")

BASE_INCREMENT = Decimal("0.00000001")


def notional_to_base(notional: Decimal, price: Decimal) -> Decimal:
    """Convert a quote notional into base units, rounded down to 8 dp."""
    if price <= 0:
        raise ValueError(f"invalid reference price {price}")
    return (notional / price).quantize(BASE_INCREMENT, rounding=ROUND_DOWN)


class OrderRouter:
    """Places market orders and forwards the fills to the ExposureTracker.

    Orders are never retried: resubmitting after an unknown outcome risks
    executing twice, so failures go back to the caller as-is. Orders for one
    symbol run one at a time so its fills are recorded in order; the tracker
    lock is taken only to apply a fill that has already happened.
    """

    def __init__(
        self,
        exchange: ExchangeClient,
        tracker: ExposureTracker,
        timeout_s: float = 10.0,
    ) -> None:
        self.exchange = exchange
        self.tracker = tracker
        self.timeout_s = timeout_s
        self._symbol_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _call(self, awaitable: Awaitable[T], symbol: str, what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"{what} timed out after {self.timeout_s}s", symbol=symbol) from exc

    async def open(self, signal: Signal, notional: Decimal) -> Position:
        """Open a position worth *notional* quote currency in the signal's direction."""
        async with self._symbol_locks[signal.symbol]:
            price = await self._call(
                self.exchange.get_price(signal.symbol), signal.symbol, "price lookup",
            )
            amount = notional_to_base(notional, price)
            if amount <= 0:
                raise ExchangeRejected(
                    f"notional {notional} is below one base increment at {price}",
                    symbol=signal.symbol,
                )

            try:
                result = await self._call(
                    self.exchange.place_market_order(signal.symbol, signal.side, amount),
                    signal.symbol,
                    "market order",
                )
            except OrderExecutionError as exc:
                log.error(
                    "order_failed",
                    symbol=signal.symbol,
                    side=signal.side,
                    notional=str(notional),
                    amount=str(amount),
                    error_kind=exc.kind,
                    error=str(exc),
                )
                raise

            log.info(
                "order_placed",
                order_id=result.order_id,
                symbol=result.symbol,
                side=result.side,
                notional=str(notional),
                reference_price=str(price),
                filled_amount=str(result.filled_amount),
                average_price=str(result.average_price),
            )
            fill = Fill.from_order(result, ts=datetime.now(timezone.utc))
            return self.tracker.record_fill(fill)

    async def close(self, position: Position, reason: ExitReason = "signal") -> Position:
        """Place the offsetting order for an open position and book the result.

        The position is re-read under the symbol lock: a close that lost the
        race to another close raises PositionNotFound without placing an order.
        The order is sized to the amount still open.
        """
        async with self._symbol_locks[position.symbol]:
            current = self.tracker.get(position.id)
            if current is None or current.status != "open":
                raise PositionNotFound(f"no open position {position.id!r}")
            position = current
            try:
                result = await self._call(
                    self.exchange.place_market_order(
                        position.symbol, position.exit_side, position.amount,
                    ),
                    position.symbol,
                    "closing order",
                )
            except OrderExecutionError as exc:
                log.error(
                    "close_order_failed",
                    position_id=position.id,
                    symbol=position.symbol,
                    exit_reason=reason,
                    error_kind=exc.kind,
                    error=str(exc),
                )
                raise

            fill = Fill.from_order(
                result,
                ts=datetime.now(timezone.utc),
                closes_position_id=position.id,
                exit_reason=reason,
            )
            return self.tracker.record_fill(fill)

    async def refresh_balance(self, quote_currency: str = "USD") -> Decimal:
        """Pull the exchange balance into the tracker's account state."""
        balances = await self._call(self.exchange.get_balance(), quote_currency, "balance lookup")
        available = balances.get(quote_currency, Decimal("0"))
        self.tracker.set_available_balance(available)
        return available
