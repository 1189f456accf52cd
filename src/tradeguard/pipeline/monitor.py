"""PositionMonitor — closes positions whose stop-loss or take-profit is crossed."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import structlog

from tradeguard.execution.errors import OrderExecutionError
from tradeguard.models import Position
from tradeguard.pipeline.engine import TradingPipeline

log = structlog.get_logger("position_monitor")


class PositionMonitor:
    """Polls prices for symbols with open positions and exits on trigger.

    A failed exit order is logged and picked up again on the next poll.
    """

    def __init__(self, pipeline: TradingPipeline) -> None:
        self.pipeline = pipeline
        self.tracker = pipeline.tracker
        self.exchange = pipeline.router.exchange

    async def fetch_prices(self) -> dict[str, Decimal]:
        prices: dict[str, Decimal] = {}
        for symbol in sorted({p.symbol for p in self.tracker.open_positions()}):
            try:
                prices[symbol] = await self.exchange.get_price(symbol)
            except OrderExecutionError as exc:
                log.warning("price_unavailable", symbol=symbol, error_kind=exc.kind,
                            error=str(exc))
        return prices

    async def check_exits(self) -> list[Position]:
        """Close every position whose protection level is crossed; return the closed ones.

        A partially filled exit leaves the remainder open for the next poll.
        """
        prices = await self.fetch_prices()
        closed: list[Position] = []
        for position, reason in self.tracker.positions_to_exit(prices):
            log.info("exit_triggered", position_id=position.id, symbol=position.symbol,
                     exit_reason=reason, price=str(prices[position.symbol]))
            try:
                result = await self.pipeline.close_position(position.id, reason)
            except OrderExecutionError:
                # logged by the router
                continue
            except KeyError:
                log.info("exit_skipped_already_closed", position_id=position.id)
                continue
            if result.status == "closed":
                closed.append(result)
        return closed

    async def run(self, interval_s: float) -> None:
        """Poll forever; a failed poll is logged and the next one runs on schedule."""
        log.info("position_monitor_started", interval_s=interval_s)
        while True:
            try:
                await self.check_exits()
            except Exception:
                log.exception("position_monitor_error")
            await asyncio.sleep(interval_s)
