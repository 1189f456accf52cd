"""ExposureTracker — the single owner of open positions and realised P&L."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal

import structlog

from tradeguard.config.schema import RiskConfig
from tradeguard.models import AccountState, ExitReason, Fill, Position
from tradeguard.risk.sizing import is_micro_trade, protection_levels, realized_pnl
from tradeguard.risk.validator import RejectReason

log = structlog.get_logger("exposure_tracker")


class ExposureError(Exception):
    """A fill that cannot be applied to the current exposure."""


class DuplicatePosition(ExposureError):
    pass


class PositionNotFound(ExposureError):
    pass


class ExposureTracker:
    """Positions, daily/total realised P&L, trade count and halt state.

    Every mutation runs under one lock and swaps in fully computed values,
    so readers never observe a position closed without its P&L booked.
    The daily reset is triggered externally (see ``pipeline.schedule``).
    """

    def __init__(self, config: RiskConfig, available_balance: Decimal = Decimal("0")) -> None:
        self.config = config
        self._lock = threading.Lock()
        self._positions: dict[str, Position] = {}
        self._available_balance = available_balance
        self._daily_pnl = Decimal("0")
        self._total_pnl = Decimal("0")
        self._daily_trades = 0
        self._halt_reason: RejectReason | None = None

    # ── Queries ───────────────────────────────────────────────

    def snapshot(self) -> AccountState:
        with self._lock:
            return AccountState(
                available_balance=self._available_balance,
                open_positions=tuple(
                    p for p in self._positions.values() if p.status == "open"
                ),
                daily_realized_pnl=self._daily_pnl,
                total_realized_pnl=self._total_pnl,
                daily_trade_count=self._daily_trades,
                halt_reason=self._halt_reason.value if self._halt_reason else None,
            )

    def get(self, position_id: str) -> Position | None:
        with self._lock:
            return self._positions.get(position_id)

    def open_positions(self, symbol: str | None = None) -> list[Position]:
        with self._lock:
            return [
                p for p in self._positions.values()
                if p.status == "open" and (symbol is None or p.symbol == symbol)
            ]

    def closed_positions(self) -> list[Position]:
        with self._lock:
            return [p for p in self._positions.values() if p.status == "closed"]

    @property
    def daily_realized_pnl(self) -> Decimal:
        with self._lock:
            return self._daily_pnl

    @property
    def halted(self) -> bool:
        return self._halt_reason is not None

    @property
    def halt_reason(self) -> RejectReason | None:
        return self._halt_reason

    # ── Mutations ─────────────────────────────────────────────

    def record_fill(self, fill: Fill) -> Position:
        """Apply a confirmed fill: open a new position or reduce/close an existing one.

        A closing fill for less than the open amount books P&L on the filled
        part and leaves the remainder open. A closing fill for more than the
        open amount is rejected. Raises ExposureError before changing anything
        if the fill does not match the tracked exposure.
        """
        with self._lock:
            if fill.closes_position_id is None:
                position = self._open_locked(fill)
            else:
                position, pnl = self._close_locked(fill)

        if fill.closes_position_id is None:
            log.info(
                "position_opened",
                position_id=position.id,
                symbol=position.symbol,
                side=position.side,
                amount=str(position.amount),
                entry_price=str(position.entry_price),
                notional=str(position.notional),
                micro=position.is_micro_trade,
                stop_price=str(position.stop_price) if position.stop_price else None,
                take_profit_price=(
                    str(position.take_profit_price) if position.take_profit_price else None
                ),
            )
        elif position.status == "open":
            log.warning(
                "position_reduced",
                position_id=position.id,
                symbol=position.symbol,
                filled_amount=str(fill.filled_amount),
                remaining_amount=str(position.amount),
                exit_price=str(fill.average_price),
                realized_pnl=str(pnl),
            )
        else:
            log.info(
                "position_closed",
                position_id=position.id,
                symbol=position.symbol,
                exit_reason=position.exit_reason,
                exit_price=str(position.exit_price),
                realized_pnl=str(position.realized_pnl),
                micro=position.is_micro_trade,
            )
        return position

    def _open_locked(self, fill: Fill) -> Position:
        if fill.order_id in self._positions:
            raise DuplicatePosition(f"position {fill.order_id!r} already tracked")

        notional = fill.filled_amount * fill.average_price
        stop, tp = protection_levels(fill.side, fill.average_price, notional, self.config)
        position = Position(
            id=fill.order_id,
            symbol=fill.symbol,
            side=fill.side,
            amount=fill.filled_amount,
            entry_price=fill.average_price,
            notional=notional,
            opened_at=fill.ts,
            is_micro_trade=is_micro_trade(notional, self.config),
            stop_price=stop,
            take_profit_price=tp,
        )
        self._positions[position.id] = position
        self._daily_trades += 1
        return position

    def _close_locked(self, fill: Fill) -> tuple[Position, Decimal]:
        current = self._positions.get(fill.closes_position_id)
        if current is None or current.status != "open":
            raise PositionNotFound(f"no open position {fill.closes_position_id!r}")
        if fill.symbol != current.symbol or fill.side != current.exit_side:
            raise ExposureError(
                f"fill {fill.order_id!r} ({fill.side} {fill.symbol}) does not "
                f"offset position {current.id!r} ({current.side} {current.symbol})"
            )
        if fill.filled_amount <= 0 or fill.filled_amount > current.amount:
            raise ExposureError(
                f"fill {fill.order_id!r} for {fill.filled_amount} cannot close "
                f"{current.amount} of position {current.id!r}"
            )

        pnl = realized_pnl(current.side, current.entry_price, fill.average_price,
                           fill.filled_amount)
        booked = (current.realized_pnl or Decimal("0")) + pnl
        remaining = current.amount - fill.filled_amount
        if remaining > 0:
            updated = current.model_copy(update={
                "amount": remaining,
                "notional": remaining * current.entry_price,
                "realized_pnl": booked,
            })
        else:
            updated = current.model_copy(update={
                "status": "closed",
                "exit_price": fill.average_price,
                "closed_at": fill.ts,
                "exit_reason": fill.exit_reason or "signal",
                "realized_pnl": booked,
            })
        self._positions[updated.id] = updated
        self._daily_pnl += pnl
        self._total_pnl += pnl
        return updated, pnl

    def restore(self, positions: Iterable[Position]) -> int:
        """Re-track open positions loaded from the trade journal."""
        restored = 0
        with self._lock:
            for position in positions:
                if position.status != "open" or position.id in self._positions:
                    continue
                self._positions[position.id] = position
                restored += 1
        log.info("positions_restored", count=restored)
        return restored

    def restore_totals(
        self,
        daily_realized_pnl: Decimal,
        total_realized_pnl: Decimal,
        daily_trade_count: int,
    ) -> RejectReason | None:
        """Reinstate journaled P&L and trade count, halting if a loss limit is breached."""
        with self._lock:
            self._daily_pnl = daily_realized_pnl
            self._total_pnl = total_realized_pnl
            self._daily_trades = daily_trade_count
        log.info(
            "session_totals_restored",
            daily_realized_pnl=str(daily_realized_pnl),
            total_realized_pnl=str(total_realized_pnl),
            daily_trade_count=daily_trade_count,
        )
        if total_realized_pnl < -self.config.emergency_stop_loss:
            self.halt(RejectReason.EMERGENCY_STOP, "restored total pnl below emergency stop")
        elif daily_realized_pnl < -self.config.daily_loss_limit:
            self.halt(RejectReason.DAILY_LOSS_LIMIT_REACHED, "restored daily pnl below limit")
        return self._halt_reason

    def set_available_balance(self, amount: Decimal) -> None:
        with self._lock:
            self._available_balance = amount

    def halt(self, reason: RejectReason, detail: str = "") -> None:
        """Stop accepting signals until reset. In-flight orders are unaffected."""
        with self._lock:
            self._halt_reason = reason
            daily_pnl = self._daily_pnl
            total_pnl = self._total_pnl
        log.critical(
            "trading_halted",
            reason=reason.value,
            detail=detail,
            daily_realized_pnl=str(daily_pnl),
            total_realized_pnl=str(total_pnl),
        )

    def reset_halt(self) -> None:
        """Manual reset by an operator."""
        with self._lock:
            previous = self._halt_reason
            self._halt_reason = None
        if previous is not None:
            log.warning("trading_halt_reset", previous_reason=previous.value)

    def reset_daily(self, now: datetime | None = None) -> None:
        """Start a new UTC trading day.

        Zeroes the daily P&L and trade count and lifts a daily-loss halt.
        An emergency-stop halt stays until reset_halt().
        """
        with self._lock:
            closing_pnl = self._daily_pnl
            self._daily_pnl = Decimal("0")
            self._daily_trades = 0
            lifted = self._halt_reason == RejectReason.DAILY_LOSS_LIMIT_REACHED
            if lifted:
                self._halt_reason = None
        log.info(
            "daily_reset",
            day_end=now.isoformat() if now else None,
            closing_daily_pnl=str(closing_pnl),
            halt_lifted=lifted,
        )

    # ── Exit detection ────────────────────────────────────────

    @staticmethod
    def exit_trigger(position: Position, price: Decimal) -> ExitReason | None:
        """Return the protection level crossed at *price*, stop-loss first."""
        stop, tp = position.stop_price, position.take_profit_price
        if position.side == "buy":
            if stop is not None and price <= stop:
                return "stop_loss"
            if tp is not None and price >= tp:
                return "take_profit"
        else:
            if stop is not None and price >= stop:
                return "stop_loss"
            if tp is not None and price <= tp:
                return "take_profit"
        return None

    def positions_to_exit(
        self,
        prices: Mapping[str, Decimal],
    ) -> list[tuple[Position, ExitReason]]:
        """Open positions whose stop-loss or take-profit is crossed at *prices*."""
        triggered = []
        for position in self.open_positions():
            price = prices.get(position.symbol)
            if price is None:
                continue
            reason = self.exit_trigger(position, price)
            if reason is not None:
                triggered.append((position, reason))
        return triggered
