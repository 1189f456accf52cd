"""Position, fill and account snapshot models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict

from tradeguard.models.signal import Side

ExitReason = Literal["signal", "stop_loss", "take_profit", "manual"]


class OrderResult(BaseModel):
    """What the exchange reports back for a market order."""

    order_id: str
    symbol: str
    side: Side
    filled_amount: Decimal  # base units
    average_price: Decimal
    status: Literal["filled", "partially_filled"] = "filled"


class Fill(BaseModel):
    """An order result applied to exposure.

    A fill with ``closes_position_id`` set closes that position; any other
    fill opens a new position keyed by ``order_id``.
    """

    model_config = ConfigDict(frozen=True)

    order_id: str
    symbol: str
    side: Side
    filled_amount: Decimal
    average_price: Decimal
    ts: datetime
    closes_position_id: str | None = None
    exit_reason: ExitReason | None = None

    @classmethod
    def from_order(
        cls,
        result: OrderResult,
        ts: datetime,
        closes_position_id: str | None = None,
        exit_reason: ExitReason | None = None,
    ) -> Fill:
        return cls(
            order_id=result.order_id,
            symbol=result.symbol,
            side=result.side,
            filled_amount=result.filled_amount,
            average_price=result.average_price,
            ts=ts,
            closes_position_id=closes_position_id,
            exit_reason=exit_reason,
        )


class Position(BaseModel):
    """An open or closed tracked trade. Owned by the ExposureTracker."""

    model_config = ConfigDict(frozen=True)

    id: str
    symbol: str
    side: Side
    amount: Decimal  # base units
    entry_price: Decimal
    notional: Decimal  # quote currency at entry
    opened_at: datetime
    status: Literal["open", "closed"] = "open"
    is_micro_trade: bool = False
    stop_price: Decimal | None = None
    take_profit_price: Decimal | None = None
    exit_price: Decimal | None = None
    closed_at: datetime | None = None
    exit_reason: ExitReason | None = None
    realized_pnl: Decimal | None = None

    @property
    def direction_sign(self) -> int:
        return 1 if self.side == "buy" else -1

    @property
    def exit_side(self) -> Side:
        return "sell" if self.side == "buy" else "buy"


class AccountState(BaseModel):
    """Point-in-time capital and exposure snapshot read by the risk validator."""

    model_config = ConfigDict(frozen=True)

    available_balance: Decimal = Decimal("0")
    open_positions: tuple[Position, ...] = ()
    daily_realized_pnl: Decimal = Decimal("0")
    total_realized_pnl: Decimal = Decimal("0")
    daily_trade_count: int = 0
    halt_reason: str | None = None

    @property
    def halted(self) -> bool:
        return self.halt_reason is not None

    @property
    def open_position_count(self) -> int:
        return sum(1 for p in self.open_positions if p.status == "open")
