"""Position sizing, protection levels and P&L — pure functions, no I/O."""

from __future__ import annotations

import random
from decimal import ROUND_DOWN, Decimal

from tradeguard.config.schema import RiskConfig
from tradeguard.models import Side, Signal

CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return min(max(value, low), high)


def confidence_scale(confidence: int, decision_threshold: int) -> Decimal:
    """Map confidence in [threshold, 100] onto [0, 1].

    scale = (confidence - threshold) / (100 - threshold)

    A threshold of 100 leaves no range to scale over; any passing signal
    gets the full scale.
    """
    if decision_threshold >= 100:
        return Decimal("1")
    scale = Decimal(confidence - decision_threshold) / Decimal(100 - decision_threshold)
    return clamp(scale, Decimal("0"), Decimal("1"))


class PositionSizer:
    """Decides the quote notional to commit for an accepted signal.

    The policy is reconstructed from the live trading service's observed
    behaviour rather than derived from a risk model:

    - Linear: min + (max - min) * confidence_scale, clamped to [min, max].
    - Micro-trade bias: with probability ``micro.probability`` the size is
      drawn from [min, min + micro.band] instead. This branch only runs when
      an explicit ``random.Random`` is injected, so a sizer built without
      one is fully deterministic.
    """

    def __init__(self, config: RiskConfig, rng: random.Random | None = None) -> None:
        self.config = config
        self.rng = rng

    def size(self, signal: Signal) -> Decimal:
        cfg = self.config
        low, high = cfg.min_position_size, cfg.max_position_size

        if cfg.micro.enabled and self.rng is not None:
            if self.rng.random() < cfg.micro.probability:
                draw = Decimal(str(self.rng.random()))
                return self._quantise(low + draw * cfg.micro.band)

        scale = confidence_scale(signal.confidence, cfg.decision_threshold)
        return self._quantise(low + (high - low) * scale)

    def _quantise(self, amount: Decimal) -> Decimal:
        """Round down to cents, then clamp so rounding never leaves the band."""
        low, high = self.config.min_position_size, self.config.max_position_size
        return clamp(amount.quantize(CENT, rounding=ROUND_DOWN), low, high)


def is_micro_trade(notional: Decimal, config: RiskConfig) -> bool:
    return notional <= config.micro.threshold


def stop_loss_price(side: Side, entry_price: Decimal, percentage: Decimal) -> Decimal:
    """Stop-loss trigger price.

    buy:  entry * (1 - pct/100)
    sell: entry * (1 + pct/100)
    """
    pct = percentage / _HUNDRED
    if side == "buy":
        return entry_price * (1 - pct)
    return entry_price * (1 + pct)


def take_profit_price(side: Side, entry_price: Decimal, percentage: Decimal) -> Decimal:
    """Take-profit trigger price.

    buy:  entry * (1 + pct/100)
    sell: entry * (1 - pct/100)
    """
    pct = percentage / _HUNDRED
    if side == "buy":
        return entry_price * (1 + pct)
    return entry_price * (1 - pct)


def protection_levels(
    side: Side,
    entry_price: Decimal,
    notional: Decimal,
    config: RiskConfig,
) -> tuple[Decimal | None, Decimal | None]:
    """Return (stop_price, take_profit_price) for a new position.

    Micro trades use the tighter micro percentages. A percentage of zero
    disables that level.
    """
    if is_micro_trade(notional, config):
        sl_pct = config.micro.stop_loss_percentage
        tp_pct = config.micro.take_profit_percentage
    else:
        sl_pct = config.stop_loss_percentage
        tp_pct = config.take_profit_percentage

    stop = stop_loss_price(side, entry_price, sl_pct) if sl_pct > 0 else None
    tp = take_profit_price(side, entry_price, tp_pct) if tp_pct > 0 else None
    return stop, tp


def realized_pnl(
    side: Side,
    entry_price: Decimal,
    exit_price: Decimal,
    amount: Decimal,
) -> Decimal:
    """(exit - entry) * amount * direction, direction +1 for buy, -1 for sell."""
    direction = 1 if side == "buy" else -1
    return (exit_price - entry_price) * amount * direction
