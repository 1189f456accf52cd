"""Risk validation — decides whether a signal may become a real order."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from tradeguard.config.schema import RiskConfig
from tradeguard.models import AccountState, Signal

if TYPE_CHECKING:
    from tradeguard.risk.exposure import ExposureTracker

log = structlog.get_logger("risk_validator")


class RejectReason(str, Enum):
    LOW_CONFIDENCE = "low_confidence"
    POSITION_TOO_LARGE = "position_too_large"
    POSITION_TOO_SMALL = "position_too_small"
    DAILY_LOSS_LIMIT_REACHED = "daily_loss_limit_reached"
    EMERGENCY_STOP = "emergency_stop"
    TOO_MANY_OPEN_POSITIONS = "too_many_open_positions"
    DAILY_TRADE_LIMIT_REACHED = "daily_trade_limit_reached"


# Rejections that stop the trading session until reset
HALTING_REASONS = frozenset({
    RejectReason.DAILY_LOSS_LIMIT_REACHED,
    RejectReason.EMERGENCY_STOP,
})


@dataclass(frozen=True)
class RiskVerdict:
    """Result of a risk check — accepted, or rejected with a reason."""

    accepted: bool
    reason: RejectReason | None = None
    detail: str = ""

    @property
    def halts_trading(self) -> bool:
        return self.reason in HALTING_REASONS


ACCEPT = RiskVerdict(accepted=True)


def _reject(reason: RejectReason, detail: str) -> RiskVerdict:
    return RiskVerdict(accepted=False, reason=reason, detail=detail)


def validate(signal: Signal, account: AccountState, config: RiskConfig) -> RiskVerdict:
    """Composite risk check — returns the first failing verdict or ACCEPT.

    Pure: the same (signal, account, config) always yields the same verdict.
    A halted account rejects every signal with its halt reason.
    """
    if account.halted:
        return _reject(RejectReason(account.halt_reason), "trading halted")

    if signal.confidence < config.decision_threshold:
        return _reject(
            RejectReason.LOW_CONFIDENCE,
            f"confidence {signal.confidence} < {config.decision_threshold}",
        )

    if signal.amount > config.max_position_size:
        return _reject(
            RejectReason.POSITION_TOO_LARGE,
            f"amount {signal.amount} > {config.max_position_size}",
        )

    if signal.amount < config.min_position_size:
        return _reject(
            RejectReason.POSITION_TOO_SMALL,
            f"amount {signal.amount} < {config.min_position_size}",
        )

    if account.daily_realized_pnl < -config.daily_loss_limit:
        return _reject(
            RejectReason.DAILY_LOSS_LIMIT_REACHED,
            f"daily pnl {account.daily_realized_pnl} < -{config.daily_loss_limit}",
        )

    if account.total_realized_pnl < -config.emergency_stop_loss:
        return _reject(
            RejectReason.EMERGENCY_STOP,
            f"total pnl {account.total_realized_pnl} < -{config.emergency_stop_loss}",
        )

    open_count = account.open_position_count
    if open_count >= config.diversification_limit:
        return _reject(
            RejectReason.TOO_MANY_OPEN_POSITIONS,
            f"open positions ({open_count}/{config.diversification_limit})",
        )

    if account.daily_trade_count >= config.max_daily_trades:
        return _reject(
            RejectReason.DAILY_TRADE_LIMIT_REACHED,
            f"daily trades ({account.daily_trade_count}/{config.max_daily_trades})",
        )

    return ACCEPT


class RiskValidator:
    """Validates signals against a live ExposureTracker.

    The only side effect is halting the tracker when a verdict calls for it.
    """

    def __init__(self, config: RiskConfig, tracker: ExposureTracker) -> None:
        self.config = config
        self.tracker = tracker

    def check(self, signal: Signal) -> RiskVerdict:
        verdict = validate(signal, self.tracker.snapshot(), self.config)
        if verdict.halts_trading and not self.tracker.halted:
            self.tracker.halt(verdict.reason, detail=verdict.detail)
        if not verdict.accepted:
            log.info(
                "signal_rejected",
                symbol=signal.symbol,
                side=signal.side,
                amount=str(signal.amount),
                confidence=signal.confidence,
                reason=verdict.reason.value,
                detail=verdict.detail,
            )
        return verdict
