"""Risk controls — validation, sizing and exposure tracking."""

from tradeguard.risk.exposure import (
    DuplicatePosition,
    ExposureError,
    ExposureTracker,
    PositionNotFound,
)
from tradeguard.risk.sizing import (
    PositionSizer,
    confidence_scale,
    is_micro_trade,
    protection_levels,
    realized_pnl,
    stop_loss_price,
    take_profit_price,
)
from tradeguard.risk.validator import (
    HALTING_REASONS,
    RejectReason,
    RiskValidator,
    RiskVerdict,
    validate,
)

__all__ = [
    "DuplicatePosition",
    "ExposureError",
    "ExposureTracker",
    "HALTING_REASONS",
    "PositionNotFound",
    "PositionSizer",
    "RejectReason",
    "RiskValidator",
    "RiskVerdict",
    "confidence_scale",
    "is_micro_trade",
    "protection_levels",
    "realized_pnl",
    "stop_loss_price",
    "take_profit_price",
    "validate",
]
