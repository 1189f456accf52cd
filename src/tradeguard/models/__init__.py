"""Pydantic domain models."""

from tradeguard.models.position import (
    AccountState,
    ExitReason,
    Fill,
    OrderResult,
    Position,
)
from tradeguard.models.signal import Side, Signal

__all__ = [
    "AccountState",
    "ExitReason",
    "Fill",
    "OrderResult",
    "Position",
    "Side",
    "Signal",
]
