"""Signal model — a proposed trade, emitted by a scorer or an operator."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Side = Literal["buy", "sell"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Signal(BaseModel):
    """A trading signal. Immutable once created.

    ``amount`` is always the quote-currency (USD) notional, for buys and
    sells alike; conversion to base units happens at the order router.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(min_length=1)
    side: Side
    amount: Decimal = Field(gt=0)
    confidence: int = Field(ge=0, le=100)
    source: Literal["ai", "manual"] = "manual"
    ts: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)
