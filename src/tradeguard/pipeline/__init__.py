"""Trading pipeline — processing, exit monitoring, daily reset."""

from tradeguard.pipeline.engine import TradeDecision, TradingPipeline
from tradeguard.pipeline.monitor import PositionMonitor
from tradeguard.pipeline.schedule import (
    DailyReset,
    next_utc_midnight,
    seconds_until_midnight,
    utc_day_start,
)

__all__ = [
    "DailyReset",
    "PositionMonitor",
    "TradeDecision",
    "TradingPipeline",
    "next_utc_midnight",
    "seconds_until_midnight",
    "utc_day_start",
]
