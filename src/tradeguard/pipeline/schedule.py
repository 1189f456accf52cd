"""Daily reset scheduling — UTC midnight boundary for daily P&L."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from tradeguard.risk.exposure import ExposureTracker

log = structlog.get_logger("daily_reset")


def utc_day_start(now: datetime) -> datetime:
    """The UTC midnight that began the trading day containing *now*."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    """The first UTC midnight strictly after *now*."""
    return utc_day_start(now) + timedelta(days=1)


def seconds_until_midnight(now: datetime) -> float:
    return (next_utc_midnight(now) - now).total_seconds()


class DailyReset:
    """Calls ``tracker.reset_daily()`` at every UTC midnight."""

    def __init__(
        self,
        tracker: ExposureTracker,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.tracker = tracker
        self.clock = clock

    def fire(self) -> None:
        self.tracker.reset_daily(self.clock())

    async def run(self) -> None:
        while True:
            delay = seconds_until_midnight(self.clock())
            log.debug("daily_reset_scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)
            self.fire()
