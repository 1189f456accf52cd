"""Tests for the exposure tracker."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from conftest import NOW, close_fill, open_fill
from tradeguard.config.schema import RiskConfig
from tradeguard.models import Position
from tradeguard.risk.exposure import (
    DuplicatePosition,
    ExposureError,
    ExposureTracker,
    PositionNotFound,
)
from tradeguard.risk.validator import RejectReason


# ── Opening and closing ──────────────────────────────────────


class TestRecordFill:
    def test_open_creates_position(self, tracker):
        position = tracker.record_fill(open_fill("o-1", amount="0.0006", price="50000"))
        assert position.status == "open"
        assert position.notional == Decimal("30")
        assert position.stop_price == Decimal("47500")
        assert position.take_profit_price == Decimal("55000")
        assert not position.is_micro_trade
        assert tracker.snapshot().daily_trade_count == 1

    def test_small_open_is_micro(self, tracker):
        position = tracker.record_fill(open_fill("o-1", amount="0.0003", price="50000"))
        assert position.is_micro_trade
        assert position.stop_price == Decimal("48500")
        assert position.take_profit_price == Decimal("52500")

    def test_close_buy_books_pnl(self, tracker):
        tracker.record_fill(open_fill("o-1", amount="0.001", price="50000"))
        closed = tracker.record_fill(close_fill("o-1", price="51000"))
        assert closed.status == "closed"
        assert closed.realized_pnl == Decimal("1")
        assert closed.exit_reason == "signal"
        assert tracker.daily_realized_pnl == Decimal("1")
        assert tracker.snapshot().total_realized_pnl == Decimal("1")
        assert tracker.open_positions() == []
        assert [p.id for p in tracker.closed_positions()] == ["o-1"]

    def test_close_sell_books_pnl(self, tracker):
        tracker.record_fill(open_fill("o-1", side="sell", amount="0.01", price="2500",
                                      symbol="ETH-USD"))
        closed = tracker.record_fill(close_fill("o-1", side="buy", amount="0.01", price="2600",
                                                symbol="ETH-USD", reason="stop_loss"))
        assert closed.realized_pnl == Decimal("-1")
        assert closed.exit_reason == "stop_loss"

    def test_close_does_not_count_as_trade(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        tracker.record_fill(close_fill("o-1"))
        assert tracker.snapshot().daily_trade_count == 1

    def test_duplicate_open_rejected(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        with pytest.raises(DuplicatePosition):
            tracker.record_fill(open_fill("o-1"))

    def test_close_unknown_position(self, tracker):
        with pytest.raises(PositionNotFound):
            tracker.record_fill(close_fill("missing"))

    def test_close_twice(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        tracker.record_fill(close_fill("o-1"))
        with pytest.raises(PositionNotFound):
            tracker.record_fill(close_fill("o-1", order_id="o-1-again"))

    def test_close_with_wrong_side(self, tracker):
        tracker.record_fill(open_fill("o-1", side="buy"))
        with pytest.raises(ExposureError):
            tracker.record_fill(close_fill("o-1", side="buy"))
        assert tracker.get("o-1").status == "open"

    def test_close_with_wrong_symbol(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        with pytest.raises(ExposureError):
            tracker.record_fill(close_fill("o-1", symbol="ETH-USD"))
        assert tracker.daily_realized_pnl == Decimal("0")

    def test_open_positions_by_symbol(self, tracker):
        tracker.record_fill(open_fill("o-1", symbol="BTC-USD"))
        tracker.record_fill(open_fill("o-2", symbol="ETH-USD", amount="0.01", price="2500"))
        assert [p.id for p in tracker.open_positions("ETH-USD")] == ["o-2"]
        assert len(tracker.open_positions()) == 2


class TestPartialClose:
    def test_partial_fill_books_filled_amount_only(self, tracker):
        tracker.record_fill(open_fill("o-1", amount="0.0004", price="50000"))
        position = tracker.record_fill(close_fill("o-1", amount="0.0002", price="40000"))
        assert position.status == "open"
        assert position.amount == Decimal("0.0002")
        assert position.notional == Decimal("10")
        assert position.realized_pnl == Decimal("-2")
        assert tracker.daily_realized_pnl == Decimal("-2")
        assert [p.id for p in tracker.open_positions()] == ["o-1"]

    def test_remainder_close_sums_pnl(self, tracker):
        tracker.record_fill(open_fill("o-1", amount="0.0004", price="50000"))
        tracker.record_fill(close_fill("o-1", amount="0.0002", price="40000"))
        closed = tracker.record_fill(close_fill("o-1", order_id="o-1-close-2",
                                                amount="0.0002", price="60000"))
        assert closed.status == "closed"
        assert closed.exit_price == Decimal("60000")
        assert closed.realized_pnl == Decimal("0")
        state = tracker.snapshot()
        assert state.daily_realized_pnl == Decimal("0")
        assert state.total_realized_pnl == Decimal("0")
        assert state.open_position_count == 0

    def test_overfill_rejected(self, tracker):
        tracker.record_fill(open_fill("o-1", amount="0.001", price="50000"))
        with pytest.raises(ExposureError, match="cannot close"):
            tracker.record_fill(close_fill("o-1", amount="0.002", price="51000"))
        position = tracker.get("o-1")
        assert position.status == "open"
        assert position.amount == Decimal("0.001")
        assert tracker.daily_realized_pnl == Decimal("0")

    def test_zero_fill_rejected(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        with pytest.raises(ExposureError):
            tracker.record_fill(close_fill("o-1", amount="0"))
        assert tracker.get("o-1").status == "open"


class TestConcurrency:
    def test_concurrent_closes_book_every_pnl(self, tracker):
        n = 40
        for i in range(n):
            tracker.record_fill(open_fill(f"o-{i}", amount="0.001", price="50000"))

        # Half win 1, half lose 1
        def close(i: int) -> None:
            price = "51000" if i % 2 == 0 else "49000"
            tracker.record_fill(close_fill(f"o-{i}", price=price))

        threads = [threading.Thread(target=close, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        state = tracker.snapshot()
        assert state.open_position_count == 0
        assert state.daily_realized_pnl == Decimal("0")
        assert sum(p.realized_pnl for p in tracker.closed_positions()) == Decimal("0")

    def test_concurrent_opens_count_every_trade(self, tracker):
        threads = [
            threading.Thread(target=tracker.record_fill, args=(open_fill(f"o-{i}"),))
            for i in range(25)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.snapshot().daily_trade_count == 25


# ── Halt and daily reset ─────────────────────────────────────


class TestHalt:
    def test_halt_shows_in_snapshot(self, tracker):
        tracker.halt(RejectReason.DAILY_LOSS_LIMIT_REACHED, "loss -25")
        state = tracker.snapshot()
        assert state.halted
        assert state.halt_reason == "daily_loss_limit_reached"

    def test_reset_halt(self, tracker):
        tracker.halt(RejectReason.EMERGENCY_STOP)
        tracker.reset_halt()
        assert not tracker.halted

    def test_reset_daily_zeroes_counters(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        tracker.record_fill(close_fill("o-1", price="40000"))
        tracker.reset_daily(NOW)
        state = tracker.snapshot()
        assert state.daily_realized_pnl == Decimal("0")
        assert state.daily_trade_count == 0
        assert state.total_realized_pnl == Decimal("-10")

    def test_reset_daily_lifts_loss_halt(self, tracker):
        tracker.halt(RejectReason.DAILY_LOSS_LIMIT_REACHED)
        tracker.reset_daily(NOW)
        assert not tracker.halted

    def test_reset_daily_keeps_emergency_halt(self, tracker):
        tracker.halt(RejectReason.EMERGENCY_STOP)
        tracker.reset_daily(NOW)
        assert tracker.halt_reason == RejectReason.EMERGENCY_STOP

    def test_reset_daily_keeps_open_positions(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        tracker.reset_daily(NOW)
        assert len(tracker.open_positions()) == 1


class TestRestore:
    def test_restores_open_positions_only(self, tracker):
        open_pos = Position(id="r-1", symbol="BTC-USD", side="buy", amount=Decimal("0.001"),
                            entry_price=Decimal("50000"), notional=Decimal("50"), opened_at=NOW)
        closed_pos = open_pos.model_copy(update={"id": "r-2", "status": "closed"})
        assert tracker.restore([open_pos, closed_pos]) == 1
        assert tracker.get("r-1") == open_pos
        assert tracker.get("r-2") is None

    def test_restore_skips_known_ids(self, tracker):
        tracker.record_fill(open_fill("o-1"))
        existing = tracker.get("o-1")
        assert tracker.restore([existing]) == 0


# ── Exit detection ───────────────────────────────────────────


class TestExitTrigger:
    def _position(self, side: str) -> Position:
        tracker = ExposureTracker(RiskConfig())
        return tracker.record_fill(open_fill("o-1", side=side, amount="0.001", price="50000"))

    def test_buy_stop_loss(self):
        assert ExposureTracker.exit_trigger(self._position("buy"), Decimal("47500")) == "stop_loss"

    def test_buy_take_profit(self):
        assert ExposureTracker.exit_trigger(self._position("buy"), Decimal("55000")) == "take_profit"

    def test_buy_inside_band(self):
        assert ExposureTracker.exit_trigger(self._position("buy"), Decimal("50100")) is None

    def test_sell_stop_loss(self):
        assert ExposureTracker.exit_trigger(self._position("sell"), Decimal("52500")) == "stop_loss"

    def test_sell_take_profit(self):
        assert ExposureTracker.exit_trigger(self._position("sell"), Decimal("45000")) == "take_profit"

    def test_positions_to_exit(self, tracker):
        tracker.record_fill(open_fill("o-1", symbol="BTC-USD", amount="0.001", price="50000"))
        tracker.record_fill(open_fill("o-2", symbol="ETH-USD", amount="0.02", price="2500"))
        hits = tracker.positions_to_exit({"BTC-USD": Decimal("40000")})
        assert [(p.id, reason) for p, reason in hits] == [("o-1", "stop_loss")]
