"""Tests for position sizing, protection levels and P&L."""

from __future__ import annotations

import random
from decimal import Decimal

import pytest

from conftest import make_signal
from tradeguard.config.schema import MicroTradeConfig, RiskConfig
from tradeguard.risk.sizing import (
    PositionSizer,
    confidence_scale,
    is_micro_trade,
    protection_levels,
    realized_pnl,
    stop_loss_price,
    take_profit_price,
)


class _ScriptedRandom:
    """Returns the given values in order from random()."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0)


class TestConfidenceScale:
    def test_threshold_maps_to_zero(self):
        assert confidence_scale(70, 70) == 0

    def test_full_confidence_maps_to_one(self):
        assert confidence_scale(100, 70) == 1

    def test_midpoint(self):
        assert confidence_scale(85, 70) == Decimal("0.5")

    def test_threshold_of_100(self):
        assert confidence_scale(100, 100) == 1

    def test_below_threshold_clamped(self):
        assert confidence_scale(50, 70) == 0


class TestLinearSizing:
    def test_at_threshold_is_minimum(self, risk_config):
        assert PositionSizer(risk_config).size(make_signal(confidence=70)) == Decimal("10")

    def test_full_confidence_is_maximum(self, risk_config):
        assert PositionSizer(risk_config).size(make_signal(confidence=100)) == Decimal("50")

    def test_scales_linearly(self, risk_config):
        # 10 + (50 - 10) * 15/30
        assert PositionSizer(risk_config).size(make_signal(confidence=85)) == Decimal("30")

    def test_rounds_down_to_cents(self, risk_config):
        # 10 + 40 * 1/30 = 11.333...
        assert PositionSizer(risk_config).size(make_signal(confidence=71)) == Decimal("11.33")

    def test_deterministic_without_rng(self, risk_config):
        sizer = PositionSizer(risk_config)
        sizes = {sizer.size(make_signal(confidence=90)) for _ in range(20)}
        assert len(sizes) == 1

    @pytest.mark.parametrize("confidence", range(70, 101))
    def test_within_bounds(self, risk_config, confidence):
        size = PositionSizer(risk_config).size(make_signal(confidence=confidence))
        assert risk_config.min_position_size <= size <= risk_config.max_position_size


class TestMicroTradeBias:
    def test_micro_branch_draws_from_band(self, risk_config):
        sizer = PositionSizer(risk_config, rng=_ScriptedRandom(0.1, 0.5))
        # 10 + 0.5 * 10
        assert sizer.size(make_signal(confidence=100)) == Decimal("15.00")

    def test_linear_branch_when_draw_misses(self, risk_config):
        sizer = PositionSizer(risk_config, rng=_ScriptedRandom(0.9))
        assert sizer.size(make_signal(confidence=100)) == Decimal("50")

    def test_disabled_micro_ignores_rng(self):
        cfg = RiskConfig(
            min_position_size=Decimal("10"),
            max_position_size=Decimal("50"),
            micro=MicroTradeConfig(enabled=False),
        )
        sizer = PositionSizer(cfg, rng=_ScriptedRandom())
        assert sizer.size(make_signal(confidence=100)) == Decimal("50")

    def test_band_wider_than_range_is_clamped(self):
        cfg = RiskConfig(min_position_size=Decimal("10"), max_position_size=Decimal("12"))
        sizer = PositionSizer(cfg, rng=_ScriptedRandom(0.0, 0.99))
        assert sizer.size(make_signal(confidence=70)) == Decimal("12")

    def test_seeded_sizer_is_reproducible(self, risk_config):
        a = PositionSizer(risk_config, rng=random.Random(7))
        b = PositionSizer(risk_config, rng=random.Random(7))
        signals = [make_signal(confidence=c) for c in range(70, 101)]
        assert [a.size(s) for s in signals] == [b.size(s) for s in signals]

    def test_seeded_sizer_stays_in_bounds(self, risk_config):
        sizer = PositionSizer(risk_config, rng=random.Random(1234))
        for confidence in list(range(70, 101)) * 10:
            size = sizer.size(make_signal(confidence=confidence))
            assert risk_config.min_position_size <= size <= risk_config.max_position_size


class TestProtectionLevels:
    def test_stop_loss_buy(self):
        assert stop_loss_price("buy", Decimal("50000"), Decimal("5")) == Decimal("47500")

    def test_stop_loss_sell(self):
        assert stop_loss_price("sell", Decimal("50000"), Decimal("5")) == Decimal("52500")

    def test_take_profit_buy(self):
        assert take_profit_price("buy", Decimal("50000"), Decimal("10")) == Decimal("55000")

    def test_take_profit_sell(self):
        assert take_profit_price("sell", Decimal("50000"), Decimal("10")) == Decimal("45000")

    def test_regular_trade_uses_configured_percentages(self, risk_config):
        stop, tp = protection_levels("buy", Decimal("100"), Decimal("40"), risk_config)
        assert stop == Decimal("95")
        assert tp == Decimal("110")

    def test_micro_trade_uses_tighter_percentages(self, risk_config):
        stop, tp = protection_levels("buy", Decimal("100"), Decimal("15"), risk_config)
        assert stop == Decimal("97")
        assert tp == Decimal("105")

    def test_zero_percentage_disables_level(self):
        cfg = RiskConfig(stop_loss_percentage=Decimal("0"))
        stop, tp = protection_levels("buy", Decimal("100"), Decimal("30"), cfg)
        assert stop is None
        assert tp == Decimal("110")

    def test_is_micro_trade_inclusive(self, risk_config):
        assert is_micro_trade(Decimal("20"), risk_config)
        assert not is_micro_trade(Decimal("20.01"), risk_config)


class TestRealizedPnl:
    def test_buy_win(self):
        assert realized_pnl("buy", Decimal("100"), Decimal("110"), Decimal("2")) == Decimal("20")

    def test_buy_loss(self):
        assert realized_pnl("buy", Decimal("100"), Decimal("90"), Decimal("2")) == Decimal("-20")

    def test_sell_win(self):
        assert realized_pnl("sell", Decimal("100"), Decimal("90"), Decimal("2")) == Decimal("20")

    def test_sell_loss(self):
        assert realized_pnl("sell", Decimal("100"), Decimal("110"), Decimal("2")) == Decimal("-20")
