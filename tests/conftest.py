"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import BigInteger, Integer, JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tradeguard.config.schema import RiskConfig
from tradeguard.db.base import Base
from tradeguard.exchange.paper import PaperExchange
from tradeguard.execution.router import OrderRouter
from tradeguard.models import Fill, Signal
from tradeguard.risk.exposure import ExposureTracker

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def risk_config() -> RiskConfig:
    """Limits from the reference scenario: min 10, max 50, threshold 70, loss limit 20."""
    return RiskConfig(
        min_position_size=Decimal("10"),
        max_position_size=Decimal("50"),
        decision_threshold=70,
        daily_loss_limit=Decimal("20"),
        diversification_limit=10,
        emergency_stop_loss=Decimal("100"),
        max_daily_trades=50,
    )


@pytest.fixture
def tracker(risk_config) -> ExposureTracker:
    return ExposureTracker(risk_config, available_balance=Decimal("1000"))


@pytest.fixture
def exchange() -> PaperExchange:
    return PaperExchange(
        balances={"USD": Decimal("1000")},
        prices={"BTC-USD": Decimal("50000"), "ETH-USD": Decimal("2500")},
    )


@pytest.fixture
def router(exchange, tracker) -> OrderRouter:
    return OrderRouter(exchange, tracker, timeout_s=1.0)


@pytest.fixture
def session_factory():
    """In-memory SQLite session factory with all tables created.

    Patches JSONB→JSON and BigInteger→Integer for SQLite compatibility.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite doesn't support schemas, JSONB, or BigInteger autoincrement
    for table in Base.metadata.tables.values():
        table.schema = None
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
            if isinstance(col.type, BigInteger):
                col.type = Integer()

    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


def make_signal(amount="10", confidence=70, side="buy", symbol="BTC-USD", source="manual") -> Signal:
    return Signal(
        symbol=symbol,
        side=side,
        amount=Decimal(amount),
        confidence=confidence,
        source=source,
        ts=NOW,
    )


def open_fill(order_id="o-1", symbol="BTC-USD", side="buy", amount="0.001", price="50000") -> Fill:
    return Fill(
        order_id=order_id,
        symbol=symbol,
        side=side,
        filled_amount=Decimal(amount),
        average_price=Decimal(price),
        ts=NOW,
    )


def close_fill(position_id, order_id=None, symbol="BTC-USD", side="sell", amount="0.001",
               price="50000", reason="signal") -> Fill:
    return Fill(
        order_id=order_id or f"{position_id}-close",
        symbol=symbol,
        side=side,
        filled_amount=Decimal(amount),
        average_price=Decimal(price),
        ts=NOW,
        closes_position_id=position_id,
        exit_reason=reason,
    )
