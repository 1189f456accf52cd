"""Trade journal — persists decisions and positions, restores exposure and P&L."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session, sessionmaker

from tradeguard.db.engine import session_scope
from tradeguard.db.tables import DecisionRow, PositionRow
from tradeguard.models import Position, Signal

log = structlog.get_logger("trade_journal")


def _dec(value) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def position_from_row(row: PositionRow) -> Position:
    return Position(
        id=row.id,
        symbol=row.symbol,
        side=row.side,
        amount=_dec(row.amount),
        entry_price=_dec(row.entry_price),
        notional=_dec(row.notional),
        opened_at=row.opened_at,
        status=row.status,
        is_micro_trade=row.is_micro_trade,
        stop_price=_dec(row.stop_price),
        take_profit_price=_dec(row.take_profit_price),
        exit_price=_dec(row.exit_price),
        closed_at=row.closed_at,
        exit_reason=row.exit_reason,
        realized_pnl=_dec(row.realized_pnl),
    )


@dataclass(frozen=True)
class SessionTotals:
    """Realised P&L and trade count rebuilt from the journal after a restart."""

    daily_realized_pnl: Decimal = Decimal("0")
    total_realized_pnl: Decimal = Decimal("0")
    daily_trade_count: int = 0


class TradeJournal:
    """Writes through to the database; one short-lived session per call."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def record_decision(
        self,
        signal: Signal,
        accepted: bool,
        reason: str | None = None,
        position_id: str | None = None,
    ) -> int:
        with session_scope(self.session_factory) as session:
            row = DecisionRow(
                ts=signal.ts,
                symbol=signal.symbol,
                side=signal.side,
                amount=signal.amount,
                confidence=signal.confidence,
                source=signal.source,
                accepted=accepted,
                reason=reason,
                position_id=position_id,
                metadata_=signal.metadata,
            )
            session.add(row)
            session.commit()
            return row.id

    def record_position(self, position: Position) -> None:
        """Insert or update the position row."""
        values = position.model_dump()
        with session_scope(self.session_factory) as session:
            row = session.get(PositionRow, position.id)
            if row is None:
                session.add(PositionRow(**values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            session.commit()
        log.debug("position_journaled", position_id=position.id, status=position.status)

    def load_open_positions(self) -> list[Position]:
        with session_scope(self.session_factory) as session:
            rows = (
                session.query(PositionRow)
                .filter(PositionRow.status == "open")
                .order_by(PositionRow.opened_at)
                .all()
            )
            return [position_from_row(r) for r in rows]

    def load_session_totals(self, day_start: datetime) -> SessionTotals:
        """Sum realised P&L overall and since *day_start*, and count today's opens.

        P&L booked on a still-open position by a partial close counts towards
        the day it is loaded in.
        """
        pnl = PositionRow.realized_pnl
        with session_scope(self.session_factory) as session:
            total = session.query(pnl).filter(pnl.isnot(None)).all()
            daily = (
                session.query(pnl)
                .filter(pnl.isnot(None))
                .filter(or_(PositionRow.closed_at >= day_start, PositionRow.status == "open"))
                .all()
            )
            trades = session.query(PositionRow).filter(PositionRow.opened_at >= day_start).count()
        return SessionTotals(
            daily_realized_pnl=sum((_dec(v) for (v,) in daily), Decimal("0")),
            total_realized_pnl=sum((_dec(v) for (v,) in total), Decimal("0")),
            daily_trade_count=trades,
        )
