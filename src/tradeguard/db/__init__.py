"""Database layer — engine, session, ORM base, trade journal."""

from tradeguard.db.base import Base
from tradeguard.db.engine import init_engine, session_scope
from tradeguard.db.journal import SessionTotals, TradeJournal

__all__ = ["Base", "SessionTotals", "TradeJournal", "init_engine", "session_scope"]
