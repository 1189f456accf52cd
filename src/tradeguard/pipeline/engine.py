"""TradingPipeline — signal → validation → sizing → order → exposure."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import structlog

from tradeguard.config.schema import RiskConfig
from tradeguard.db.journal import TradeJournal
from tradeguard.execution.errors import OrderExecutionError
from tradeguard.execution.router import OrderRouter
from tradeguard.logging.setup import bind_signal_context, clear_signal_context
from tradeguard.models import ExitReason, Position, Signal
from tradeguard.risk.exposure import ExposureTracker, PositionNotFound
from tradeguard.risk.sizing import PositionSizer
from tradeguard.risk.validator import RiskValidator, RiskVerdict

log = structlog.get_logger("pipeline")


@dataclass(frozen=True)
class TradeDecision:
    """Outcome of processing one signal."""

    signal: Signal
    verdict: RiskVerdict
    notional: Decimal | None = None
    position: Position | None = None

    @property
    def accepted(self) -> bool:
        return self.verdict.accepted


class TradingPipeline:
    """Runs a signal through the risk gate and, if accepted, to the exchange."""

    def __init__(
        self,
        config: RiskConfig,
        tracker: ExposureTracker,
        router: OrderRouter,
        sizer: PositionSizer | None = None,
        journal: TradeJournal | None = None,
        size_manual_signals: bool = False,
    ) -> None:
        self.config = config
        self.tracker = tracker
        self.router = router
        self.validator = RiskValidator(config, tracker)
        self.sizer = sizer or PositionSizer(config)
        self.journal = journal
        self.size_manual_signals = size_manual_signals

    def notional_for(self, signal: Signal) -> Decimal:
        """Capital to commit for an accepted signal.

        AI signals are sized by the PositionSizer, never above the amount
        they propose. Manual signals keep the operator's amount unless
        ``size_manual_signals`` is set.
        """
        if signal.source == "manual" and not self.size_manual_signals:
            return signal.amount
        return min(signal.amount, self.sizer.size(signal))

    async def process(self, signal: Signal) -> TradeDecision:
        """Validate, size and execute one signal.

        Rejections come back as a TradeDecision. OrderExecutionError from the
        exchange is logged and re-raised unchanged; it is never retried.
        """
        bind_signal_context(signal.symbol, signal.side, signal.source)
        try:
            verdict = self.validator.check(signal)
            if not verdict.accepted:
                self._journal_decision(signal, False, verdict.reason.value)
                return TradeDecision(signal=signal, verdict=verdict)

            notional = self.notional_for(signal)
            try:
                position = await self.router.open(signal, notional)
            except OrderExecutionError as exc:
                self._journal_decision(signal, False, exc.kind)
                raise

            self._journal_decision(signal, True, None, position.id)
            self._journal_position(position)
            log.info("signal_executed", position_id=position.id, notional=str(notional),
                     confidence=signal.confidence)
            return TradeDecision(signal=signal, verdict=verdict, notional=notional,
                                 position=position)
        finally:
            clear_signal_context()

    async def close_position(self, position_id: str, reason: ExitReason = "manual") -> Position:
        """Close an open position with an offsetting market order.

        Raises KeyError if the position is not open, including when another
        close completed first. A partially filled close returns the position
        still open for the remaining amount.
        """
        position = self.tracker.get(position_id)
        if position is None or position.status != "open":
            raise KeyError(position_id)
        try:
            closed = await self.router.close(position, reason)
        except PositionNotFound as exc:
            raise KeyError(position_id) from exc
        self._journal_position(closed)
        return closed

    def _journal_decision(self, signal: Signal, accepted: bool, reason: str | None,
                          position_id: str | None = None) -> None:
        if self.journal is None:
            return
        try:
            self.journal.record_decision(signal, accepted, reason, position_id)
        except Exception:
            log.exception("journal_write_failed", table="decisions")

    def _journal_position(self, position: Position) -> None:
        if self.journal is None:
            return
        try:
            self.journal.record_position(position)
        except Exception:
            log.exception("journal_write_failed", table="positions", position_id=position.id)
