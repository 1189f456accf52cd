"""Pipeline runner — async loop: score pairs, execute signals, watch exits."""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from tradeguard.config.loader import load_config
from tradeguard.config.schema import AppConfig
from tradeguard.db.base import Base
from tradeguard.db.engine import init_engine
from tradeguard.db.journal import TradeJournal
from tradeguard.exchange import ExchangeClient, build_exchange
from tradeguard.execution.errors import OrderExecutionError
from tradeguard.execution.router import OrderRouter
from tradeguard.logging.setup import setup_logging
from tradeguard.pipeline.engine import TradingPipeline
from tradeguard.pipeline.monitor import PositionMonitor
from tradeguard.pipeline.schedule import DailyReset, utc_day_start
from tradeguard.risk.exposure import ExposureTracker
from tradeguard.risk.sizing import PositionSizer
from tradeguard.scoring import ConsensusScorer, build_random_predictors

log = structlog.get_logger("pipeline_runner")


@dataclass
class Components:
    exchange: ExchangeClient
    tracker: ExposureTracker
    pipeline: TradingPipeline
    monitor: PositionMonitor
    scorer: ConsensusScorer | None


def build_components(config: AppConfig) -> Components:
    """Wire exchange, tracker, router, sizer, journal and scorer from config."""
    exchange = build_exchange(config.exchange)
    tracker = ExposureTracker(config.risk)
    router = OrderRouter(exchange, tracker, timeout_s=config.exchange.order_timeout_s)

    # One seeded source drives both the placeholder models and micro sizing
    rng = random.Random(config.scoring.seed) if config.scoring.seed is not None else None
    sizer = PositionSizer(config.risk, rng=rng)

    journal: TradeJournal | None = None
    if config.database.enabled:
        engine, factory = init_engine(config.database.url)
        Base.metadata.create_all(engine)
        journal = TradeJournal(factory)
        tracker.restore(journal.load_open_positions())
        totals = journal.load_session_totals(utc_day_start(datetime.now(timezone.utc)))
        tracker.restore_totals(totals.daily_realized_pnl, totals.total_realized_pnl,
                               totals.daily_trade_count)

    pipeline = TradingPipeline(config.risk, tracker, router, sizer=sizer, journal=journal)

    scorer: ConsensusScorer | None = None
    if config.scoring.enabled:
        if rng is None:
            log.warning("scoring_unseeded", detail="placeholder predictors use an unseeded source")
        predictors = build_random_predictors(config.scoring.weights, rng or random.Random())
        scorer = ConsensusScorer(predictors, config.risk)

    return Components(
        exchange=exchange,
        tracker=tracker,
        pipeline=pipeline,
        monitor=PositionMonitor(pipeline),
        scorer=scorer,
    )


async def run_once(components: Components, config: AppConfig) -> None:
    """Score every trading pair once and process the resulting signals."""
    if components.scorer is None:
        return
    signals = components.scorer.analyze(config.exchange.trading_pairs)
    # Micro-sized proposals first so they take the diversification slots
    signals.sort(key=lambda s: s.amount > config.risk.micro.threshold)
    for signal in signals:
        try:
            await components.pipeline.process(signal)
        except OrderExecutionError as exc:
            log.warning("signal_order_failed", symbol=signal.symbol, error_kind=exc.kind)
        except Exception:
            log.exception("signal_processing_failed", symbol=signal.symbol, side=signal.side)


async def run_loop(config: AppConfig) -> None:
    components = build_components(config)
    router = components.pipeline.router
    try:
        await router.refresh_balance(config.exchange.quote_currency)
    except OrderExecutionError as exc:
        log.warning("balance_unavailable", error_kind=exc.kind, error=str(exc))

    reset_task = asyncio.create_task(DailyReset(components.tracker).run())
    log.info(
        "pipeline_started",
        exchange=components.exchange.name,
        scoring=components.scorer is not None,
        pairs=config.exchange.trading_pairs,
    )

    last_analysis = 0.0
    try:
        while True:
            try:
                if time.monotonic() - last_analysis >= config.scoring.analysis_interval_s:
                    if components.tracker.halted:
                        log.warning("analysis_skipped_halted",
                                    reason=components.tracker.halt_reason.value)
                    else:
                        await run_once(components, config)
                    last_analysis = time.monotonic()
                await components.monitor.check_exits()
            except Exception:
                log.exception("tick_error")

            await asyncio.sleep(config.monitor_interval_s)
    finally:
        reset_task.cancel()
        await components.exchange.close()


def main(config_path: str | None = None) -> None:
    """Entry point — load config, set up logging, run the async loop."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    asyncio.run(run_loop(config))
