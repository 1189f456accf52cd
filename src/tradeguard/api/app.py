"""FastAPI application — host surface for manual signals and account status."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Literal

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from tradeguard.execution.errors import OrderExecutionError
from tradeguard.models import Position, Signal
from tradeguard.pipeline.engine import TradingPipeline
from tradeguard.pipeline.monitor import PositionMonitor
from tradeguard.pipeline.schedule import DailyReset

logger = structlog.get_logger("api")

# HTTP status per OrderExecutionError kind
_ERROR_STATUS = {
    "network_error": 504,
    "exchange_rejected": 502,
    "insufficient_funds": 409,
}


class SignalRequest(BaseModel):
    symbol: str
    side: Literal["buy", "sell"]
    amount: Decimal = Field(gt=0)
    confidence: int = Field(ge=0, le=100)


class ClosePositionRequest(BaseModel):
    reason: Literal["signal", "manual"] = "manual"


def _position_dict(p: Position) -> dict:
    return p.model_dump(mode="json")


def get_pipeline(request: Request) -> TradingPipeline:
    return request.app.state.pipeline


def create_app(
    pipeline: TradingPipeline,
    monitor: PositionMonitor | None = None,
    daily_reset: DailyReset | None = None,
    monitor_interval_s: float = 5,
    quote_currency: str | None = None,
) -> FastAPI:
    """Build the API over *pipeline*.

    While the app is being served, the lifespan runs the position monitor
    and the UTC-midnight daily reset as background tasks when they are given.
    With *quote_currency* set, the available balance is pulled from the
    exchange once at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if quote_currency is not None:
            try:
                await pipeline.router.refresh_balance(quote_currency)
            except OrderExecutionError as exc:
                logger.warning("balance_unavailable", error_kind=exc.kind, error=str(exc))
        tasks: list[asyncio.Task] = []
        if monitor is not None:
            tasks.append(asyncio.create_task(monitor.run(monitor_interval_s)))
        if daily_reset is not None:
            tasks.append(asyncio.create_task(daily_reset.run()))
        app.state.background_tasks = tasks
        logger.info("api_started", background_tasks=len(tasks))

        yield

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await pipeline.router.exchange.close()
        logger.info("api_stopped")

    app = FastAPI(
        title="tradeguard",
        description="Live trade validation and position-sizing pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    @app.get("/api/health")
    async def health_check(p: TradingPipeline = Depends(get_pipeline)):
        return {
            "status": "halted" if p.tracker.halted else "ok",
            "exchange": p.router.exchange.name,
        }

    @app.get("/api/account")
    async def get_account(p: TradingPipeline = Depends(get_pipeline)):
        state = p.tracker.snapshot()
        return {
            "available_balance": str(state.available_balance),
            "open_positions": [_position_dict(pos) for pos in state.open_positions],
            "micro_positions": sum(1 for pos in state.open_positions if pos.is_micro_trade),
            "daily_realized_pnl": str(state.daily_realized_pnl),
            "total_realized_pnl": str(state.total_realized_pnl),
            "daily_trade_count": state.daily_trade_count,
            "halted": state.halted,
            "halt_reason": state.halt_reason,
            "min_position_size": str(p.config.min_position_size),
            "max_position_size": str(p.config.max_position_size),
        }

    @app.post("/api/signals")
    async def submit_signal(req: SignalRequest, p: TradingPipeline = Depends(get_pipeline)):
        signal = Signal(
            symbol=req.symbol,
            side=req.side,
            amount=req.amount,
            confidence=req.confidence,
            source="manual",
        )
        try:
            decision = await p.process(signal)
        except OrderExecutionError as exc:
            raise HTTPException(
                status_code=_ERROR_STATUS.get(exc.kind, 502),
                detail={"error": exc.kind, "message": str(exc)},
            ) from exc

        if not decision.accepted:
            return {
                "accepted": False,
                "reason": decision.verdict.reason.value,
                "detail": decision.verdict.detail,
            }
        return {
            "accepted": True,
            "notional": str(decision.notional),
            "position": _position_dict(decision.position),
        }

    @app.post("/api/positions/{position_id}/close")
    async def close_position(
        position_id: str,
        req: ClosePositionRequest | None = None,
        p: TradingPipeline = Depends(get_pipeline),
    ):
        reason = req.reason if req is not None else "manual"
        try:
            closed = await p.close_position(position_id, reason)
        except KeyError:
            raise HTTPException(status_code=404, detail="Open position not found")
        except OrderExecutionError as exc:
            raise HTTPException(
                status_code=_ERROR_STATUS.get(exc.kind, 502),
                detail={"error": exc.kind, "message": str(exc)},
            ) from exc
        return _position_dict(closed)

    @app.post("/api/halt/reset")
    async def reset_halt(p: TradingPipeline = Depends(get_pipeline)):
        previous = p.tracker.halt_reason
        p.tracker.reset_halt()
        logger.warning("halt_reset_via_api", previous_reason=previous.value if previous else None)
        return {"halted": False, "previous_reason": previous.value if previous else None}

    return app
