"""Multi-model consensus scoring — turns model predictions into AI signals."""

from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog

from tradeguard.config.schema import RiskConfig
from tradeguard.models import Side, Signal

log = structlog.get_logger("consensus")


@dataclass(frozen=True)
class Prediction:
    """One model's vote on a symbol."""

    model: str
    action: Side
    confidence: float  # 0-100
    weight: float


class Predictor(Protocol):
    name: str
    weight: float

    def predict(self, symbol: str, market: Mapping[str, Any]) -> Prediction: ...


def weighted_consensus(predictions: Sequence[Prediction]) -> tuple[Side, int]:
    """Aggregate votes into (action, confidence).

    Each vote counts weight * confidence toward its side. The winning side's
    share of the total, times 100, is the consensus confidence. Ties go to
    sell. No votes at all means confidence 0.
    """
    buy = sum(p.weight * p.confidence for p in predictions if p.action == "buy")
    sell = sum(p.weight * p.confidence for p in predictions if p.action == "sell")
    total = buy + sell
    if total <= 0:
        return "sell", 0
    action: Side = "buy" if buy > sell else "sell"
    return action, int(max(buy, sell) / total * 100)


class RandomPredictor:
    """Placeholder model: a random vote with 60–100 confidence.

    Stands in for the AI providers until a real model is wired in. The
    random source is injected so runs are reproducible from a seed.
    """

    def __init__(self, name: str, weight: float, rng: random.Random) -> None:
        self.name = name
        self.weight = weight
        self.rng = rng

    def predict(self, symbol: str, market: Mapping[str, Any]) -> Prediction:
        action: Literal["buy", "sell"] = "buy" if self.rng.random() > 0.5 else "sell"
        return Prediction(
            model=self.name,
            action=action,
            confidence=60 + self.rng.random() * 40,
            weight=self.weight,
        )


class ConsensusScorer:
    """Scores each trading pair and emits a signal when consensus clears the threshold.

    AI signals propose ``max_position_size``; the pipeline's PositionSizer
    decides how much of it to commit once the signal is accepted.
    """

    def __init__(self, predictors: Sequence[Predictor], config: RiskConfig) -> None:
        if not predictors:
            raise ValueError("ConsensusScorer needs at least one predictor")
        self.predictors = list(predictors)
        self.config = config

    def score(self, symbol: str, market: Mapping[str, Any] | None = None) -> Signal | None:
        predictions = [p.predict(symbol, market or {}) for p in self.predictors]
        action, confidence = weighted_consensus(predictions)
        if confidence < self.config.decision_threshold:
            log.debug("consensus_below_threshold", symbol=symbol, action=action,
                      confidence=confidence)
            return None

        signal = Signal(
            symbol=symbol,
            side=action,
            amount=self.config.max_position_size,
            confidence=confidence,
            source="ai",
            metadata={"votes": {p.model: [p.action, round(p.confidence, 1)] for p in predictions}},
        )
        log.info("ai_signal", symbol=symbol, side=action, confidence=confidence)
        return signal

    def analyze(self, symbols: Sequence[str], market: Mapping[str, Any] | None = None) -> list[Signal]:
        signals = []
        for symbol in symbols:
            signal = self.score(symbol, market)
            if signal is not None:
                signals.append(signal)
        return signals


def build_random_predictors(weights: Mapping[str, float], rng: random.Random) -> list[RandomPredictor]:
    return [RandomPredictor(name, weight, rng) for name, weight in weights.items()]
