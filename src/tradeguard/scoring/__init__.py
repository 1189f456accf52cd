"""Signal scoring — AI consensus signal source."""

from tradeguard.scoring.consensus import (
    ConsensusScorer,
    Prediction,
    Predictor,
    RandomPredictor,
    build_random_predictors,
    weighted_consensus,
)

__all__ = [
    "ConsensusScorer",
    "Prediction",
    "Predictor",
    "RandomPredictor",
    "build_random_predictors",
    "weighted_consensus",
]
