"""Configuration system."""

from tradeguard.config.loader import load_config
from tradeguard.config.schema import (
    AppConfig,
    ExchangeConfig,
    MicroTradeConfig,
    RiskConfig,
    ScoringConfig,
)

__all__ = [
    "AppConfig",
    "ExchangeConfig",
    "MicroTradeConfig",
    "RiskConfig",
    "ScoringConfig",
    "load_config",
]
