"""Exchange API clients."""

from tradeguard.config.schema import ExchangeConfig
from tradeguard.exchange.base import ExchangeClient, base_currency, quote_currency
from tradeguard.exchange.coinbase import CoinbaseClient
from tradeguard.exchange.paper import PaperExchange


def build_exchange(config: ExchangeConfig) -> ExchangeClient:
    """Instantiate the configured exchange client."""
    if config.kind == "coinbase":
        if not config.api_key or not config.api_secret:
            raise ValueError("coinbase exchange requires api_key and api_secret")
        return CoinbaseClient(
            api_key=config.api_key,
            api_secret=config.api_secret,
            base_url=config.base_url,
            timeout_s=config.order_timeout_s,
        )
    return PaperExchange(
        balances={config.quote_currency: config.initial_balance},
        prices=dict(config.paper_prices),
    )


__all__ = [
    "CoinbaseClient",
    "ExchangeClient",
    "PaperExchange",
    "base_currency",
    "build_exchange",
    "quote_currency",
]
