#!/usr/bin/env python3
"""FastAPI server runner."""

import argparse

import structlog
import uvicorn

from tradeguard.api.app import create_app
from tradeguard.config.loader import load_config
from tradeguard.logging.setup import setup_logging
from tradeguard.pipeline.runner import build_components
from tradeguard.pipeline.schedule import DailyReset

logger = structlog.get_logger()


def main(config_path: str | None = None):
    """Run the FastAPI server over a freshly wired pipeline."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    components = build_components(config)
    app = create_app(
        components.pipeline,
        monitor=components.monitor,
        daily_reset=DailyReset(components.tracker),
        monitor_interval_s=config.monitor_interval_s,
        quote_currency=config.exchange.quote_currency,
    )

    logger.info("Starting FastAPI server", host=config.api.host, port=config.api.port,
                exchange=components.exchange.name)

    try:
        uvicorn.run(
            app,
            host=config.api.host,
            port=config.api.port,
            log_config=None  # Use our structlog setup
        )
    except Exception as e:
        logger.error("Failed to start server", error=str(e))
        raise


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="tradeguard HTTP API")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    main(config_path=parser.parse_args().config)
