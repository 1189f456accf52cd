"""Allow running the pipeline as: python -m tradeguard.pipeline [--config path]."""

import argparse

from tradeguard.pipeline.runner import main

parser = argparse.ArgumentParser(description="Live trade validation pipeline")
parser.add_argument("--config", default=None, help="Path to config.yaml")
args = parser.parse_args()
main(config_path=args.config)
