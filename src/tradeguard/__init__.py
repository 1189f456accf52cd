"""tradeguard — live trade validation and position-sizing pipeline."""

__version__ = "0.1.0"
