"""Shared utilities."""

from .logging import configure_logging, get_logger
from .timeutils import utcnow, duration_ms

__all__ = [
    "configure_logging",
    "get_logger",
    "utcnow",
    "duration_ms",
]
