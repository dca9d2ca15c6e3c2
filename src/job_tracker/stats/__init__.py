"""Statistics over tracker state."""

from .aggregator import StatisticsAggregator

__all__ = ["StatisticsAggregator"]
