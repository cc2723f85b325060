"""Statistics folds for RallyScout."""

from .aggregator import MatchStatistics, PlayerStatistics, StatisticsAggregator
from .enrichment import StatsFilter

__all__ = [
    "MatchStatistics",
    "PlayerStatistics",
    "StatisticsAggregator",
    "StatsFilter",
]
