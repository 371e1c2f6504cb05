"""Rolling citation statistics and achievements."""

from citewatch.stats.achievements import ACHIEVEMENTS, AchievementDefinition, evaluate_achievements
from citewatch.stats.aggregator import CitationStats, StatsAggregator

__all__ = [
    "ACHIEVEMENTS",
    "AchievementDefinition",
    "CitationStats",
    "StatsAggregator",
    "evaluate_achievements",
]
