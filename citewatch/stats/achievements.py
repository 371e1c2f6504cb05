"""Static achievement catalog evaluated against current citation metrics.

Unlock state is never stored; it is recomputed from the metrics on every
call.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

METRIC_TOTAL_CITATIONS = "total_citations"
METRIC_STREAK_DAYS = "streak_days"
METRIC_LEVEL = "level"


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    title: str
    description: str
    icon: str
    metric: str
    max_progress: int

    def evaluate(self, metrics: Mapping[str, int]) -> dict[str, Any]:
        value = int(metrics.get(self.metric, 0))
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "unlocked": value >= self.max_progress,
            "progress": min(value, self.max_progress),
            "max_progress": self.max_progress,
        }


ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "first_citation", "First Citation", "Get your first AI citation",
        "\U0001F3AF", METRIC_TOTAL_CITATIONS, 1,
    ),
    AchievementDefinition(
        "citation_master", "Citation Master", "Reach 10 citations",
        "\U0001F451", METRIC_TOTAL_CITATIONS, 10,
    ),
    AchievementDefinition(
        "streak_warrior", "Streak Warrior", "Maintain a 7-day activity streak",
        "\U0001F525", METRIC_STREAK_DAYS, 7,
    ),
    AchievementDefinition(
        "level_up", "Level Up", "Reach level 5",
        "⭐", METRIC_LEVEL, 5,
    ),
)


def evaluate_achievements(
    total_citations: int,
    streak_days: int,
    level: int,
    catalog: Sequence[AchievementDefinition] = ACHIEVEMENTS,
) -> list[dict[str, Any]]:
    """Evaluate every definition in ``catalog`` against the given metrics."""
    metrics = {
        METRIC_TOTAL_CITATIONS: total_citations,
        METRIC_STREAK_DAYS: streak_days,
        METRIC_LEVEL: level,
    }
    return [definition.evaluate(metrics) for definition in catalog]
