"""Rolling citation statistics derived from check history."""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Sequence

from citewatch.database import as_utc, get_session, utcnow
from citewatch.models.citation import CitationCheckRecord
from citewatch.stats.achievements import evaluate_achievements

logger = logging.getLogger(__name__)

POINTS_PER_CITATION = 10
POINTS_PER_WEEKLY_CITATION = 5
POINTS_PER_LEVEL = 100


def weekly_growth(this_week: int, last_week: int) -> float:
    """Percent change in cited checks week over week.

    Examples:
        >>> weekly_growth(5, 0)
        100.0
        >>> weekly_growth(8, 4)
        100.0
        >>> weekly_growth(0, 0)
        0.0
    """
    if last_week > 0:
        return (this_week - last_week) / last_week * 100.0
    return 100.0 if this_week > 0 else 0.0


def trend_direction(current: int, previous: int) -> str:
    if current > previous:
        return "up"
    if current < previous:
        return "down"
    return "stable"


def activity_streak(check_days: Iterable[date], today: date, max_days: Optional[int] = None) -> int:
    """Consecutive days with at least one check, counted back from ``today``."""
    days = set(check_days)
    streak = 0
    cursor = today
    while cursor in days:
        streak += 1
        if max_days is not None and streak >= max_days:
            break
        cursor -= timedelta(days=1)
    return streak


def daily_series(cited_days: Iterable[date], today: date, days: int = 30) -> list[dict[str, Any]]:
    """One point per calendar day, oldest first, zero days included."""
    counts = Counter(cited_days)
    series = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        series.append({
            "date": day.isoformat(),
            "label": f"{day:%b} {day.day}",
            "citations": counts.get(day, 0),
        })
    return series


@dataclass
class CitationStats:
    total_citations: int = 0
    weekly_growth: float = 0.0
    this_week_citations: int = 0
    last_week_citations: int = 0
    engine_breakdown: dict[str, int] = field(default_factory=dict)
    top_queries: list[dict[str, Any]] = field(default_factory=list)
    recent_citations: list[dict[str, Any]] = field(default_factory=list)
    level: int = 1
    points: int = 0
    streak: int = 0
    achievements: list[dict[str, Any]] = field(default_factory=list)
    citation_trend: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class StatsAggregator:
    """Overview metrics, trends, leaderboard and gamification for one user.

    Read-only; safe to run alongside the monitoring batch.

    Usage::

        aggregator = StatsAggregator(engines=["google", "bing"])
        stats = aggregator.get_stats("user-1")
    """

    def __init__(
        self,
        engines: Sequence[str] = ("google", "bing"),
        lookback_days: int = 30,
        top_queries_limit: int = 5,
        recent_limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._engines = list(engines)
        self._lookback_days = lookback_days
        self._top_limit = top_queries_limit
        self._recent_limit = recent_limit
        self._clock = clock

    def get_stats(self, user_id: str) -> dict[str, Any]:
        """Load the user's recent history and return the statistics dict."""
        now = as_utc(self._clock())
        records = self._load_records(user_id, now - timedelta(days=self._lookback_days))
        stats = self.compute(records, now)
        logger.info(
            "Stats for %s: %d records, %d citations, level %d, streak %d",
            user_id, len(records), stats.total_citations, stats.level, stats.streak,
        )
        return stats.to_dict()

    def compute(self, records: Sequence[CitationCheckRecord], now: datetime) -> CitationStats:
        """Pure aggregation over ``records`` (newest first) as of ``now``."""
        now = as_utc(now)
        today = now.date()
        week_ago = now - timedelta(days=7)
        two_weeks_ago = now - timedelta(days=14)

        cited = [r for r in records if r.is_cited]
        this_week = [r for r in cited if as_utc(r.checked_at) > week_ago]
        last_week = [r for r in cited if two_weeks_ago < as_utc(r.checked_at) <= week_ago]

        total = len(cited)
        points = total * POINTS_PER_CITATION + len(this_week) * POINTS_PER_WEEKLY_CITATION
        level = points // POINTS_PER_LEVEL + 1
        streak = activity_streak(
            (as_utc(r.checked_at).date() for r in records),
            today,
            max_days=self._lookback_days,
        )

        return CitationStats(
            total_citations=total,
            weekly_growth=weekly_growth(len(this_week), len(last_week)),
            this_week_citations=len(this_week),
            last_week_citations=len(last_week),
            engine_breakdown=self._engine_breakdown(cited),
            top_queries=self._top_queries(cited, this_week, last_week),
            recent_citations=[r.to_dict() for r in cited[: self._recent_limit]],
            level=level,
            points=points,
            streak=streak,
            achievements=evaluate_achievements(total, streak, level),
            citation_trend=daily_series(
                (as_utc(r.checked_at).date() for r in cited),
                today,
                days=self._lookback_days,
            ),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _engine_breakdown(self, cited: Sequence[CitationCheckRecord]) -> dict[str, int]:
        breakdown = {engine: 0 for engine in self._engines}
        for record in cited:
            breakdown[record.engine] = breakdown.get(record.engine, 0) + 1
        return breakdown

    def _top_queries(
        self,
        cited: Sequence[CitationCheckRecord],
        this_week: Sequence[CitationCheckRecord],
        last_week: Sequence[CitationCheckRecord],
    ) -> list[dict[str, Any]]:
        counts = Counter(r.query for r in cited)
        current = Counter(r.query for r in this_week)
        previous = Counter(r.query for r in last_week)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [
            {
                "query": query,
                "count": count,
                "trend": trend_direction(current.get(query, 0), previous.get(query, 0)),
            }
            for query, count in ranked[: self._top_limit]
        ]

    @staticmethod
    def _load_records(user_id: str, since: datetime) -> list[CitationCheckRecord]:
        with get_session() as session:
            return (
                session.query(CitationCheckRecord)
                .filter(
                    CitationCheckRecord.user_id == user_id,
                    CitationCheckRecord.checked_at >= since,
                )
                .order_by(CitationCheckRecord.checked_at.desc(), CitationCheckRecord.id.desc())
                .all()
            )
