"""Tests for citation statistics, streaks and achievements."""

from datetime import date, timedelta

import pytest

from citewatch.database import get_session
from citewatch.stats import StatsAggregator
from citewatch.stats.achievements import ACHIEVEMENTS, evaluate_achievements
from citewatch.stats.aggregator import activity_streak, daily_series, trend_direction, weekly_growth

from conftest import NOW

TODAY = NOW.date()


class TestHelpers:

    @pytest.mark.parametrize("this_week,last_week,expected", [
        (5, 0, 100.0),
        (0, 0, 0.0),
        (8, 4, 100.0),
        (2, 4, -50.0),
        (4, 4, 0.0),
    ])
    def test_weekly_growth(self, this_week, last_week, expected):
        assert weekly_growth(this_week, last_week) == pytest.approx(expected)

    def test_trend_direction(self):
        assert trend_direction(3, 1) == "up"
        assert trend_direction(1, 3) == "down"
        assert trend_direction(2, 2) == "stable"

    def test_streak_stops_at_gap(self):
        days = [TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=3)]
        assert activity_streak(days, TODAY) == 2

    def test_streak_zero_without_check_today(self):
        assert activity_streak([TODAY - timedelta(days=1)], TODAY) == 0

    def test_streak_capped(self):
        days = [TODAY - timedelta(days=i) for i in range(60)]
        assert activity_streak(days, TODAY, max_days=30) == 30

    def test_daily_series_includes_zero_days(self):
        series = daily_series([TODAY, TODAY, TODAY - timedelta(days=2)], TODAY, days=30)

        assert len(series) == 30
        assert series[0]["date"] == (TODAY - timedelta(days=29)).isoformat()
        assert series[-1] == {"date": TODAY.isoformat(), "label": "Oct 19", "citations": 2}
        assert series[-2]["citations"] == 0
        assert series[-3]["citations"] == 1
        assert sum(point["citations"] for point in series) == 3

    def test_label_has_no_zero_padding(self):
        series = daily_series([], date(2026, 3, 5), days=1)
        assert series[0]["label"] == "Mar 5"


class TestAchievements:

    def test_catalog_ids(self):
        assert [a.id for a in ACHIEVEMENTS] == [
            "first_citation", "citation_master", "streak_warrior", "level_up",
        ]

    def test_progress_is_capped(self):
        result = {a["id"]: a for a in evaluate_achievements(25, 3, 2)}
        assert result["first_citation"]["unlocked"] is True
        assert result["first_citation"]["progress"] == 1
        assert result["citation_master"]["progress"] == 10
        assert result["citation_master"]["unlocked"] is True
        assert result["streak_warrior"]["progress"] == 3
        assert result["streak_warrior"]["unlocked"] is False
        assert result["level_up"]["max_progress"] == 5

    def test_nothing_unlocked_at_zero(self):
        assert not any(a["unlocked"] for a in evaluate_achievements(0, 0, 1))


class TestStatsCompute:

    def test_empty_history(self):
        stats = StatsAggregator().compute([], NOW)

        assert stats.total_citations == 0
        assert stats.weekly_growth == 0.0
        assert stats.level == 1
        assert stats.points == 0
        assert stats.streak == 0
        assert stats.engine_breakdown == {"google": 0, "bing": 0}
        assert stats.top_queries == []
        assert len(stats.citation_trend) == 30

    def test_points_and_level(self, make_record):
        records = [make_record(days_ago=1) for _ in range(5)] + [make_record(days_ago=10) for _ in range(4)]
        stats = StatsAggregator().compute(records, NOW)

        assert stats.total_citations == 9
        assert stats.this_week_citations == 5
        assert stats.last_week_citations == 4
        assert stats.points == 9 * 10 + 5 * 5
        assert stats.level == 2
        assert stats.weekly_growth == pytest.approx(25.0)

    def test_not_cited_records_only_feed_streak(self, make_record):
        records = [make_record(days_ago=0, is_cited=False), make_record(days_ago=1, is_cited=False)]
        stats = StatsAggregator().compute(records, NOW)

        assert stats.total_citations == 0
        assert stats.streak == 2
        assert stats.recent_citations == []

    def test_week_boundaries(self, make_record):
        records = [make_record(days_ago=7), make_record(days_ago=14), make_record(days_ago=6.9)]
        stats = StatsAggregator().compute(records, NOW)

        assert stats.this_week_citations == 1
        assert stats.last_week_citations == 1

    def test_engine_breakdown_groups_by_engine(self, make_record):
        records = [
            make_record(engine="google"),
            make_record(engine="google"),
            make_record(engine="bing"),
            make_record(engine="perplexity"),
            make_record(engine="bing", is_cited=False),
        ]
        stats = StatsAggregator().compute(records, NOW)
        assert stats.engine_breakdown == {"google": 2, "bing": 1, "perplexity": 1}

    def test_top_queries_ranked_with_trend(self, make_record):
        records = (
            [make_record(query="crm", days_ago=1) for _ in range(3)]
            + [make_record(query="erp", days_ago=9) for _ in range(3)]
            + [make_record(query="erp", days_ago=2)]
            + [make_record(query="hr", days_ago=3), make_record(query="hr", days_ago=10)]
        ) + [make_record(query=f"q{i}", days_ago=20) for i in range(5)]
        stats = StatsAggregator().compute(records, NOW)

        top = stats.top_queries
        assert len(top) == 5
        assert top[0] == {"query": "erp", "count": 4, "trend": "down"}
        assert top[1] == {"query": "crm", "count": 3, "trend": "up"}
        assert top[2] == {"query": "hr", "count": 2, "trend": "stable"}
        assert [item["query"] for item in top[3:]] == ["q0", "q1"]

    def test_recent_citations_limited(self, make_record):
        records = [make_record(days_ago=i * 0.1, query=f"q{i}") for i in range(8)]
        stats = StatsAggregator(recent_limit=5).compute(records, NOW)

        assert [r["query"] for r in stats.recent_citations] == ["q0", "q1", "q2", "q3", "q4"]
        assert "checked_at" in stats.recent_citations[0]

    def test_achievements_follow_metrics(self, make_record):
        records = [make_record(days_ago=i) for i in range(10)]
        stats = StatsAggregator().compute(records, NOW)
        unlocked = {a["id"] for a in stats.achievements if a["unlocked"]}

        assert stats.streak == 10
        assert unlocked == {"first_citation", "citation_master", "streak_warrior"}


class TestStatsFromDatabase:

    def test_old_records_excluded(self, test_db, make_record):
        with get_session() as session:
            session.add_all([
                make_record(days_ago=1, query="recent"),
                make_record(days_ago=40, query="ancient"),
                make_record(days_ago=1, query="other user", user_id="user-2"),
            ])

        stats = StatsAggregator(clock=lambda: NOW).get_stats("user-1")

        assert stats["total_citations"] == 1
        assert stats["top_queries"] == [{"query": "recent", "count": 1, "trend": "up"}]
        assert stats["recent_citations"][0]["query"] == "recent"
        assert stats["citation_trend"][-2]["citations"] == 1
