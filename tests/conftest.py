"""Shared pytest fixtures for the citation monitor tests."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Ensure project root is on sys.path so 'citewatch' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_db_engine():
    """Autouse fixture: reset the global DB engine before and after every test.

    This prevents cross-test pollution when tests create their own in-memory
    databases.
    """
    from citewatch.database import reset_engine
    reset_engine()
    yield
    reset_engine()


@pytest.fixture()
def test_db():
    """Provide an in-memory SQLite database with all tables created.

    Yields a database URL string. The engine is automatically torn down
    after the test by the autouse ``_reset_db_engine`` fixture.
    """
    from citewatch.database import reset_engine, init_db
    reset_engine()
    db_url = "sqlite:///:memory:"
    init_db(database_url=db_url, echo=False)
    yield db_url


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def clock():
    """Callable clock frozen at ``NOW``."""
    return lambda: NOW


@pytest.fixture()
def make_entry(test_db):
    """Factory that inserts a MonitoringEntry and returns it detached."""
    from citewatch.database import get_session
    from citewatch.models import CitationStatus, MonitoringEntry

    def _make(
        query="best crm for startups",
        domain="example.com",
        user_id="user-1",
        check_frequency="daily",
        alert_on_change=True,
        is_active=True,
        last_checked_at=None,
        last_citation_status=CitationStatus.NEVER_CHECKED,
    ):
        with get_session() as session:
            entry = MonitoringEntry(
                user_id=user_id,
                query=query,
                domain=domain,
                check_frequency=check_frequency,
                alert_on_change=alert_on_change,
                is_active=is_active,
                last_checked_at=last_checked_at,
                last_citation_status=last_citation_status,
            )
            session.add(entry)
            session.flush()
        return entry

    return _make


@pytest.fixture()
def make_record():
    """Factory for transient CitationCheckRecord rows (not persisted)."""
    from citewatch.models import CitationCheckRecord

    def _make(days_ago=0.0, is_cited=True, query="best crm", engine="google",
              user_id="user-1", domain="example.com"):
        return CitationCheckRecord(
            user_id=user_id,
            query=query,
            domain=domain,
            engine=engine,
            is_cited=is_cited,
            answer_text="",
            cited_sources=[],
            recommendations="",
            citation_position=1 if is_cited else None,
            total_sources=0,
            checked_at=NOW - timedelta(days=days_ago),
        )

    return _make


def cited_response(engine="google", camel=True, position=2):
    """Canned check-capability response for a cited domain."""
    sources = [
        {"title": "Other", "link": "https://other.org/a"},
        {"title": "Example", "link": "https://example.com/guide"},
    ]
    if camel:
        return {
            "isCited": True,
            "citationPosition": position,
            "aiAnswer": "Example.com recommends ...",
            "citedSources": sources,
            "engine": engine,
        }
    return {
        "is_cited": True,
        "citation_position": position,
        "ai_answer": "Example.com recommends ...",
        "cited_sources": sources,
        "engine": engine,
    }


def not_cited_response(engine="google"):
    return {
        "is_cited": False,
        "citation_position": None,
        "ai_answer": "Nothing relevant.",
        "cited_sources": [{"title": "Other", "link": "https://other.org/a"}],
        "engine": engine,
    }


@pytest.fixture()
def mock_check():
    """AsyncMock check capability that cites the domain on every engine."""
    return AsyncMock(side_effect=lambda query, domain, user_id, engine: cited_response(engine))
