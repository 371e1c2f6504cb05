"""Tests for status transition detection and notification delivery."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from citewatch.database import get_session
from citewatch.models import CitationStatus, MonitoringEntry, Notification
from citewatch.monitoring.notifier import NOTIFICATION_TITLE, NOTIFICATION_TYPE, Notifier, build_message
from citewatch.monitoring.orchestrator import EngineResult
from citewatch.monitoring.transitions import TransitionDetector, TransitionEvent

from conftest import NOW


def _stored(entry_id):
    with get_session() as session:
        return session.get(MonitoringEntry, entry_id)


def _notifications():
    with get_session() as session:
        return session.query(Notification).order_by(Notification.id).all()


def _event(entry, new_status=CitationStatus.CITED, previous=CitationStatus.NOT_CITED):
    return TransitionEvent(
        entry_id=entry.id,
        user_id=entry.user_id,
        query=entry.query,
        domain=entry.domain,
        previous_status=previous,
        new_status=new_status,
        result=EngineResult(engine="google", is_cited=new_status == CitationStatus.CITED,
                            citation_position=3),
    )


class TestTransitionDetector:

    def test_none_result_leaves_entry_untouched(self, make_entry):
        entry = make_entry(last_citation_status=CitationStatus.CITED)
        outcome = TransitionDetector().apply(entry, None, NOW)

        assert outcome.checked is False
        assert outcome.event is None
        stored = _stored(entry.id)
        assert stored.last_checked_at is None
        assert stored.last_citation_status == CitationStatus.CITED

    def test_flip_to_cited_emits_event(self, make_entry):
        entry = make_entry(last_citation_status=CitationStatus.NOT_CITED)
        result = EngineResult(engine="google", is_cited=True, citation_position=1)
        outcome = TransitionDetector().apply(entry, result, NOW)

        assert outcome.checked and outcome.persisted and outcome.changed
        assert outcome.event.previous_status == CitationStatus.NOT_CITED
        assert outcome.event.new_status == CitationStatus.CITED
        stored = _stored(entry.id)
        assert stored.last_citation_status == CitationStatus.CITED
        assert stored.last_checked_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        assert entry.last_citation_status == CitationStatus.CITED

    def test_unchanged_status_no_event(self, make_entry):
        entry = make_entry(last_citation_status=CitationStatus.CITED)
        result = EngineResult(engine="google", is_cited=True)
        outcome = TransitionDetector().apply(entry, result, NOW)

        assert outcome.checked is True
        assert outcome.changed is False
        assert outcome.event is None
        assert _stored(entry.id).last_checked_at is not None

    def test_alert_off_updates_without_event(self, make_entry):
        entry = make_entry(alert_on_change=False, last_citation_status=CitationStatus.NOT_CITED)
        outcome = TransitionDetector().apply(entry, EngineResult(engine="bing", is_cited=True), NOW)

        assert outcome.changed is True
        assert outcome.event is None
        assert _stored(entry.id).last_citation_status == CitationStatus.CITED

    def test_first_check_is_a_transition(self, make_entry):
        entry = make_entry()
        outcome = TransitionDetector().apply(entry, EngineResult(engine="google", is_cited=False), NOW)

        assert outcome.changed is True
        assert outcome.event.previous_status == CitationStatus.NEVER_CHECKED
        assert outcome.event.new_status == CitationStatus.NOT_CITED

    def test_last_checked_never_moves_backwards(self, make_entry):
        later = NOW + timedelta(hours=2)
        entry = make_entry(last_checked_at=later, last_citation_status=CitationStatus.CITED)
        TransitionDetector().apply(entry, EngineResult(engine="google", is_cited=True), NOW)

        stored = _stored(entry.id)
        assert stored.last_checked_at.replace(tzinfo=None) == later.replace(tzinfo=None)

    def test_failed_write_suppresses_event(self, make_entry):
        entry = make_entry(last_citation_status=CitationStatus.NOT_CITED)
        with patch(
            "citewatch.monitoring.transitions.get_session",
            side_effect=RuntimeError("database is locked"),
        ):
            outcome = TransitionDetector().apply(entry, EngineResult(engine="google", is_cited=True), NOW)

        assert outcome.checked is True
        assert outcome.persisted is False
        assert outcome.event is None
        assert _stored(entry.id).last_citation_status == CitationStatus.NOT_CITED


class TestNotifier:

    def test_build_message(self, make_entry):
        entry = make_entry(query="best crm")
        assert build_message(_event(entry)) == "Citation status changed for query 'best crm', now cited."
        assert build_message(_event(entry, CitationStatus.NOT_CITED, CitationStatus.CITED)) == (
            "Citation status changed for query 'best crm', now not cited."
        )

    @pytest.mark.asyncio
    async def test_notify_without_resolver(self, make_entry):
        entry = make_entry()
        notification_id = await Notifier().notify(_event(entry))

        assert notification_id is not None
        rows = _notifications()
        assert len(rows) == 1
        row = rows[0]
        assert row.type == NOTIFICATION_TYPE
        assert row.title == NOTIFICATION_TITLE
        assert row.read is False
        assert row.user_id == entry.user_id
        assert row.data["entry_id"] == entry.id
        assert row.data["is_cited"] is True
        assert row.data["previous_status"] == "not_cited"
        assert row.data["citation_position"] == 3
        assert row.data["contact"] is None

    @pytest.mark.asyncio
    async def test_notify_with_contact(self, make_entry):
        entry = make_entry()
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value="owner@example.com")

        await Notifier(resolver).notify(_event(entry))

        resolver.resolve.assert_awaited_once_with(entry.user_id)
        assert _notifications()[0].data["contact"] == "owner@example.com"

    @pytest.mark.asyncio
    async def test_unresolved_contact_skips(self, make_entry):
        entry = make_entry()
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=None)

        assert await Notifier(resolver).notify(_event(entry)) is None
        assert _notifications() == []

    @pytest.mark.asyncio
    async def test_resolver_error_swallowed(self, make_entry):
        entry = make_entry()
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=ConnectionError("auth api down"))

        assert await Notifier(resolver).notify(_event(entry)) is None
        assert _notifications() == []
