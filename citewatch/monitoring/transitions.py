"""Persist each checked entry's new status and detect cited/not-cited flips."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from citewatch.database import as_utc, get_session
from citewatch.models.monitoring import CitationStatus, MonitoringEntry
from citewatch.monitoring.orchestrator import EngineResult

logger = logging.getLogger(__name__)


@dataclass
class TransitionEvent:
    """A status flip on an entry that has alerts enabled."""
    entry_id: int
    user_id: str
    query: str
    domain: str
    previous_status: CitationStatus
    new_status: CitationStatus
    result: EngineResult


@dataclass
class TransitionOutcome:
    """What happened to one entry after its check."""
    checked: bool = False
    persisted: bool = False
    changed: bool = False
    event: Optional[TransitionEvent] = None


class TransitionDetector:
    """Compare a fresh result against the stored status and write it back."""

    def apply(
        self,
        entry: MonitoringEntry,
        result: Optional[EngineResult],
        now: datetime,
    ) -> TransitionOutcome:
        """Persist the new status and return any transition to report.

        A ``None`` result leaves the entry untouched.  ``never_checked``
        differs from both cited and not cited, so the first successful
        check is a transition.
        """
        if result is None:
            return TransitionOutcome()

        previous = entry.last_citation_status or CitationStatus.NEVER_CHECKED
        new_status = CitationStatus.from_cited(result.is_cited)
        outcome = TransitionOutcome(checked=True, changed=previous != new_status)

        outcome.persisted = self._save_status(entry, new_status, now)
        if not outcome.persisted:
            # Entry stays eligible; the flip is reported on the retry.
            return outcome

        entry.last_citation_status = new_status
        if outcome.changed:
            logger.info(
                "Entry %s status %s -> %s (%r)",
                entry.id, previous.value, new_status.value, entry.query,
            )
            if entry.alert_on_change:
                outcome.event = TransitionEvent(
                    entry_id=entry.id,
                    user_id=entry.user_id,
                    query=entry.query,
                    domain=entry.domain,
                    previous_status=previous,
                    new_status=new_status,
                    result=result,
                )
        return outcome

    def _save_status(self, entry: MonitoringEntry, status: CitationStatus, now: datetime) -> bool:
        try:
            with get_session() as session:
                row = session.get(MonitoringEntry, entry.id)
                if row is None:
                    logger.error("Monitoring entry %s disappeared before status write", entry.id)
                    return False
                stored = as_utc(row.last_checked_at)
                checked_at = as_utc(now)
                if stored is not None and stored > checked_at:
                    logger.warning(
                        "Entry %s has a newer last_checked_at (%s); keeping it",
                        entry.id, stored.isoformat(),
                    )
                    checked_at = stored
                row.last_checked_at = checked_at
                row.last_citation_status = status
            entry.last_checked_at = checked_at
            return True
        except Exception as exc:
            logger.error("Failed to update status for entry %s: %s", entry.id, exc)
            return False
