"""The scheduled monitoring run: fetch, filter, check, persist, notify."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from citewatch.database import get_session, utcnow
from citewatch.models.monitoring import MonitoringEntry
from citewatch.monitoring.eligibility import is_due
from citewatch.monitoring.lock import BatchLock
from citewatch.monitoring.notifier import Notifier
from citewatch.monitoring.orchestrator import EngineCheckOrchestrator
from citewatch.monitoring.transitions import TransitionDetector
from citewatch.utils.rate_limiter import FixedDelayThrottle, Throttle

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Counts reported back to the trigger."""
    total_entries: int = 0
    checked_count: int = 0
    status_changes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": "Automated monitoring completed",
            "stats": {
                "totalEntries": self.total_entries,
                "checkedCount": self.checked_count,
                "statusChanges": self.status_changes,
            },
        }


class MonitoringBatch:
    """One pass over every active monitoring entry.

    Entries are processed sequentially.  Each entry runs inside its own
    exception boundary so one failure never stops the rest of the batch.

    Usage::

        batch = MonitoringBatch(orchestrator=EngineCheckOrchestrator(check=checker))
        summary = await batch.run()
    """

    def __init__(
        self,
        orchestrator: EngineCheckOrchestrator,
        detector: Optional[TransitionDetector] = None,
        notifier: Optional[Notifier] = None,
        entry_throttle: Optional[Throttle] = None,
        lock: Optional[BatchLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._orchestrator = orchestrator
        self._detector = detector or TransitionDetector()
        self._notifier = notifier or Notifier()
        self._entry_throttle = (
            entry_throttle if entry_throttle is not None
            else FixedDelayThrottle(2.0, name="entries")
        )
        self._lock = lock
        self._clock = clock

    async def run(self) -> dict[str, Any]:
        """Run the batch and return the JSON-ready summary."""
        started = self._clock()
        if self._lock is not None:
            try:
                acquired = self._lock.acquire(started)
            except Exception as exc:
                logger.error("Automated monitoring error: %s", exc)
                return {"success": False, "error": str(exc)}
            if not acquired:
                return {"success": False, "error": "Another monitoring run is in progress"}

        try:
            try:
                entries = self._fetch_active_entries()
            except Exception as exc:
                logger.error("Automated monitoring error: %s", exc)
                return {"success": False, "error": str(exc)}

            summary = BatchSummary(total_entries=len(entries))
            logger.info("Monitoring run started: %d active entries", len(entries))
            processed = 0
            lost = False

            for entry in entries:
                try:
                    if not is_due(entry, started):
                        continue
                    if processed:
                        await self._entry_throttle.wait()
                        if self._lock is not None and not self._lock.renew(self._clock()):
                            lost = True
                            break
                    processed += 1
                    await self._process_entry(entry, summary)
                except Exception as exc:
                    logger.error("Error checking entry %s: %s", entry.id, exc)

            logger.info(
                "Monitoring run complete: %d entries, %d due, %d checked, %d changes",
                summary.total_entries, processed,
                summary.checked_count, summary.status_changes,
            )
            if lost:
                return {"success": False, "error": "Monitoring run lock was lost"}
            return summary.to_dict()
        finally:
            if self._lock is not None:
                self._lock.release()

    async def _process_entry(self, entry: MonitoringEntry, summary: BatchSummary) -> None:
        result = await self._orchestrator.run(entry)
        outcome = self._detector.apply(entry, result, self._clock())
        if outcome.checked:
            summary.checked_count += 1
        if outcome.changed and outcome.persisted:
            summary.status_changes += 1
        if outcome.event is not None:
            await self._notifier.notify(outcome.event)

    @staticmethod
    def _fetch_active_entries() -> list[MonitoringEntry]:
        with get_session() as session:
            return (
                session.query(MonitoringEntry)
                .filter(MonitoringEntry.is_active.is_(True))
                .order_by(MonitoringEntry.id.asc())
                .all()
            )
