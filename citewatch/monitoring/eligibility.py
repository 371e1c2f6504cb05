"""Decide whether a monitoring entry is due for a recheck."""

from datetime import datetime
from typing import Iterable

from citewatch.database import as_utc
from citewatch.models.monitoring import CheckFrequency, MonitoringEntry

FREQUENCY_HOURS = {
    CheckFrequency.DAILY.value: 24.0,
    CheckFrequency.WEEKLY.value: 168.0,
    CheckFrequency.MONTHLY.value: 720.0,
}
DEFAULT_THRESHOLD_HOURS = FREQUENCY_HOURS[CheckFrequency.DAILY.value]


def threshold_hours(frequency) -> float:
    """Hours that must elapse between checks; unknown values use daily."""
    key = frequency.value if isinstance(frequency, CheckFrequency) else str(frequency or "")
    return FREQUENCY_HOURS.get(key.lower(), DEFAULT_THRESHOLD_HOURS)


def is_due(entry: MonitoringEntry, now: datetime) -> bool:
    """Return True when ``entry`` should be checked at ``now``."""
    last_checked = as_utc(entry.last_checked_at)
    if last_checked is None:
        return True
    elapsed_hours = (as_utc(now) - last_checked).total_seconds() / 3600.0
    return elapsed_hours >= threshold_hours(entry.check_frequency)


def filter_due(entries: Iterable[MonitoringEntry], now: datetime) -> list[MonitoringEntry]:
    """Due entries, in input order."""
    return [entry for entry in entries if is_due(entry, now)]
