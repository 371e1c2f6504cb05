"""Create, deactivate and list monitoring entries."""

import logging
from typing import Optional

from citewatch.database import get_session
from citewatch.models.monitoring import CheckFrequency, CitationStatus, MonitoringEntry
from citewatch.utils.helpers import normalize_domain

logger = logging.getLogger(__name__)


def add_entry(
    user_id: str,
    query: str,
    domain: str,
    check_frequency: str = CheckFrequency.DAILY.value,
    alert_on_change: bool = True,
) -> MonitoringEntry:
    """Start tracking a (query, domain) pair for a user.

    Raises:
        ValueError: On an empty field or an unknown frequency.
    """
    query = (query or "").strip()
    domain_clean = normalize_domain(domain)
    if not user_id or not query or not domain_clean:
        raise ValueError("user_id, query and domain are required")
    try:
        frequency = CheckFrequency(str(check_frequency).lower())
    except ValueError:
        valid = ", ".join(f.value for f in CheckFrequency)
        raise ValueError(f"check_frequency must be one of: {valid}") from None

    with get_session() as session:
        entry = MonitoringEntry(
            user_id=user_id,
            query=query,
            domain=domain_clean,
            check_frequency=frequency.value,
            alert_on_change=alert_on_change,
            is_active=True,
            last_citation_status=CitationStatus.NEVER_CHECKED,
        )
        session.add(entry)
        session.flush()
    logger.info("Tracking %r for %r (entry %s, %s)", query, domain_clean, entry.id, frequency.value)
    return entry


def deactivate_entry(entry_id: int) -> bool:
    """Stop monitoring an entry; its history is kept.  Returns False if missing."""
    with get_session() as session:
        entry = session.get(MonitoringEntry, entry_id)
        if entry is None:
            return False
        entry.is_active = False
    logger.info("Deactivated monitoring entry %s", entry_id)
    return True


def list_entries(user_id: Optional[str] = None, active_only: bool = True) -> list[MonitoringEntry]:
    with get_session() as session:
        q = session.query(MonitoringEntry)
        if user_id:
            q = q.filter(MonitoringEntry.user_id == user_id)
        if active_only:
            q = q.filter(MonitoringEntry.is_active.is_(True))
        return q.order_by(MonitoringEntry.id.asc()).all()
