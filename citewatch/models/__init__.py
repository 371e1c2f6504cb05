"""SQLAlchemy ORM models; importing this package populates Base.metadata."""

from citewatch.models.monitoring import (
    CheckFrequency,
    CitationStatus,
    MonitoringEntry,
)
from citewatch.models.citation import CitationCheckRecord
from citewatch.models.notification import (
    BatchRunLock,
    Notification,
)

__all__ = [
    "CheckFrequency",
    "CitationStatus",
    "MonitoringEntry",
    "CitationCheckRecord",
    "Notification",
    "BatchRunLock",
]
