"""Monitoring entry SQLAlchemy model and its enums."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from citewatch.database import Base, utcnow


class CheckFrequency(str, enum.Enum):
    """How often a tracked pair is rechecked."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CitationStatus(str, enum.Enum):
    """Last known citation status of a monitoring entry."""

    NEVER_CHECKED = "never_checked"
    CITED = "cited"
    NOT_CITED = "not_cited"

    @classmethod
    def from_cited(cls, is_cited: bool) -> "CitationStatus":
        return cls.CITED if is_cited else cls.NOT_CITED


class MonitoringEntry(Base):
    """A (query, domain) pair tracked for one user."""

    __tablename__ = "monitoring_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    query: Mapped[str] = mapped_column(String(500), nullable=False)
    domain: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    # Free text; unknown values are checked on the daily threshold.
    check_frequency: Mapped[str] = mapped_column(
        String(20), default=CheckFrequency.DAILY.value, nullable=False
    )
    alert_on_change: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_citation_status: Mapped[CitationStatus] = mapped_column(
        Enum(CitationStatus, native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        default=CitationStatus.NEVER_CHECKED,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<MonitoringEntry id={self.id} user={self.user_id!r} "
            f"query={self.query!r} domain={self.domain!r} "
            f"status={self.last_citation_status.value if self.last_citation_status else None}>"
        )
