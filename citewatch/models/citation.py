"""Citation check history SQLAlchemy model."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from citewatch.database import Base, as_utc, utcnow


class CitationCheckRecord(Base):
    """Immutable result of one engine check for a query + domain pair."""

    __tablename__ = "citation_check_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    query: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    domain: Mapped[str] = mapped_column(String(500), nullable=False)
    engine: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_cited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    answer_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    cited_sources: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    recommendations: Mapped[str] = mapped_column(Text, default="", nullable=False)
    citation_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_sources: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    def to_dict(self) -> dict[str, Any]:
        checked_at = as_utc(self.checked_at)
        return {
            "id": self.id,
            "user_id": self.user_id,
            "query": self.query,
            "domain": self.domain,
            "engine": self.engine,
            "is_cited": self.is_cited,
            "answer_text": self.answer_text,
            "cited_sources": list(self.cited_sources or []),
            "recommendations": self.recommendations,
            "citation_position": self.citation_position,
            "total_sources": self.total_sources,
            "checked_at": checked_at.isoformat() if checked_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<CitationCheckRecord id={self.id} query={self.query!r} "
            f"engine={self.engine!r} cited={self.is_cited}>"
        )
