"""
Store Records

Database model backing the document store. Every persisted object lives in
one row addressed by a slash-separated path such as
``complianceAnalyses/<id>`` or ``complianceAnalyses/<id>/details/items``.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreRecord(Base):
    """A JSON document stored under a path."""

    __tablename__ = "store_records"

    path = Column(String(512), primary_key=True)
    collection = Column(String(255), index=True, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    size_bytes = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self):
        return f"<StoreRecord(path='{self.path}', size={self.size_bytes})>"
