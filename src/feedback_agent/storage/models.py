"""Database models for the document store."""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index

from feedback_agent.storage.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(Base):
    """
    One JSON document addressed by a logical collection path and id.

    Collections are plain strings such as ``agents`` or
    ``agents/{agent_id}/materials``.
    """
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )
