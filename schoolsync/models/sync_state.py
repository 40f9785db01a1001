"""
SQLAlchemy model for the key-value sync state (endpoint, encrypted token,
schedule, sync log, hash index).
"""

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func

from schoolsync.core.database import Base


class SyncStateEntry(Base):
    """One key of persisted sync state. Values never contain record PII."""

    __tablename__ = "sync_state"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<SyncStateEntry(key='{self.key}')>"
