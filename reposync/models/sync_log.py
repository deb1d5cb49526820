"""Sync log model"""
import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from reposync.models.base import Base, utcnow


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"
    CONFLICT = "conflict"
    SKIPPED = "skipped"


class FlowDirection(str, enum.Enum):
    """Which way a single write travelled"""
    INBOUND = "inbound"  # GitHub -> canonical
    OUTBOUND = "outbound"  # canonical -> GitHub


class SyncLog(Base):
    """Log of sync operations"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)

    # Entity information
    entity_kind = Column(String, nullable=True)  # "release", "issue" or None for run-level entries
    external_id = Column(String, nullable=True)

    # Sync details
    status = Column(Enum(SyncStatus), nullable=False)
    direction = Column(Enum(FlowDirection), nullable=True)
    message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    connection = relationship("Connection")

    def __repr__(self):
        return f"<SyncLog(status={self.status}, direction={self.direction})>"
