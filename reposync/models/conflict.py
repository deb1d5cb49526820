"""Conflict model"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from reposync.models.base import Base, utcnow


class Conflict(Base):
    """Conflict log for manual resolution"""

    __tablename__ = "conflicts"

    id = Column(Integer, primary_key=True, index=True)

    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)

    # Entity information
    entity_kind = Column(String, nullable=False)  # "release" or "issue"
    mirror_id = Column(Integer, nullable=True)
    canonical_id = Column(Integer, nullable=True)
    external_id = Column(String, nullable=True)

    # Conflict details
    field_name = Column(String, nullable=True)
    conflict_type = Column(String, nullable=False)  # e.g., "concurrent_update", "stale_write"
    description = Column(Text, nullable=False)
    external_value = Column(Text, nullable=True)
    canonical_value = Column(Text, nullable=True)

    # Resolution
    resolved = Column(Boolean, default=False)
    resolved_at = Column(DateTime, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    connection = relationship("Connection")

    def __repr__(self):
        return f"<Conflict(type={self.conflict_type}, field={self.field_name}, resolved={self.resolved})>"
