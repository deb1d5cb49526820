"""Label mapping model"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from reposync.models.base import Base, utcnow


class LabelMapping(Base):
    """GitHub label -> internal tag rule"""

    __tablename__ = "label_mappings"
    __table_args__ = (
        UniqueConstraint("connection_id", "label_name", name="uq_label_mappings_conn_label"),
    )

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)

    label_name = Column(String, nullable=False)
    label_color = Column(String, nullable=True)
    target_tag_id = Column(Integer, ForeignKey("tags.id"), nullable=True)

    auto_sync = Column(Boolean, default=False)
    sync_closed_issues = Column(Boolean, default=False)
    default_status = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    target_tag = relationship("Tag")

    def __repr__(self):
        return f"<LabelMapping('{self.label_name}' -> tag {self.target_tag_id})>"
