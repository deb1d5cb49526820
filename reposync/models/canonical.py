"""Canonical (internally owned) releases, feedback and tags"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from reposync.models.base import Base, utcnow


class Release(Base):
    """Changelog release users see and edit"""

    __tablename__ = "releases"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String, nullable=True, index=True)
    published_at = Column(DateTime, nullable=True)

    # Back-reference to the GitHub release (kept after disconnect for re-linking)
    external_release_id = Column(String, nullable=True, index=True)
    external_html_url = Column(String, nullable=True)
    synced_from_external = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Release(version='{self.version}', title='{self.title}')>"


class Feedback(Base):
    """Feedback item (the canonical counterpart of a GitHub issue)"""

    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    # open, under_review, planned, in_progress, completed, closed
    status = Column(String, nullable=False, default="open")

    external_issue_id = Column(String, nullable=True, index=True)
    external_issue_number = Column(Integer, nullable=True)
    external_html_url = Column(String, nullable=True)
    synced_from_external = Column(Boolean, default=False)

    # AI analysis
    ai_priority = Column(String, nullable=True)
    ai_priority_reasoning = Column(Text, nullable=True)
    ai_complexity = Column(String, nullable=True)
    ai_complexity_reasoning = Column(Text, nullable=True)
    ai_time_estimate = Column(String, nullable=True)
    ai_analyzed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tags = relationship("FeedbackTag", cascade="all, delete-orphan", back_populates="feedback")

    def __repr__(self):
        return f"<Feedback(title='{self.title}', status='{self.status}')>"


class Tag(Base):
    """Organization tag"""

    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("organization_id", "name", name="uq_tags_org_name"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Tag(name='{self.name}')>"


class FeedbackTag(Base):
    """Tag applied to a feedback item"""

    __tablename__ = "feedback_tags"
    __table_args__ = (UniqueConstraint("feedback_id", "tag_id", name="uq_feedback_tags_pair"),)

    id = Column(Integer, primary_key=True, index=True)
    feedback_id = Column(Integer, ForeignKey("feedback.id"), nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), nullable=False)
    source = Column(String, nullable=False, default="manual")  # label, ai, manual

    feedback = relationship("Feedback", back_populates="tags")
    tag = relationship("Tag")

    def __repr__(self):
        return f"<FeedbackTag(feedback={self.feedback_id}, tag={self.tag_id}, source={self.source})>"
