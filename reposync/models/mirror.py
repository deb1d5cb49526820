"""Mirrors of external (GitHub) releases and issues"""
from sqlalchemy import (
    JSON,
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


class ExternalRelease(Base):
    """A release as it exists on GitHub"""

    __tablename__ = "external_releases"
    __table_args__ = (
        UniqueConstraint("connection_id", "external_release_id", name="uq_external_releases_conn_ext_id"),
        UniqueConstraint("linked_release_id", name="uq_external_releases_linked_release"),
    )

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    repository_id = Column(String, nullable=True)

    external_release_id = Column(String, nullable=False)
    tag_name = Column(String, nullable=False)
    name = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    html_url = Column(String, nullable=True)
    is_draft = Column(Boolean, default=False)
    is_prerelease = Column(Boolean, default=False)
    published_at = Column(DateTime, nullable=True)
    external_created_at = Column(DateTime, nullable=True)

    linked_release_id = Column(Integer, ForeignKey("releases.id"), nullable=True)

    # Sync metadata
    sync_hash = Column(String, nullable=True)  # Hash of last mirrored content
    last_synced_at = Column(DateTime, default=utcnow)
    deleted_externally_at = Column(DateTime, nullable=True)
    version_id = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)

    connection = relationship("Connection")
    linked_release = relationship("Release")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<ExternalRelease(tag='{self.tag_name}', linked={self.linked_release_id})>"


class ExternalIssue(Base):
    """An issue as it exists on GitHub"""

    __tablename__ = "external_issues"
    __table_args__ = (
        UniqueConstraint("connection_id", "external_issue_id", name="uq_external_issues_conn_ext_id"),
        UniqueConstraint("linked_feedback_id", name="uq_external_issues_linked_feedback"),
    )

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False, index=True)
    repository_id = Column(String, nullable=True)

    external_issue_id = Column(String, nullable=False)
    number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=True)
    html_url = Column(String, nullable=True)
    state = Column(String, nullable=False, default="open")  # "open" or "closed"
    labels = Column(JSON, nullable=False, default=list)
    author = Column(String, nullable=True)
    milestone = Column(String, nullable=True)
    assignees = Column(JSON, nullable=False, default=list)
    external_created_at = Column(DateTime, nullable=True)
    external_updated_at = Column(DateTime, nullable=True)
    external_closed_at = Column(DateTime, nullable=True)

    linked_feedback_id = Column(Integer, ForeignKey("feedback.id"), nullable=True)

    # Sync metadata
    sync_hash = Column(String, nullable=True)
    last_synced_at = Column(DateTime, default=utcnow)
    deleted_externally_at = Column(DateTime, nullable=True)
    version_id = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)

    connection = relationship("Connection")
    linked_feedback = relationship("Feedback")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<ExternalIssue(number={self.number}, linked={self.linked_feedback_id})>"
