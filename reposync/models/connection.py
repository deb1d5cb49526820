"""GitHub connection model"""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text

from reposync.models.base import Base, utcnow


class ConnectionStatus(str, enum.Enum):
    """Connection status enumeration"""
    CONNECTED = "connected"
    PENDING = "pending"
    ERROR = "error"


class SyncDirection(str, enum.Enum):
    """Which side's changes may propagate to the other"""
    EXTERNAL_FIRST = "external_first"
    INTERNAL_FIRST = "internal_first"
    BIDIRECTIONAL = "bidirectional"
    NONE = "none"

    @property
    def allows_inbound(self) -> bool:
        return self in (SyncDirection.EXTERNAL_FIRST, SyncDirection.BIDIRECTIONAL)

    @property
    def allows_outbound(self) -> bool:
        return self in (SyncDirection.INTERNAL_FIRST, SyncDirection.BIDIRECTIONAL)


class SyncRunStatus(str, enum.Enum):
    """Outcome of the most recent full sync"""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class Connection(Base):
    """One organization's link to one GitHub repository"""

    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String, unique=True, nullable=False, index=True)

    # GitHub App installation
    installation_id = Column(String, nullable=False, index=True)
    account_login = Column(String, nullable=True)
    account_type = Column(String, nullable=True)  # "user" or "organization"

    # Repository (optional until chosen)
    repository_id = Column(String, nullable=True)
    repository_full_name = Column(String, nullable=True)
    default_branch = Column(String, nullable=True)
    target_branch = Column(String, nullable=True)

    status = Column(Enum(ConnectionStatus), nullable=False, default=ConnectionStatus.CONNECTED)
    status_message = Column(Text, nullable=True)
    webhook_secret = Column(String, nullable=True)

    # Sync configuration
    sync_direction = Column(Enum(SyncDirection), nullable=False, default=SyncDirection.NONE)
    auto_sync_releases = Column(Boolean, default=False)
    auto_publish_imported = Column(Boolean, default=False)
    push_to_github_on_publish = Column(Boolean, default=False)
    issues_sync_enabled = Column(Boolean, default=False)
    auto_sync_issues = Column(Boolean, default=False)

    # Sync outcome + exclusive lease
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_status = Column(Enum(SyncRunStatus), nullable=False, default=SyncRunStatus.IDLE)
    last_sync_error = Column(Text, nullable=True)
    sync_started_at = Column(DateTime, nullable=True)

    disconnected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def direction(self) -> SyncDirection:
        return self.sync_direction or SyncDirection.NONE

    @property
    def repository(self) -> str | None:
        """Repository reference accepted by the GitHub client (full name preferred)."""
        return self.repository_full_name or self.repository_id

    def __repr__(self):
        return f"<Connection(org='{self.organization_id}', repo='{self.repository_full_name}')>"
