"""Progress-tracked batch job model"""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, String

from reposync.models.base import Base, utcnow


class JobStatus(str, enum.Enum):
    """Job status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, enum.Enum):
    """Workload a job runs"""
    FULL_SYNC = "full_sync"
    AUTO_TAGGING = "auto_tagging"


class SyncJob(Base):
    """Generic long-running batch operation with per-item accounting"""

    __tablename__ = "sync_jobs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String, nullable=False, index=True)
    connection_id = Column(Integer, ForeignKey("connections.id"), nullable=True, index=True)
    kind = Column(Enum(JobKind), nullable=False)

    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.PENDING)
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    successful_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)

    # [{"item_id": str | None, "error": str}], capped by settings.job_error_cap
    errors = Column(JSON, nullable=False, default=list)
    errors_truncated = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<SyncJob(kind={self.kind}, status={self.status}, "
            f"{self.processed_items}/{self.total_items})>"
        )
