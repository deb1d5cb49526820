"""Long-running job tracking and the batch driver built on it"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from reposync.config import settings
from reposync.models import SyncJob
from reposync.models.base import SessionLocal, utcnow
from reposync.models.sync_job import JobKind, JobStatus
from reposync.services.errors import AuthenticationSyncError

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled"


class JobTracker:
    """pending -> processing -> completed | failed, with per-item counters.

    "completed" means the job finished running, not that every item succeeded.
    Counters only move forward and terminal jobs are never modified again.
    """

    def __init__(self, db: Session, error_cap: Optional[int] = None):
        self.db = db
        self.error_cap = error_cap if error_cap is not None else settings.job_error_cap

    def get_job(self, job_id: int) -> Optional[SyncJob]:
        job = self.db.query(SyncJob).filter(SyncJob.id == job_id).first()
        if job is not None:
            # Other sessions (workers, cancel requests) may have written since we loaded it.
            self.db.refresh(job)
        return job

    def get_active_job(
        self,
        kind: JobKind,
        *,
        organization_id: Optional[str] = None,
        connection_id: Optional[int] = None,
    ) -> Optional[SyncJob]:
        query = self.db.query(SyncJob).filter(
            SyncJob.kind == kind,
            SyncJob.status.in_([JobStatus.PENDING, JobStatus.PROCESSING]),
        )
        if organization_id is not None:
            query = query.filter(SyncJob.organization_id == organization_id)
        if connection_id is not None:
            query = query.filter(SyncJob.connection_id == connection_id)
        return query.order_by(SyncJob.started_at.desc(), SyncJob.id.desc()).first()

    def create_job(
        self,
        kind: JobKind,
        total_items: int,
        organization_id: str,
        connection_id: Optional[int] = None,
    ) -> SyncJob:
        job = SyncJob(
            kind=JobKind(kind),
            organization_id=organization_id,
            connection_id=connection_id,
            status=JobStatus.PENDING,
            total_items=max(0, int(total_items)),
            errors=[],
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"Created {job.kind.value} job {job.id} ({job.total_items} items)")
        return job

    def set_total(self, job_id: int, total_items: int) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None or job.status.is_terminal:
            return job
        if job.status != JobStatus.PENDING:
            logger.warning(f"Ignoring total change on job {job_id}: already {job.status.value}")
            return job
        job.total_items = max(0, int(total_items))
        self.db.commit()
        return job

    def start(self, job_id: int) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None or job.status != JobStatus.PENDING:
            return job
        job.status = JobStatus.PROCESSING
        job.started_at = utcnow()
        self.db.commit()
        return job

    def _finish(self, job: SyncJob, status: JobStatus):
        job.status = status
        job.processed_items = max(job.processed_items, job.successful_items + job.failed_items)
        job.completed_at = utcnow()

    def update_progress(
        self,
        job_id: int,
        processed: int,
        successful: int,
        failed: int,
        status: Optional[JobStatus] = None,
    ) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None:
            return None
        if job.status.is_terminal:
            logger.warning(f"Ignoring progress update on terminal job {job_id}")
            return job

        if processed < job.processed_items or successful < job.successful_items or failed < job.failed_items:
            logger.warning(
                f"Ignoring counter regression on job {job_id}: "
                f"{processed}/{successful}/{failed} < "
                f"{job.processed_items}/{job.successful_items}/{job.failed_items}"
            )
        if processed != successful + failed:
            logger.warning(
                f"Job {job_id}: processed count {processed} does not match "
                f"{successful} succeeded + {failed} failed; using the sum"
            )
        job.successful_items = max(job.successful_items, successful)
        job.failed_items = max(job.failed_items, failed)
        # processed always equals successful + failed and never decreases.
        job.processed_items = max(job.processed_items, job.successful_items + job.failed_items)

        if status is not None:
            status = JobStatus(status)
            if status.is_terminal:
                self._finish(job, status)
            else:
                job.status = status

        # An explicit status wins over auto-completion.
        if (
            status is None
            and not job.status.is_terminal
            and job.total_items > 0
            and job.processed_items >= job.total_items
        ):
            self._finish(job, JobStatus.COMPLETED)

        self.db.commit()
        return job

    def append_error(self, job_id: int, item_id: Optional[str], message: str) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None or job.status.is_terminal:
            return job
        errors = list(job.errors or [])
        if len(errors) < self.error_cap:
            errors.append({"item_id": None if item_id is None else str(item_id), "error": message})
            # JSON columns only notice reassignment, not in-place mutation.
            job.errors = errors
        else:
            job.errors_truncated = (job.errors_truncated or 0) + 1
        self.db.commit()
        return job

    def complete(self, job_id: int) -> Optional[SyncJob]:
        job = self.get_job(job_id)
        if job is None or job.status.is_terminal:
            return job
        self._finish(job, JobStatus.COMPLETED)
        self.db.commit()
        logger.info(
            f"Job {job_id} completed: {job.successful_items} succeeded, {job.failed_items} failed"
        )
        return job

    def fail(self, job_id: int, message: str) -> Optional[SyncJob]:
        job = self.append_error(job_id, None, message)
        if job is None or job.status.is_terminal:
            return job
        self._finish(job, JobStatus.FAILED)
        self.db.commit()
        logger.error(f"Job {job_id} failed: {message}")
        return job

    def cancel(self, job_id: int) -> Dict[str, Any]:
        job = self.get_job(job_id)
        if job is None:
            return {"status": "not_found", "message": f"Job {job_id} not found"}
        if job.status.is_terminal:
            return {"status": "rejected", "message": f"Job {job_id} already {job.status.value}"}
        self.fail(job_id, CANCELLED_MESSAGE)
        return {"status": "success"}

    def is_cancelled(self, job_id: int) -> bool:
        job = self.get_job(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return False
        return any(e.get("error") == CANCELLED_MESSAGE for e in (job.errors or []))


class BatchRunner:
    """Drive a job over a list of items with a bounded worker pool.

    Items are dispatched in windows of the pool size; progress is written and
    the job re-read for cancellation between windows. Each item gets its own
    database session, so one failing item cannot poison the others.
    """

    def __init__(
        self,
        tracker: JobTracker,
        *,
        max_workers: Optional[int] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.tracker = tracker
        self.max_workers = max(1, max_workers or settings.sync_max_workers)
        self.session_factory = session_factory

    def _run_item(self, process_item: Callable[[Session, Any], Any], item: Any):
        db = self.session_factory()
        try:
            return process_item(db, item)
        finally:
            db.close()

    def run(
        self,
        job_id: int,
        items: Iterable[Any],
        process_item: Callable[[Session, Any], Any],
        item_id: Callable[[Any], Optional[str]] = lambda item: None,
    ) -> Dict[str, Any]:
        items: List[Any] = list(items)
        tracker = self.tracker
        tracker.start(job_id)

        stats = {"processed": 0, "successful": 0, "failed": 0}
        outcome = "completed"
        auth_error = None

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for start in range(0, len(items), self.max_workers):
                if tracker.is_cancelled(job_id):
                    logger.info(f"Job {job_id} cancelled; stopping after {stats['processed']} items")
                    outcome = "cancelled"
                    break

                window = items[start:start + self.max_workers]
                futures = [(item, pool.submit(self._run_item, process_item, item)) for item in window]
                for item, future in futures:
                    try:
                        future.result()
                        stats["successful"] += 1
                    except AuthenticationSyncError as e:
                        stats["failed"] += 1
                        auth_error = e
                    except Exception as e:
                        stats["failed"] += 1
                        logger.error(f"Job {job_id}: item {item_id(item)} failed: {e}")
                        tracker.append_error(job_id, item_id(item), str(e))
                stats["processed"] = stats["successful"] + stats["failed"]

                if auth_error is not None:
                    tracker.update_progress(job_id, stats["processed"], stats["successful"], stats["failed"],
                                            status=JobStatus.PROCESSING)
                    tracker.fail(job_id, f"Authentication failed: {auth_error}")
                    outcome = "failed"
                    break

                tracker.update_progress(job_id, stats["processed"], stats["successful"], stats["failed"])

        if outcome == "completed":
            tracker.complete(job_id)

        return {
            "status": outcome,
            "stats": stats,
            "auth_error": None if auth_error is None else str(auth_error),
        }
