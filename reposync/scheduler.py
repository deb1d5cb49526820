"""Background scheduler for periodic full syncs"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reposync.config import settings
from reposync.models import Connection
from reposync.models.base import SessionLocal
from reposync.models.connection import ConnectionStatus
from reposync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

JOB_PREFIX = "sync_connection_"


def wants_scheduled_sync(connection: Connection) -> bool:
    return (
        connection.status == ConnectionStatus.CONNECTED
        and bool(connection.repository)
        and bool(connection.auto_sync_releases or (connection.issues_sync_enabled and connection.auto_sync_issues))
    )


class SyncScheduler:
    """Scheduler for periodic release/issue synchronization"""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        # Best-effort in-memory index of jobs we created.
        # APScheduler itself is the source of truth (see get_job()).
        self.jobs = {}

    def start(self):
        """Start the scheduler"""
        self.scheduler.start()
        logger.info("Sync scheduler started")

        self.schedule_all_connections()

    def stop(self):
        """Stop the scheduler"""
        self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")

    def schedule_all_connections(self):
        """Schedule sync jobs for all auto-syncing connections"""
        db = SessionLocal()
        try:
            connections = db.query(Connection).all()
            wanted = {c.id for c in connections if wants_scheduled_sync(c)}

            # If this is ever re-run, reconcile existing jobs too.
            for job_id in list(self.jobs.keys()):
                connection_id = int(job_id[len(JOB_PREFIX):])
                if connection_id not in wanted:
                    self.unschedule_connection(connection_id)

            for connection_id in sorted(wanted):
                self.schedule_connection(connection_id)
        finally:
            db.close()

    def refresh_connection(self, connection: Connection):
        """Add or remove the job after a connection's settings changed."""
        if wants_scheduled_sync(connection):
            self.schedule_connection(connection.id)
        else:
            self.unschedule_connection(connection.id)

    def schedule_connection(self, connection_id: int, interval_minutes: int = None):
        """Schedule sync job for a specific connection"""
        job_id = f"{JOB_PREFIX}{connection_id}"
        interval_minutes = interval_minutes or settings.default_sync_interval_minutes

        # Remove existing job if it exists (don't rely solely on self.jobs)
        existing = self.scheduler.get_job(job_id)
        if existing is not None:
            self.scheduler.remove_job(job_id)

        self.scheduler.add_job(
            func=self._sync_connection_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=job_id,
            args=[connection_id],
            replace_existing=True,
        )
        self.jobs[job_id] = True
        logger.info(f"Scheduled sync for connection {connection_id} every {interval_minutes} minutes")

    def unschedule_connection(self, connection_id: int):
        """Remove sync job for a connection"""
        job_id = f"{JOB_PREFIX}{connection_id}"
        existing = self.scheduler.get_job(job_id)
        if existing is not None:
            self.scheduler.remove_job(job_id)
            logger.info(f"Unscheduled sync for connection {connection_id}")
        self.jobs.pop(job_id, None)

    def _sync_connection_job(self, connection_id: int):
        """Job function to sync a connection"""
        db = SessionLocal()
        try:
            logger.info(f"Running scheduled sync for connection {connection_id}")
            result = SyncService(db).trigger_full_sync(connection_id)
            logger.info(f"Scheduled sync finished for connection {connection_id}: {result}")
        except Exception as e:
            logger.error(f"Scheduled sync failed for connection {connection_id}: {e}")
        finally:
            db.close()


# Global scheduler instance
scheduler = SyncScheduler()
