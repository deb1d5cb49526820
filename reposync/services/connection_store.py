"""Connection store: one GitHub repository connection per organization"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from reposync.config import settings
from reposync.models import Connection, ExternalIssue, ExternalRelease, SyncJob
from reposync.models.base import utcnow
from reposync.models.connection import ConnectionStatus, SyncDirection, SyncRunStatus
from reposync.models.sync_job import JobStatus

logger = logging.getLogger(__name__)

# Settings a caller may change through update_settings().
SETTING_FIELDS = (
    "target_branch",
    "auto_sync_releases",
    "auto_publish_imported",
    "push_to_github_on_publish",
    "issues_sync_enabled",
    "auto_sync_issues",
    "webhook_secret",
)


class ConnectionStore:
    """CRUD + sync lease for Connection rows.

    Expected failures come back as outcome dicts; nothing here raises for them.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, connection_id: int) -> Optional[Connection]:
        return self.db.query(Connection).filter(Connection.id == connection_id).first()

    def get_by_organization(self, organization_id: str) -> Optional[Connection]:
        return self.db.query(Connection).filter(Connection.organization_id == organization_id).first()

    def get_by_installation(self, installation_id: str) -> Optional[Connection]:
        return (
            self.db.query(Connection)
            .filter(Connection.installation_id == str(installation_id))
            .order_by(Connection.id)
            .first()
        )

    @staticmethod
    def _not_found(connection_id: int) -> Dict[str, Any]:
        return {"status": "not_found", "message": f"Connection {connection_id} not found"}

    def connect(
        self,
        organization_id: str,
        installation_id: str,
        account_login: Optional[str] = None,
        account_type: Optional[str] = None,
        repository: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create or re-activate the organization's connection."""
        connection = self.get_by_organization(organization_id)
        created = connection is None
        if created:
            connection = Connection(organization_id=organization_id)
            self.db.add(connection)

        connection.installation_id = str(installation_id)
        connection.account_login = account_login
        connection.account_type = account_type
        connection.status = ConnectionStatus.CONNECTED
        connection.status_message = None
        connection.disconnected_at = None
        if repository:
            connection.repository_id = str(repository.get("id")) if repository.get("id") else None
            connection.repository_full_name = repository.get("full_name")
            connection.default_branch = repository.get("default_branch")

        self.db.commit()
        self.db.refresh(connection)
        logger.info(
            f"{'Created' if created else 'Re-activated'} connection {connection.id} "
            f"for organization {organization_id} (installation {installation_id})"
        )
        return {"status": "success", "connection_id": connection.id, "created": created}

    def has_processing_job(self, connection_id: int) -> bool:
        return (
            self.db.query(SyncJob)
            .filter(SyncJob.connection_id == connection_id, SyncJob.status == JobStatus.PROCESSING)
            .first()
            is not None
        )

    def _lease_expiry(self):
        return utcnow() - timedelta(minutes=settings.sync_lease_minutes)

    def lease_held(self, connection: Connection) -> bool:
        if connection.last_sync_status != SyncRunStatus.SYNCING:
            return False
        started = connection.sync_started_at
        return started is not None and started >= self._lease_expiry()

    def _unlink_mirrors(self, connection_id: int, repository_id: Optional[str] = None) -> int:
        """Detach mirrors from their canonical entities (canonical external ids are kept)."""
        unlinked = 0
        for model, link_attr in (
            (ExternalRelease, "linked_release_id"),
            (ExternalIssue, "linked_feedback_id"),
        ):
            query = self.db.query(model).filter(
                model.connection_id == connection_id, getattr(model, link_attr).isnot(None)
            )
            if repository_id is not None:
                query = query.filter(or_(model.repository_id == repository_id, model.repository_id.is_(None)))
            for mirror in query.all():
                setattr(mirror, link_attr, None)
                unlinked += 1
        return unlinked

    def change_repository(
        self,
        connection_id: int,
        repository_id: str,
        full_name: Optional[str] = None,
        default_branch: Optional[str] = None,
    ) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)

        if self.has_processing_job(connection_id) or self.lease_held(connection):
            logger.warning(f"Refusing repository change on connection {connection_id}: sync in progress")
            return {"status": "rejected", "message": "A sync is in progress; retry later"}

        previous = connection.repository_id
        unlinked = 0
        if previous and previous != str(repository_id):
            unlinked = self._unlink_mirrors(connection_id, previous)

        connection.repository_id = str(repository_id)
        connection.repository_full_name = full_name
        connection.default_branch = default_branch
        if connection.target_branch is None or previous != str(repository_id):
            connection.target_branch = default_branch
        self.db.commit()
        logger.info(f"Connection {connection_id} now targets {full_name or repository_id} ({unlinked} mirrors unlinked)")
        return {"status": "success", "unlinked": unlinked}

    def update_direction(self, connection_id: int, direction) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        try:
            connection.sync_direction = SyncDirection(direction)
        except ValueError:
            return {"status": "invalid", "message": f"Unknown sync direction: {direction}"}
        self.db.commit()
        return {"status": "success", "direction": connection.sync_direction.value}

    def update_settings(self, connection_id: int, **toggles) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        unknown = sorted(set(toggles) - set(SETTING_FIELDS))
        if unknown:
            return {"status": "invalid", "message": f"Unknown settings: {', '.join(unknown)}"}
        for key, value in toggles.items():
            setattr(connection, key, value)
        self.db.commit()
        return {"status": "success", "updated": sorted(toggles)}

    def record_sync_outcome(self, connection_id: int, status, error: Optional[str] = None) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        connection.last_sync_status = SyncRunStatus(status)
        connection.last_sync_error = error
        connection.last_sync_at = utcnow()
        self.db.commit()
        return {"status": "success"}

    def mark_error(self, connection_id: int, message: str) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        connection.status = ConnectionStatus.ERROR
        connection.status_message = message
        self.db.commit()
        logger.warning(f"Connection {connection_id} marked as error: {message}")
        return {"status": "success"}

    def begin_sync(self, connection_id: int) -> Dict[str, Any]:
        """Acquire the per-connection sync lease (atomic conditional update)."""
        now = utcnow()
        result = self.db.execute(
            update(Connection)
            .where(
                Connection.id == connection_id,
                or_(
                    Connection.last_sync_status != SyncRunStatus.SYNCING,
                    Connection.sync_started_at.is_(None),
                    Connection.sync_started_at < self._lease_expiry(),
                ),
            )
            .values(last_sync_status=SyncRunStatus.SYNCING, sync_started_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 1:
            return {"status": "success", "started_at": now}
        if self.get(connection_id) is None:
            return self._not_found(connection_id)
        return {"status": "rejected", "message": "A sync is already running for this connection; retry later"}

    def end_sync(self, connection_id: int, status, error: Optional[str] = None) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        self.db.refresh(connection)
        connection.sync_started_at = None
        connection.last_sync_status = SyncRunStatus(status)
        connection.last_sync_error = error
        connection.last_sync_at = utcnow()
        self.db.commit()
        return {"status": "success"}

    def disconnect(self, connection_id: int) -> Dict[str, Any]:
        connection = self.get(connection_id)
        if not connection:
            return self._not_found(connection_id)
        unlinked = self._unlink_mirrors(connection_id)
        connection.status = ConnectionStatus.PENDING
        connection.status_message = "Disconnected"
        connection.disconnected_at = utcnow()
        self.db.commit()
        logger.info(f"Disconnected connection {connection_id} ({unlinked} mirrors unlinked)")
        return {"status": "success", "unlinked": unlinked}
