"""Release/issue synchronization service"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reposync.models import (
    Connection,
    ExternalIssue,
    ExternalRelease,
    Feedback,
    LabelMapping,
    Release,
    SyncJob,
)
from reposync.models.base import SessionLocal, utcnow
from reposync.models.connection import ConnectionStatus, SyncRunStatus
from reposync.models.sync_job import JobKind
from reposync.services import label_mapper
from reposync.services.connection_store import ConnectionStore
from reposync.services.errors import AuthenticationSyncError, SyncError, ValidationSyncError
from reposync.services.github_client import GitHubApp, GitHubClient
from reposync.services.job_tracker import BatchRunner, JobTracker
from reposync.services.payloads import IssuePayload, ReleasePayload
from reposync.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


def issue_payload_from_mirror(mirror: ExternalIssue) -> IssuePayload:
    return IssuePayload(
        external_id=mirror.external_issue_id,
        number=mirror.number,
        title=mirror.title,
        body=mirror.body,
        html_url=mirror.html_url,
        state=mirror.state,
        labels=list(mirror.labels or []),
        author=mirror.author,
        milestone=mirror.milestone,
        assignees=list(mirror.assignees or []),
        created_at=mirror.external_created_at,
        updated_at=mirror.external_updated_at,
        closed_at=mirror.external_closed_at,
    )


class SyncService:
    """Service for synchronizing GitHub releases and issues"""

    def __init__(
        self,
        db: Session,
        *,
        client: Optional[GitHubClient] = None,
        app: Optional[GitHubApp] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        max_workers: Optional[int] = None,
    ):
        self.db = db
        self.app = app
        self.session_factory = session_factory
        self.max_workers = max_workers
        self.store = ConnectionStore(db)
        self.tracker = JobTracker(db)
        self.clients: Dict[int, GitHubClient] = {}
        self._default_client = client

    def _get_client(self, connection: Connection) -> GitHubClient:
        """Installation-scoped client; credential failures put the connection in error."""
        if self._default_client is not None:
            return self._default_client
        if connection.id not in self.clients:
            try:
                self.clients[connection.id] = GitHubClient.for_installation(
                    connection.installation_id, app=self.app or GitHubApp()
                )
            except AuthenticationSyncError as e:
                self.store.mark_error(connection.id, str(e))
                raise
        return self.clients[connection.id]

    def _get_connection(self, connection_id: int) -> Connection:
        connection = self.store.get(connection_id)
        if not connection:
            raise ValueError(f"Connection {connection_id} not found")
        return connection

    @staticmethod
    def _ensure_syncable(connection: Connection) -> Optional[Dict[str, Any]]:
        if connection.status != ConnectionStatus.CONNECTED:
            return {"status": "rejected", "message": f"Connection is {connection.status.value}"}
        if not connection.repository:
            return {"status": "rejected", "message": "No repository selected"}
        return None

    # ------------------------------------------------------------------ #
    # Full sync
    # ------------------------------------------------------------------ #

    def start_full_sync(self, connection_id: int) -> Dict[str, Any]:
        """Acquire the sync lease and create the job. Does not run it."""
        connection = self._get_connection(connection_id)
        rejected = self._ensure_syncable(connection)
        if rejected:
            return rejected

        lease = self.store.begin_sync(connection_id)
        if lease["status"] != "success":
            logger.info(f"Full sync for connection {connection_id} rejected: {lease['message']}")
            return lease

        job = self.tracker.create_job(
            JobKind.FULL_SYNC, 0, connection.organization_id, connection_id=connection_id
        )
        return {"status": "started", "job_id": job.id}

    def _unpushed_releases(self, connection: Connection) -> List[Release]:
        """Published canonical releases GitHub has never seen."""
        linked = {
            r[0]
            for r in self.db.query(ExternalRelease.linked_release_id)
            .filter(ExternalRelease.linked_release_id.isnot(None))
            .all()
        }
        releases = (
            self.db.query(Release)
            .filter(
                Release.organization_id == connection.organization_id,
                Release.published_at.isnot(None),
                Release.external_release_id.is_(None),
                Release.synced_from_external == False,  # noqa: E712
            )
            .order_by(Release.published_at)
            .all()
        )
        return [r for r in releases if r.id not in linked]

    def _collect_items(self, connection: Connection, client: GitHubClient) -> List[Tuple[str, Any]]:
        repo = connection.repository
        items: List[Tuple[str, Any]] = []
        for release in client.list_releases(repo):
            items.append(("release", ReleasePayload.from_github(release)))

        if connection.issues_sync_enabled:
            for issue in client.list_issues(repo):
                try:
                    items.append(("issue", IssuePayload.from_github(issue)))
                except ValidationSyncError as e:
                    logger.warning(f"Skipping issue #{getattr(issue, 'number', '?')}: {e}")

        if connection.direction.allows_outbound and connection.push_to_github_on_publish:
            for release in self._unpushed_releases(connection):
                items.append(("push", release.id))
        return items

    @staticmethod
    def _item_id(item: Tuple[str, Any]) -> str:
        kind, value = item
        if kind == "push":
            return f"push:{value}"
        return f"{kind}:{value.external_id}"

    def run_full_sync(self, job_id: int) -> Dict[str, Any]:
        """Run a started full sync job to completion and release the lease."""
        job = self.tracker.get_job(job_id)
        if not job:
            raise ValueError(f"Job {job_id} not found")
        connection_id = job.connection_id
        connection = self._get_connection(connection_id)
        logger.info(f"Starting full sync for connection {connection_id} ({connection.repository})")

        run_status = SyncRunStatus.ERROR
        error: Optional[str] = None
        try:
            client = self._get_client(connection)
            items = self._collect_items(connection, client)
            self.tracker.set_total(job_id, len(items))

            def process_item(db: Session, item: Tuple[str, Any]):
                conn = db.query(Connection).filter(Connection.id == connection_id).first()
                kind, value = item
                if kind == "push":
                    SyncService(db, client=client, app=self.app)._push_release(conn, value)
                    return
                reconciler = Reconciler(db, client=client)
                if kind == "release":
                    reconciler.reconcile_release(conn, value)
                else:
                    reconciler.reconcile_issue(conn, value)

            runner = BatchRunner(self.tracker, max_workers=self.max_workers, session_factory=self.session_factory)
            outcome = runner.run(job_id, items, process_item, item_id=self._item_id)

            job = self.tracker.get_job(job_id)
            if outcome["status"] == "completed":
                run_status = SyncRunStatus.SUCCESS
                if job.failed_items:
                    error = f"{job.failed_items} of {job.total_items} item(s) failed"
            else:
                error = job.errors[-1]["error"] if job.errors else outcome["status"]
            if outcome.get("auth_error"):
                self.store.mark_error(connection_id, f"Authentication failed: {outcome['auth_error']}")
            stats = outcome["stats"]
            logger.info(f"Full sync for connection {connection_id} {outcome['status']}: {stats}")
            return {"status": outcome["status"], "job_id": job_id, "stats": stats}

        except AuthenticationSyncError as e:
            error = str(e)
            self.store.mark_error(connection_id, error)
            self.tracker.fail(job_id, error)
            return {"status": "failed", "job_id": job_id, "error": error}
        except SyncError as e:
            error = str(e)
            logger.error(f"Full sync failed for connection {connection_id}: {e}")
            self.tracker.fail(job_id, error)
            return {"status": "failed", "job_id": job_id, "error": error}
        except Exception as e:
            error = str(e)
            logger.error(f"Full sync crashed for connection {connection_id}: {e}")
            self.db.rollback()
            self.tracker.fail(job_id, error)
            return {"status": "failed", "job_id": job_id, "error": error}
        finally:
            self.store.end_sync(connection_id, run_status, error)

    def trigger_full_sync(self, connection_id: int) -> Dict[str, Any]:
        started = self.start_full_sync(connection_id)
        if started["status"] != "started":
            return started
        return self.run_full_sync(started["job_id"])

    # ------------------------------------------------------------------ #
    # Manual actions
    # ------------------------------------------------------------------ #

    def _safe_commit(self) -> bool:
        """Commit, swallowing duplicate-link races."""
        try:
            self.db.commit()
            return True
        except IntegrityError:
            # Another worker likely linked it first.
            self.db.rollback()
            return False

    def import_external_release(self, mirror_id: int, auto_publish: bool = False) -> Dict[str, Any]:
        mirror = self.db.query(ExternalRelease).filter(ExternalRelease.id == mirror_id).first()
        if not mirror:
            raise ValueError(f"External release {mirror_id} not found")
        if mirror.linked_release_id is not None:
            return {"status": "skipped", "message": "Already imported", "release_id": mirror.linked_release_id}

        connection = mirror.connection
        now = utcnow()
        release = Release(
            organization_id=connection.organization_id,
            title=mirror.name or mirror.tag_name,
            description=mirror.body or "",
            version=mirror.tag_name,
            published_at=(mirror.published_at or now) if auto_publish else None,
            external_release_id=mirror.external_release_id,
            external_html_url=mirror.html_url,
            synced_from_external=True,
            created_at=now,
            updated_at=now,
        )
        self.db.add(release)
        self.db.flush()
        mirror.linked_release_id = release.id
        mirror.last_synced_at = now
        if not self._safe_commit():
            return {"status": "skipped", "message": "Imported concurrently"}
        logger.info(f"Imported release {mirror.tag_name} as release {release.id}")
        return {"status": "success", "release_id": release.id}

    def import_external_issue(
        self, mirror_id: int, tag_ids: Optional[List[int]] = None, status: Optional[str] = None
    ) -> Dict[str, Any]:
        mirror = self.db.query(ExternalIssue).filter(ExternalIssue.id == mirror_id).first()
        if not mirror:
            raise ValueError(f"External issue {mirror_id} not found")
        if mirror.linked_feedback_id is not None:
            return {"status": "skipped", "message": "Already imported", "feedback_id": mirror.linked_feedback_id}
        if status is not None and status not in label_mapper.FEEDBACK_STATUSES:
            return {"status": "invalid", "message": f"Unknown feedback status: {status}"}

        connection = mirror.connection
        mappings = self.db.query(LabelMapping).filter(LabelMapping.connection_id == connection.id).all()
        payload = issue_payload_from_mirror(mirror)
        resolution = label_mapper.resolve(payload.labels, mappings, payload.state)
        feedback, _ = Reconciler(self.db).link_or_create_feedback(
            connection, mirror, payload, utcnow(), resolution, status=status, extra_tag_ids=tag_ids
        )
        if not self._safe_commit():
            return {"status": "skipped", "message": "Imported concurrently"}
        logger.info(f"Imported issue #{mirror.number} as feedback {feedback.id}")
        return {"status": "success", "feedback_id": feedback.id}

    def _push_release(self, connection: Connection, release_id: int) -> ExternalRelease:
        """Create or update the GitHub release for a canonical release. Raises on failure."""
        release = self.db.query(Release).filter(Release.id == release_id).first()
        if not release:
            raise ValueError(f"Release {release_id} not found")
        if not release.version:
            raise ValidationSyncError("Release has no version to use as a tag")

        client = self._get_client(connection)
        repo = connection.repository
        mirror = (
            self.db.query(ExternalRelease)
            .filter(ExternalRelease.linked_release_id == release.id)
            .first()
        )
        external = None
        ext_id = mirror.external_release_id if mirror else release.external_release_id
        if ext_id:
            external = client.get_release_or_none(repo, ext_id)
        if external is not None:
            external = client.update_release(repo, ext_id, name=release.title, body=release.description or "")
        else:
            external = client.create_release(
                repo,
                tag_name=release.version,
                name=release.title,
                body=release.description or "",
                target_commitish=connection.target_branch,
            )

        payload = ReleasePayload.from_github(external)
        if mirror is None or mirror.external_release_id != payload.external_id:
            if mirror is not None:
                mirror.linked_release_id = None
                self.db.flush()
            mirror = (
                self.db.query(ExternalRelease)
                .filter(
                    ExternalRelease.connection_id == connection.id,
                    ExternalRelease.external_release_id == payload.external_id,
                )
                .first()
            )
            if mirror is None:
                mirror = ExternalRelease(
                    connection_id=connection.id,
                    repository_id=connection.repository_id,
                    external_release_id=payload.external_id,
                )
                self.db.add(mirror)

        now = utcnow()
        Reconciler.apply_release_snapshot(mirror, payload, payload.content_hash())
        mirror.linked_release_id = release.id
        mirror.last_synced_at = now
        release.external_release_id = payload.external_id
        release.external_html_url = payload.html_url
        release.updated_at = now
        self.db.commit()
        logger.info(f"Pushed release {release.id} to {repo} as {payload.tag_name}")
        return mirror

    def push_canonical_release(self, release_id: int) -> Dict[str, Any]:
        release = self.db.query(Release).filter(Release.id == release_id).first()
        if not release:
            raise ValueError(f"Release {release_id} not found")
        connection = self.store.get_by_organization(release.organization_id)
        if not connection:
            return {"status": "rejected", "message": "Organization has no GitHub connection"}
        rejected = self._ensure_syncable(connection)
        if rejected:
            return rejected
        try:
            mirror = self._push_release(connection, release_id)
        except SyncError as e:
            self.db.rollback()
            return {"status": "failed", "message": str(e)}
        return {"status": "success", "external_release_id": mirror.external_release_id, "html_url": mirror.html_url}

    # ------------------------------------------------------------------ #
    # Status + browsing
    # ------------------------------------------------------------------ #

    @staticmethod
    def _release_mirror_row(m: ExternalRelease) -> Dict[str, Any]:
        return {
            "mirror_id": m.id,
            "external_id": m.external_release_id,
            "tag_name": m.tag_name,
            "name": m.name,
            "html_url": m.html_url,
            "is_draft": bool(m.is_draft),
            "linked_id": m.linked_release_id,
        }

    @staticmethod
    def _issue_mirror_row(m: ExternalIssue) -> Dict[str, Any]:
        return {
            "mirror_id": m.id,
            "external_id": m.external_issue_id,
            "number": m.number,
            "title": m.title,
            "state": m.state,
            "labels": list(m.labels or []),
            "linked_id": m.linked_feedback_id,
        }

    def get_sync_status(self, connection_id: int, kind: str = "release") -> Dict[str, Any]:
        """Three-way view: GitHub-only, canonical-only and linked entities."""
        connection = self._get_connection(connection_id)
        if kind not in ("release", "issue"):
            raise ValueError(f"Unknown kind: {kind}")

        if kind == "release":
            mirrors = (
                self.db.query(ExternalRelease)
                .filter(
                    ExternalRelease.connection_id == connection_id,
                    ExternalRelease.deleted_externally_at.is_(None),
                )
                .order_by(ExternalRelease.id)
                .all()
            )
            linked_ids = {m.linked_release_id for m in mirrors if m.linked_release_id is not None}
            canonical = (
                self.db.query(Release)
                .filter(
                    Release.organization_id == connection.organization_id,
                    Release.published_at.isnot(None),
                    Release.external_release_id.is_(None),
                    Release.synced_from_external == False,  # noqa: E712
                )
                .order_by(Release.id)
                .all()
            )
            canonical_only = [
                {"id": r.id, "title": r.title, "version": r.version}
                for r in canonical
                if r.id not in linked_ids
            ]
            row = self._release_mirror_row
            linked_attr = "linked_release_id"
        else:
            mirrors = (
                self.db.query(ExternalIssue)
                .filter(
                    ExternalIssue.connection_id == connection_id,
                    ExternalIssue.deleted_externally_at.is_(None),
                )
                .order_by(ExternalIssue.id)
                .all()
            )
            linked_ids = {m.linked_feedback_id for m in mirrors if m.linked_feedback_id is not None}
            canonical = (
                self.db.query(Feedback)
                .filter(
                    Feedback.organization_id == connection.organization_id,
                    Feedback.external_issue_id.is_(None),
                )
                .order_by(Feedback.id)
                .all()
            )
            canonical_only = [
                {"id": f.id, "title": f.title, "status": f.status}
                for f in canonical
                if f.id not in linked_ids
            ]
            row = self._issue_mirror_row
            linked_attr = "linked_feedback_id"

        return {
            "status": "success",
            "kind": kind,
            "mirrors_only": [row(m) for m in mirrors if getattr(m, linked_attr) is None],
            "canonical_only": canonical_only,
            "linked": [row(m) for m in mirrors if getattr(m, linked_attr) is not None],
        }

    def list_repositories(self, connection_id: int) -> List[Dict[str, Any]]:
        connection = self._get_connection(connection_id)
        return (self.app or GitHubApp()).list_installation_repositories(connection.installation_id)

    def list_branches(self, connection_id: int) -> List[Dict[str, Any]]:
        connection = self._get_connection(connection_id)
        return self._get_client(connection).list_branches(connection.repository)

    def list_tags(self, connection_id: int) -> List[Dict[str, Any]]:
        connection = self._get_connection(connection_id)
        return self._get_client(connection).list_tags(connection.repository)

    def compare_commits(self, connection_id: int, base: str, head: str) -> List[Dict[str, Any]]:
        connection = self._get_connection(connection_id)
        return self._get_client(connection).compare_commits(connection.repository, base, head)

    def list_recent_commits(self, connection_id: int, branch: Optional[str] = None, limit: int = 30) -> List[Dict[str, Any]]:
        connection = self._get_connection(connection_id)
        branch = branch or connection.target_branch or connection.default_branch
        if not branch:
            raise ValidationSyncError("No branch selected")
        return self._get_client(connection).list_recent_commits(connection.repository, branch, limit=limit)

    def get_latest_job(self, connection_id: int) -> Optional[SyncJob]:
        return (
            self.db.query(SyncJob)
            .filter(SyncJob.connection_id == connection_id, SyncJob.kind == JobKind.FULL_SYNC)
            .order_by(SyncJob.started_at.desc(), SyncJob.id.desc())
            .first()
        )

