"""Reconciliation of GitHub releases/issues with canonical releases/feedback"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from reposync.config import settings
from reposync.models import (
    Conflict,
    Connection,
    ExternalIssue,
    ExternalRelease,
    Feedback,
    FeedbackTag,
    LabelMapping,
    Release,
    SyncLog,
)
from reposync.models.base import utcnow
from reposync.models.connection import SyncDirection
from reposync.models.sync_log import FlowDirection, SyncStatus
from reposync.services import label_mapper
from reposync.services.payloads import IssuePayload, ReleasePayload

logger = logging.getLogger(__name__)

RELEASE_FIELDS = ("title", "description", "version")
ISSUE_FIELDS = ("title", "description", "status")


@dataclass
class ReconcileResult:
    action: str  # created, updated, linked, mirrored, pushed, conflict, skipped
    kind: str
    external_id: Optional[str] = None
    mirror_id: Optional[int] = None
    canonical_id: Optional[int] = None
    conflicts: int = 0
    message: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "kind": self.kind,
            "external_id": self.external_id,
            "mirror_id": self.mirror_id,
            "canonical_id": self.canonical_id,
            "conflicts": self.conflicts,
            "message": self.message,
        }


def status_for_state(state: Optional[str]) -> str:
    """Feedback status implied by a GitHub issue state."""
    return "closed" if state == "closed" else "open"


def _release_values_from_mirror(mirror: ExternalRelease) -> Dict[str, Any]:
    return {"title": mirror.name or mirror.tag_name, "description": mirror.body or "", "version": mirror.tag_name}


def _release_values_from_payload(payload: ReleasePayload) -> Dict[str, Any]:
    return {"title": payload.title, "description": payload.body or "", "version": payload.tag_name}


def _release_values(release: Release) -> Dict[str, Any]:
    return {"title": release.title, "description": release.description or "", "version": release.version}


def _issue_values_from_mirror(mirror: ExternalIssue) -> Dict[str, Any]:
    return {"title": mirror.title, "description": mirror.body or "", "status": status_for_state(mirror.state)}


def _issue_values_from_payload(payload: IssuePayload) -> Dict[str, Any]:
    return {"title": payload.title, "description": payload.body or "", "status": status_for_state(payload.state)}


def _feedback_values(feedback: Feedback) -> Dict[str, Any]:
    return {"title": feedback.title, "description": feedback.description or "", "status": feedback.status}


class Reconciler:
    """Compare one external entity against its mirror and canonical counterpart.

    Each call handles exactly one entity and commits its own transaction.
    Mirrors are versioned; a write that loses a race is rolled back and
    retried once before being recorded as a stale_write conflict.
    """

    def __init__(
        self,
        db: Session,
        client=None,
        *,
        client_factory: Optional[Callable[[Connection], Any]] = None,
        conflict_policy: Optional[str] = None,
        tie_break: Optional[str] = None,
    ):
        self.db = db
        self._client = client
        self._client_factory = client_factory
        self.conflict_policy = conflict_policy or settings.conflict_policy
        self.tie_break = tie_break or settings.conflict_tie_break

    def _get_client(self, connection: Connection):
        if self._client is None and self._client_factory is not None:
            self._client = self._client_factory(connection)
        return self._client

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def reconcile_release(
        self, connection: Connection, payload: ReleasePayload, direction: Optional[SyncDirection] = None
    ) -> ReconcileResult:
        direction = SyncDirection(direction) if direction is not None else connection.direction
        return self._run(
            connection,
            "release",
            payload.external_id,
            lambda: self._reconcile_release_once(connection, payload, direction),
        )

    def reconcile_issue(
        self, connection: Connection, payload: IssuePayload, direction: Optional[SyncDirection] = None
    ) -> ReconcileResult:
        direction = SyncDirection(direction) if direction is not None else connection.direction
        return self._run(
            connection,
            "issue",
            payload.external_id,
            lambda: self._reconcile_issue_once(connection, payload, direction),
        )

    def mark_deleted(self, connection: Connection, kind: str, external_id: str) -> ReconcileResult:
        """Record an external deletion. Canonical entities are kept."""
        model, id_attr = (
            (ExternalRelease, "external_release_id") if kind == "release" else (ExternalIssue, "external_issue_id")
        )
        mirror = (
            self.db.query(model)
            .filter(model.connection_id == connection.id, getattr(model, id_attr) == str(external_id))
            .first()
        )
        if mirror is None:
            return ReconcileResult("skipped", kind, str(external_id), message="No mirror to mark deleted")
        if mirror.deleted_externally_at is None:
            mirror.deleted_externally_at = utcnow()
            self._log(connection, kind, str(external_id), SyncStatus.SUCCESS, FlowDirection.INBOUND, "Deleted on GitHub")
            self.db.commit()
        canonical_id = mirror.linked_release_id if kind == "release" else mirror.linked_feedback_id
        logger.info(f"{kind.capitalize()} {external_id} deleted on GitHub (mirror {mirror.id} kept)")
        return ReconcileResult("updated", kind, str(external_id), mirror.id, canonical_id, message="Marked deleted")

    # ------------------------------------------------------------------ #
    # Transaction + optimistic concurrency
    # ------------------------------------------------------------------ #

    def _run(self, connection: Connection, kind: str, external_id: str, fn) -> ReconcileResult:
        connection_id = connection.id
        for attempt in (1, 2):
            try:
                result = fn()
                self.db.commit()
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                if attempt == 1:
                    logger.warning(f"Concurrent write on {kind} {external_id}, retrying: {e}")
                    continue
                logger.warning(f"Concurrent write on {kind} {external_id} lost twice, giving up: {e}")
                self._persist_stale_conflict(connection_id, kind, external_id, str(e))
                return ReconcileResult(
                    "conflict", kind, external_id, conflicts=1, message="Lost a concurrent write twice"
                )
            except Exception:
                self.db.rollback()
                raise
            if result.action != "skipped":
                logger.info(f"{kind.capitalize()} {external_id}: {result.action} ({result.message})")
            return result

    def _persist_stale_conflict(self, connection_id: int, kind: str, external_id: str, detail: str):
        conflict = Conflict(
            connection_id=connection_id,
            entity_kind=kind,
            external_id=external_id,
            conflict_type="stale_write",
            description=f"Another writer updated this {kind} concurrently: {detail}",
        )
        try:
            self.db.add(conflict)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to persist stale_write conflict for {kind} {external_id}: {e}")

    def _log(
        self,
        connection: Connection,
        kind: str,
        external_id: Optional[str],
        status: SyncStatus,
        direction: Optional[FlowDirection],
        message: str,
    ):
        self.db.add(
            SyncLog(
                connection_id=connection.id,
                entity_kind=kind,
                external_id=external_id,
                status=status,
                direction=direction,
                message=message,
            )
        )

    # ------------------------------------------------------------------ #
    # Field merge
    # ------------------------------------------------------------------ #

    def _local_wins(self, canonical_ts: Optional[datetime], external_ts: Optional[datetime]) -> bool:
        if canonical_ts is not None and external_ts is not None and canonical_ts == external_ts:
            return self.tie_break == "internal"
        if self.conflict_policy == "last_writer_wins":
            if canonical_ts is None:
                return False
            if external_ts is None:
                return True
            return canonical_ts > external_ts
        return True

    def _merge_fields(
        self,
        connection: Connection,
        kind: str,
        external_id: str,
        mirror: Any,
        canonical: Any,
        fields: Tuple[str, ...],
        old: Dict[str, Any],
        new: Dict[str, Any],
        current: Dict[str, Any],
        locally_modified: bool,
        external_ts: Optional[datetime],
    ) -> Tuple[int, int]:
        """Apply external field changes to canonical; returns (applied, conflicts)."""
        applied = 0
        conflicts = 0
        for field in fields:
            if new[field] == old[field] or current[field] == new[field]:
                continue
            if current[field] == old[field] or not locally_modified:
                setattr(canonical, field, new[field])
                applied += 1
                continue

            local_wins = self._local_wins(canonical.updated_at, external_ts)
            if not local_wins:
                setattr(canonical, field, new[field])
                applied += 1
            conflicts += 1
            self.db.add(
                Conflict(
                    connection_id=connection.id,
                    entity_kind=kind,
                    mirror_id=mirror.id,
                    canonical_id=canonical.id,
                    external_id=external_id,
                    field_name=field,
                    conflict_type="concurrent_update",
                    description=(
                        f"'{field}' changed on both sides; kept the "
                        f"{'local' if local_wins else 'GitHub'} value"
                    ),
                    external_value=None if new[field] is None else str(new[field]),
                    canonical_value=None if current[field] is None else str(current[field]),
                )
            )
            logger.warning(
                f"Conflict detected: concurrent_update on {kind} {canonical.id} field '{field}' "
                f"({'local' if local_wins else 'GitHub'} kept)"
            )
        return applied, conflicts

    # ------------------------------------------------------------------ #
    # Releases
    # ------------------------------------------------------------------ #

    @staticmethod
    def apply_release_snapshot(mirror: ExternalRelease, payload: ReleasePayload, content_hash: str):
        mirror.tag_name = payload.tag_name
        mirror.name = payload.name
        mirror.body = payload.body
        mirror.html_url = payload.html_url
        mirror.is_draft = payload.is_draft
        mirror.is_prerelease = payload.is_prerelease
        mirror.published_at = payload.published_at
        mirror.external_created_at = payload.created_at
        mirror.sync_hash = content_hash
        mirror.deleted_externally_at = None

    def _linked_release_ids(self, connection: Connection) -> set:
        rows = (
            self.db.query(ExternalRelease.linked_release_id)
            .filter(ExternalRelease.linked_release_id.isnot(None))
            .all()
        )
        return {r[0] for r in rows}

    def _correlate_release(self, connection: Connection, payload: ReleasePayload) -> Optional[Release]:
        linked = self._linked_release_ids(connection)
        candidates = (
            self.db.query(Release)
            .filter(Release.organization_id == connection.organization_id, Release.external_release_id == payload.external_id)
            .order_by(Release.id)
            .all()
        )
        for release in candidates:
            if release.id not in linked:
                return release
        candidates = (
            self.db.query(Release)
            .filter(
                Release.organization_id == connection.organization_id,
                Release.version == payload.tag_name,
                Release.external_release_id.is_(None),
            )
            .order_by(Release.id)
            .all()
        )
        for release in candidates:
            if release.id not in linked:
                return release
        return None

    def _link_or_create_release(
        self, connection: Connection, mirror: ExternalRelease, payload: ReleasePayload, now: datetime
    ) -> Tuple[Release, str]:
        release = self._correlate_release(connection, payload)
        action = "linked"
        if release is None:
            published_at = None
            if connection.auto_publish_imported and not payload.is_draft:
                published_at = payload.published_at or now
            release = Release(
                organization_id=connection.organization_id,
                title=payload.title,
                description=payload.body or "",
                version=payload.tag_name,
                published_at=published_at,
                synced_from_external=True,
                created_at=now,
            )
            self.db.add(release)
            action = "created"

        release.external_release_id = payload.external_id
        release.external_html_url = payload.html_url
        release.updated_at = now
        self.db.flush()
        mirror.linked_release_id = release.id
        mirror.last_synced_at = now
        return release, action

    def _reconcile_release_once(
        self, connection: Connection, payload: ReleasePayload, direction: SyncDirection
    ) -> ReconcileResult:
        now = utcnow()
        ext_id = payload.external_id
        new_hash = payload.content_hash()
        mirror = (
            self.db.query(ExternalRelease)
            .filter(ExternalRelease.connection_id == connection.id, ExternalRelease.external_release_id == ext_id)
            .first()
        )

        if mirror is None:
            mirror = ExternalRelease(
                connection_id=connection.id,
                repository_id=connection.repository_id,
                external_release_id=ext_id,
                last_synced_at=now,
            )
            self.apply_release_snapshot(mirror, payload, new_hash)
            self.db.add(mirror)
            self.db.flush()
            if not direction.allows_inbound:
                self._log(connection, "release", ext_id, SyncStatus.SKIPPED, None, f"Mirrored {payload.tag_name} only")
                return ReconcileResult("mirrored", "release", ext_id, mirror.id, message="Inbound sync disabled")
            release, action = self._link_or_create_release(connection, mirror, payload, now)
            self._log(connection, "release", ext_id, SyncStatus.SUCCESS, FlowDirection.INBOUND, f"{action} release {payload.tag_name}")
            return ReconcileResult(action, "release", ext_id, mirror.id, release.id, message=payload.tag_name)

        ext_changed = mirror.sync_hash != new_hash or mirror.deleted_externally_at is not None
        release = mirror.linked_release

        if release is None:
            if ext_changed:
                self.apply_release_snapshot(mirror, payload, new_hash)
            if direction.allows_inbound:
                release, action = self._link_or_create_release(connection, mirror, payload, now)
                self._log(connection, "release", ext_id, SyncStatus.SUCCESS, FlowDirection.INBOUND, f"{action} release {payload.tag_name}")
                return ReconcileResult(action, "release", ext_id, mirror.id, release.id, message=payload.tag_name)
            if ext_changed:
                return ReconcileResult("mirrored", "release", ext_id, mirror.id, message="Mirror refreshed")
            return ReconcileResult("skipped", "release", ext_id, mirror.id, message="Unchanged")

        old = _release_values_from_mirror(mirror)
        current = _release_values(release)
        locally_modified = (
            release.updated_at is not None
            and mirror.last_synced_at is not None
            and release.updated_at > mirror.last_synced_at
        )
        local_changed = locally_modified and current != old

        if ext_changed and direction.allows_inbound:
            new = _release_values_from_payload(payload)
            applied, conflicts = self._merge_fields(
                connection, "release", ext_id, mirror, release, RELEASE_FIELDS, old, new, current, locally_modified, now
            )
            self.apply_release_snapshot(mirror, payload, new_hash)
            release.external_html_url = payload.html_url
            release.updated_at = now
            mirror.last_synced_at = now
            status = SyncStatus.CONFLICT if conflicts else SyncStatus.SUCCESS
            self._log(connection, "release", ext_id, status, FlowDirection.INBOUND,
                      f"Updated {applied} field(s), {conflicts} conflict(s)")
            return ReconcileResult(
                "conflict" if conflicts else "updated", "release", ext_id, mirror.id, release.id, conflicts,
                message=f"{applied} field(s) applied",
            )

        if local_changed and direction.allows_outbound:
            return self._push_release(connection, mirror, release, now)

        if ext_changed:
            # The snapshot stays put so a later inbound pass still sees the change.
            self._log(connection, "release", ext_id, SyncStatus.SKIPPED, None, "External change deferred, inbound sync disabled")
            return ReconcileResult("skipped", "release", ext_id, mirror.id, release.id, message="External change deferred")

        return ReconcileResult("skipped", "release", ext_id, mirror.id, release.id, message="Unchanged")

    def _push_release(self, connection: Connection, mirror: ExternalRelease, release: Release, now: datetime) -> ReconcileResult:
        ext_id = mirror.external_release_id
        client = self._get_client(connection)
        if client is None or not connection.repository:
            logger.warning(f"Cannot push release {release.id}: no GitHub client or repository")
            return ReconcileResult("skipped", "release", ext_id, mirror.id, release.id, message="Outbound push unavailable")

        updated = client.update_release(
            connection.repository, ext_id, name=release.title, body=release.description or ""
        )
        payload = ReleasePayload.from_github(updated)
        self.apply_release_snapshot(mirror, payload, payload.content_hash())
        release.updated_at = now
        mirror.last_synced_at = now
        self._log(connection, "release", ext_id, SyncStatus.SUCCESS, FlowDirection.OUTBOUND, f"Pushed release {release.id}")
        return ReconcileResult("pushed", "release", ext_id, mirror.id, release.id, message="Pushed to GitHub")

    # ------------------------------------------------------------------ #
    # Issues
    # ------------------------------------------------------------------ #

    @staticmethod
    def apply_issue_snapshot(mirror: ExternalIssue, payload: IssuePayload, content_hash: str):
        mirror.number = payload.number
        mirror.title = payload.title
        mirror.body = payload.body
        mirror.html_url = payload.html_url
        mirror.state = payload.state
        mirror.labels = list(payload.labels)
        mirror.author = payload.author
        mirror.milestone = payload.milestone
        mirror.assignees = list(payload.assignees)
        mirror.external_created_at = payload.created_at
        mirror.external_updated_at = payload.updated_at
        mirror.external_closed_at = payload.closed_at
        mirror.sync_hash = content_hash
        mirror.deleted_externally_at = None

    def _mappings(self, connection: Connection) -> List[LabelMapping]:
        return self.db.query(LabelMapping).filter(LabelMapping.connection_id == connection.id).all()

    def _sync_label_tags(self, feedback: Feedback, tag_ids: List[int]) -> int:
        """Make label-sourced tags follow the label set; other sources are untouched."""
        desired = set(tag_ids)
        existing = {ft.tag_id: ft for ft in feedback.tags}
        changes = 0
        for ft in list(feedback.tags):
            if ft.source == "label" and ft.tag_id not in desired:
                feedback.tags.remove(ft)
                changes += 1
        for tag_id in tag_ids:
            if tag_id not in existing:
                feedback.tags.append(FeedbackTag(tag_id=tag_id, source="label"))
                changes += 1
        return changes

    def _correlate_feedback(self, connection: Connection, payload: IssuePayload) -> Optional[Feedback]:
        linked = {
            r[0]
            for r in self.db.query(ExternalIssue.linked_feedback_id)
            .filter(ExternalIssue.linked_feedback_id.isnot(None))
            .all()
        }
        candidates = (
            self.db.query(Feedback)
            .filter(Feedback.organization_id == connection.organization_id, Feedback.external_issue_id == payload.external_id)
            .order_by(Feedback.id)
            .all()
        )
        for feedback in candidates:
            if feedback.id not in linked:
                return feedback
        return None

    def link_or_create_feedback(
        self,
        connection: Connection,
        mirror: ExternalIssue,
        payload: IssuePayload,
        now: datetime,
        resolution: label_mapper.LabelResolution,
        *,
        status: Optional[str] = None,
        extra_tag_ids: Optional[List[int]] = None,
    ) -> Tuple[Feedback, str]:
        feedback = self._correlate_feedback(connection, payload)
        action = "linked"
        if feedback is None:
            feedback = Feedback(
                organization_id=connection.organization_id,
                title=payload.title,
                description=payload.body or "",
                status=status or resolution.default_status or status_for_state(payload.state),
                synced_from_external=True,
                created_at=now,
            )
            self.db.add(feedback)
            action = "created"

        feedback.external_issue_id = payload.external_id
        feedback.external_issue_number = payload.number
        feedback.external_html_url = payload.html_url
        feedback.updated_at = now
        self._sync_label_tags(feedback, resolution.tag_ids)
        for tag_id in extra_tag_ids or []:
            if tag_id not in {ft.tag_id for ft in feedback.tags}:
                feedback.tags.append(FeedbackTag(tag_id=tag_id, source="manual"))
        self.db.flush()
        mirror.linked_feedback_id = feedback.id
        mirror.last_synced_at = now
        return feedback, action

    def _reconcile_issue_once(
        self, connection: Connection, payload: IssuePayload, direction: SyncDirection
    ) -> ReconcileResult:
        now = utcnow()
        ext_id = payload.external_id
        new_hash = payload.content_hash()
        resolution = label_mapper.resolve(payload.labels, self._mappings(connection), payload.state)
        mirror = (
            self.db.query(ExternalIssue)
            .filter(ExternalIssue.connection_id == connection.id, ExternalIssue.external_issue_id == ext_id)
            .first()
        )

        if mirror is None:
            mirror = ExternalIssue(
                connection_id=connection.id,
                repository_id=connection.repository_id,
                external_issue_id=ext_id,
                last_synced_at=now,
            )
            self.apply_issue_snapshot(mirror, payload, new_hash)
            self.db.add(mirror)
            self.db.flush()
            return self._maybe_link_issue(connection, mirror, payload, direction, resolution, now)

        if (
            mirror.external_updated_at is not None
            and payload.updated_at is not None
            and payload.updated_at < mirror.external_updated_at
        ):
            logger.warning(f"Skipping stale payload for issue #{payload.number} ({payload.updated_at} < {mirror.external_updated_at})")
            return ReconcileResult("skipped", "issue", ext_id, mirror.id, mirror.linked_feedback_id, message="Stale payload")

        ext_changed = mirror.sync_hash != new_hash or mirror.deleted_externally_at is not None
        feedback = mirror.linked_feedback

        if feedback is None:
            if ext_changed:
                self.apply_issue_snapshot(mirror, payload, new_hash)
            result = self._maybe_link_issue(connection, mirror, payload, direction, resolution, now)
            if result.action == "mirrored" and not ext_changed:
                result.action = "skipped"
                result.message = "Unchanged"
            return result

        old = _issue_values_from_mirror(mirror)
        current = _feedback_values(feedback)
        locally_modified = (
            feedback.updated_at is not None
            and mirror.last_synced_at is not None
            and feedback.updated_at > mirror.last_synced_at
        )
        local_changed = locally_modified and current != old

        if ext_changed and direction.allows_inbound:
            new = _issue_values_from_payload(payload)
            applied, conflicts = self._merge_fields(
                connection, "issue", ext_id, mirror, feedback, ISSUE_FIELDS, old, new, current, locally_modified,
                payload.updated_at or now,
            )
            applied += self._sync_label_tags(feedback, resolution.tag_ids)
            self.apply_issue_snapshot(mirror, payload, new_hash)
            feedback.external_issue_number = payload.number
            feedback.external_html_url = payload.html_url
            feedback.updated_at = now
            mirror.last_synced_at = now
            status = SyncStatus.CONFLICT if conflicts else SyncStatus.SUCCESS
            self._log(connection, "issue", ext_id, status, FlowDirection.INBOUND,
                      f"Updated {applied} field(s)/tag(s), {conflicts} conflict(s)")
            return ReconcileResult(
                "conflict" if conflicts else "updated", "issue", ext_id, mirror.id, feedback.id, conflicts,
                message=f"{applied} change(s) applied",
            )

        if local_changed and direction.allows_outbound and current["status"] != old["status"]:
            return self._push_issue_status(connection, mirror, feedback, now)

        if ext_changed:
            # The snapshot stays put so a later inbound pass still sees the change.
            self._log(connection, "issue", ext_id, SyncStatus.SKIPPED, None, "External change deferred, inbound sync disabled")
            return ReconcileResult("skipped", "issue", ext_id, mirror.id, feedback.id, message="External change deferred")

        return ReconcileResult("skipped", "issue", ext_id, mirror.id, feedback.id, message="Unchanged")

    def _maybe_link_issue(
        self,
        connection: Connection,
        mirror: ExternalIssue,
        payload: IssuePayload,
        direction: SyncDirection,
        resolution: label_mapper.LabelResolution,
        now: datetime,
    ) -> ReconcileResult:
        ext_id = payload.external_id
        if not direction.allows_inbound:
            return ReconcileResult("mirrored", "issue", ext_id, mirror.id, message="Inbound sync disabled")
        if not resolution.should_sync and self._correlate_feedback(connection, payload) is None:
            return ReconcileResult("mirrored", "issue", ext_id, mirror.id, message="No auto-sync label mapping matched")
        feedback, action = self.link_or_create_feedback(connection, mirror, payload, now, resolution)
        self._log(connection, "issue", ext_id, SyncStatus.SUCCESS, FlowDirection.INBOUND, f"{action} feedback from issue #{payload.number}")
        return ReconcileResult(action, "issue", ext_id, mirror.id, feedback.id, message=f"#{payload.number}")

    def _push_issue_status(self, connection: Connection, mirror: ExternalIssue, feedback: Feedback, now: datetime) -> ReconcileResult:
        ext_id = mirror.external_issue_id
        client = self._get_client(connection)
        if client is None or not connection.repository:
            logger.warning(f"Cannot push status of feedback {feedback.id}: no GitHub client or repository")
            return ReconcileResult("skipped", "issue", ext_id, mirror.id, feedback.id, message="Outbound push unavailable")

        label = feedback.status.replace("_", " ")
        client.create_issue_comment(connection.repository, mirror.number, f"Status updated to **{label}**.")
        feedback.updated_at = now
        mirror.last_synced_at = now
        self._log(connection, "issue", ext_id, SyncStatus.SUCCESS, FlowDirection.OUTBOUND,
                  f"Commented status '{feedback.status}' on issue #{mirror.number}")
        return ReconcileResult("pushed", "issue", ext_id, mirror.id, feedback.id, message=f"Status '{feedback.status}' pushed")
