"""Inbound GitHub webhook handling"""

import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reposync.config import settings
from reposync.models import Connection, WebhookEvent
from reposync.models.base import utcnow
from reposync.models.connection import ConnectionStatus, SyncDirection
from reposync.security import verify_webhook_signature
from reposync.services.connection_store import ConnectionStore
from reposync.services.github_client import GitHubClient
from reposync.services.payloads import IssuePayload, ReleasePayload
from reposync.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

RELEASE_SYNC_ACTIONS = {"published", "created", "edited", "released", "prereleased"}
ISSUE_SYNC_ACTIONS = {"opened", "edited", "closed", "reopened", "labeled", "unlabeled"}


def _installation_client(connection: Connection) -> GitHubClient:
    return GitHubClient.for_installation(connection.installation_id)


class WebhookIngestor:
    """Verify, de-duplicate, log and dispatch webhook deliveries."""

    def __init__(
        self,
        db: Session,
        *,
        client_factory: Optional[Callable[[Connection], Any]] = _installation_client,
        bucket_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.client_factory = client_factory
        self.bucket_seconds = bucket_seconds or settings.webhook_dedup_bucket_seconds
        self.clock = clock

    def dedup_key(self, event_type: str, body: bytes, delivery_id: Optional[str]) -> str:
        if delivery_id:
            return f"delivery:{delivery_id}"
        bucket = int(self.clock() // self.bucket_seconds)
        digest = hashlib.sha256()
        digest.update(event_type.encode("utf-8"))
        digest.update(b"\0")
        digest.update(body)
        digest.update(b"\0")
        digest.update(str(bucket).encode("ascii"))
        return f"sha256:{digest.hexdigest()}"

    @staticmethod
    def _truncate(body: bytes) -> str:
        return body.decode("utf-8", errors="replace")[: settings.webhook_payload_max_chars]

    def _reject(
        self,
        connection_id: Optional[int],
        event_type: str,
        action: Optional[str],
        delivery_id: Optional[str],
        body: bytes,
    ) -> Dict[str, Any]:
        self.db.add(
            WebhookEvent(
                connection_id=connection_id,
                event_type=event_type,
                action=action,
                delivery_id=delivery_id,
                payload=self._truncate(body),
                error="Invalid signature",
                outcome="rejected",
            )
        )
        self.db.commit()
        return {"status": "rejected", "reason": "invalid_signature", "message": "Invalid signature"}

    def ingest(
        self,
        event_type: str,
        signature_header: Optional[str],
        raw_payload: Union[bytes, str],
        delivery_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        body = raw_payload.encode("utf-8") if isinstance(raw_payload, str) else raw_payload
        event_type = (event_type or "").strip()

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning(f"Rejected {event_type} webhook: body is not JSON")
            return {"status": "rejected", "reason": "invalid_json", "message": "Body is not valid JSON"}
        if not isinstance(payload, dict):
            return {"status": "rejected", "reason": "invalid_json", "message": "Body must be a JSON object"}

        installation_id = (payload.get("installation") or {}).get("id")
        action = payload.get("action")
        connection = None
        if installation_id is not None:
            connection = ConnectionStore(self.db).get_by_installation(str(installation_id))
        if connection is None:
            # Only the app-level secret can vouch for a delivery nobody is connected to.
            if settings.github_webhook_secret and not verify_webhook_signature(
                settings.github_webhook_secret, body, signature_header
            ):
                logger.warning(f"Rejected {event_type} webhook for unknown installation {installation_id}: invalid signature")
                return self._reject(None, event_type, action, delivery_id, body)
            logger.info(f"Ignoring {event_type} webhook for unknown installation {installation_id}")
            return {"status": "ignored", "message": "No connection for this installation"}

        secret = connection.webhook_secret or settings.github_webhook_secret
        if not verify_webhook_signature(secret, body, signature_header):
            logger.warning(f"Rejected {event_type} webhook for connection {connection.id}: invalid signature")
            return self._reject(connection.id, event_type, action, delivery_id, body)

        key = self.dedup_key(event_type, body, delivery_id)
        event = self._claim_event(connection, key, event_type, action, delivery_id, body)
        if event is None:
            logger.info(f"Duplicate {event_type} webhook for connection {connection.id} ({key})")
            return {"status": "duplicate", "message": "Event already processed"}

        event_id = event.id
        try:
            outcome = self._dispatch(connection, event_type, action, payload)
        except Exception as e:
            self.db.rollback()
            event = self.db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
            event.error = str(e)
            event.outcome = "failed"
            self.db.commit()
            logger.error(f"Failed to process {event_type}.{action} webhook {event_id}: {e}")
            return {"status": "failed", "event_id": event_id, "message": str(e)}

        event = self.db.query(WebhookEvent).filter(WebhookEvent.id == event_id).first()
        event.processed_at = utcnow()
        event.error = None
        event.outcome = outcome
        self.db.commit()
        return {"status": "processed", "event_id": event_id, "outcome": outcome}

    def _claim_event(
        self,
        connection: Connection,
        key: str,
        event_type: str,
        action: Optional[str],
        delivery_id: Optional[str],
        body: bytes,
    ) -> Optional[WebhookEvent]:
        """Return the event row to process, or None if it was already processed."""
        for attempt in (1, 2):
            existing = (
                self.db.query(WebhookEvent)
                .filter(WebhookEvent.connection_id == connection.id, WebhookEvent.dedup_key == key)
                .first()
            )
            if existing is not None:
                if existing.processed_at is not None:
                    return None
                # An earlier attempt failed; retry it in place.
                return existing

            event = WebhookEvent(
                connection_id=connection.id,
                event_type=event_type,
                action=action,
                delivery_id=delivery_id,
                dedup_key=key,
                payload=self._truncate(body),
            )
            self.db.add(event)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent delivery of the same event won the insert.
                self.db.rollback()
                if attempt == 2:
                    raise
                continue
            self.db.refresh(event)
            return event

    def _dispatch(self, connection: Connection, event_type: str, action: Optional[str], payload: Dict[str, Any]) -> str:
        if event_type == "ping":
            return "recorded"

        if event_type == "installation":
            if action == "deleted":
                ConnectionStore(self.db).disconnect(connection.id)
                return "disconnected"
            if action == "suspend":
                ConnectionStore(self.db).mark_error(connection.id, "GitHub App installation suspended")
                return "suspended"
            return "recorded"

        if event_type == "push":
            branch = connection.target_branch or connection.default_branch
            ref = payload.get("ref")
            if branch and ref == f"refs/heads/{branch}":
                logger.info(f"Push to {branch} on connection {connection.id} ({payload.get('after')})")
                return "recorded"
            return "ignored"

        if event_type not in ("release", "issues"):
            return "ignored"

        if connection.status != ConnectionStatus.CONNECTED:
            return "ignored: connection not active"

        repo_id = (payload.get("repository") or {}).get("id")
        if connection.repository_id and repo_id is not None and str(repo_id) != connection.repository_id:
            return "ignored: repository not connected"

        reconciler = Reconciler(self.db, client_factory=self.client_factory)

        if event_type == "release":
            release = payload.get("release") or {}
            if action == "deleted":
                return reconciler.mark_deleted(connection, "release", str(release.get("id"))).action
            if action not in RELEASE_SYNC_ACTIONS:
                return "ignored"
            direction = connection.direction if connection.auto_sync_releases else SyncDirection.NONE
            return reconciler.reconcile_release(connection, ReleasePayload.from_webhook(release), direction).action

        if not connection.issues_sync_enabled:
            return "ignored: issue sync disabled"
        issue = payload.get("issue") or {}
        if action == "deleted":
            return reconciler.mark_deleted(connection, "issue", str(issue.get("id"))).action
        if action not in ISSUE_SYNC_ACTIONS:
            return "ignored"
        if issue.get("pull_request"):
            return "ignored: pull request"
        direction = connection.direction if connection.auto_sync_issues else SyncDirection.NONE
        return reconciler.reconcile_issue(connection, IssuePayload.from_webhook(issue), direction).action
