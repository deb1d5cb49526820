import hashlib
import hmac
import json
import unittest

SECRET = "s3cret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _release_event(action="published", **release):
    data = {
        "id": 555,
        "tag_name": "v2.1.0",
        "name": "Two one",
        "body": "Fixes",
        "html_url": "https://github.com/acme/widgets/releases/tag/v2.1.0",
        "draft": False,
        "prerelease": False,
        "created_at": "2025-03-01T11:00:00Z",
        "published_at": "2025-03-01T12:00:00Z",
    }
    data.update(release)
    return json.dumps(
        {
            "action": action,
            "release": data,
            "repository": {"id": 1001, "full_name": "acme/widgets"},
            "installation": {"id": 42},
        }
    ).encode()


def _issue_event(action="opened", **issue):
    data = {
        "id": 9001,
        "number": 7,
        "title": "Crash on save",
        "body": "Steps...",
        "state": "open",
        "labels": [{"name": "bug"}],
        "user": {"login": "octocat"},
        "created_at": "2025-03-01T09:00:00Z",
        "updated_at": "2025-03-01T10:00:00Z",
    }
    data.update(issue)
    return json.dumps(
        {
            "action": action,
            "issue": data,
            "repository": {"id": 1001},
            "installation": {"id": 42},
        }
    ).encode()


class WebhookIngestorTests(unittest.TestCase):
    def setUp(self):
        from _db import add_connection, make_session_factory

        self.Session = make_session_factory(self)
        self.db = self.Session()
        self.addCleanup(self.db.close)
        self.connection = add_connection(self.db)

    def _ingestor(self, **kwargs):
        from reposync.services.webhook_ingestor import WebhookIngestor

        kwargs.setdefault("client_factory", None)
        return WebhookIngestor(self.db, **kwargs)

    def _ingest(self, event_type, body, delivery_id="d-1", **kwargs):
        return self._ingestor(**kwargs).ingest(event_type, _sign(body), body, delivery_id)

    def test_published_release_creates_canonical_release(self):
        from reposync.models import ExternalRelease, Release, WebhookEvent

        result = self._ingest("release", _release_event())

        self.assertEqual(result["status"], "processed")
        self.assertEqual(result["outcome"], "created")
        release = self.db.query(Release).one()
        self.assertEqual(release.version, "v2.1.0")
        self.assertEqual(release.organization_id, "org-1")
        self.assertEqual(self.db.query(ExternalRelease).one().linked_release_id, release.id)
        event = self.db.query(WebhookEvent).one()
        self.assertIsNotNone(event.processed_at)
        self.assertEqual(event.dedup_key, "delivery:d-1")

    def test_replayed_delivery_is_a_duplicate(self):
        from reposync.models import Release, WebhookEvent

        body = _release_event()
        self._ingest("release", body)
        result = self._ingest("release", body)

        self.assertEqual(result["status"], "duplicate")
        self.assertEqual(self.db.query(Release).count(), 1)
        self.assertEqual(self.db.query(WebhookEvent).count(), 1)

    def test_same_body_without_delivery_id_is_deduplicated_within_bucket(self):
        from reposync.models import WebhookEvent

        body = _release_event()
        first = self._ingest("release", body, delivery_id=None, clock=lambda: 1000.0)
        second = self._ingest("release", body, delivery_id=None, clock=lambda: 1100.0)
        third = self._ingest("release", body, delivery_id=None, clock=lambda: 1000.0 + 3600)

        self.assertEqual(first["status"], "processed")
        self.assertEqual(second["status"], "duplicate")
        self.assertEqual(third["status"], "processed")
        self.assertEqual(third["outcome"], "skipped")
        self.assertEqual(self.db.query(WebhookEvent).count(), 2)

    def test_invalid_signature_is_rejected_and_recorded(self):
        from reposync.models import Release, WebhookEvent

        body = _release_event()
        result = self._ingestor().ingest("release", _sign(body, "wrong"), body, "d-2")

        self.assertEqual(result["status"], "rejected")
        self.assertEqual(result["reason"], "invalid_signature")
        self.assertEqual(self.db.query(Release).count(), 0)
        event = self.db.query(WebhookEvent).one()
        self.assertEqual(event.outcome, "rejected")
        self.assertIsNone(event.processed_at)

    def test_missing_signature_is_rejected(self):
        body = _release_event()
        result = self._ingestor().ingest("release", None, body, "d-3")
        self.assertEqual(result["reason"], "invalid_signature")

    def test_invalid_json_is_rejected(self):
        result = self._ingestor().ingest("release", _sign(b"{not json"), b"{not json", "d-4")
        self.assertEqual(result["status"], "rejected")
        self.assertEqual(result["reason"], "invalid_json")

    def test_unknown_installation_is_ignored(self):
        from reposync.models import WebhookEvent

        body = json.dumps({"action": "published", "installation": {"id": 777}, "release": {}}).encode()
        result = self._ingest("release", body)
        self.assertEqual(result["status"], "ignored")
        self.assertEqual(self.db.query(WebhookEvent).count(), 0)

    def test_unknown_installation_with_bad_signature_is_rejected_and_recorded(self):
        from unittest.mock import patch

        from reposync.config import settings
        from reposync.models import WebhookEvent

        body = json.dumps({"action": "published", "installation": {"id": 777}, "release": {}}).encode()
        with patch.object(settings, "github_webhook_secret", "app-secret"):
            forged = self._ingestor().ingest("release", _sign(body, "guess"), body, "d-5")
            signed = self._ingestor().ingest("release", _sign(body, "app-secret"), body, "d-6")

        self.assertEqual(forged["status"], "rejected")
        self.assertEqual(forged["reason"], "invalid_signature")
        self.assertEqual(signed["status"], "ignored")
        event = self.db.query(WebhookEvent).one()
        self.assertIsNone(event.connection_id)
        self.assertEqual(event.delivery_id, "d-5")
        self.assertEqual(event.outcome, "rejected")

    def test_ping(self):
        body = json.dumps({"zen": "Keep it logically awesome.", "installation": {"id": 42}}).encode()
        self.assertEqual(self._ingest("ping", body)["outcome"], "recorded")

    def test_release_for_another_repository_is_ignored(self):
        from reposync.models import Release

        payload = json.loads(_release_event())
        payload["repository"]["id"] = 2002
        result = self._ingest("release", json.dumps(payload).encode())

        self.assertEqual(result["outcome"], "ignored: repository not connected")
        self.assertEqual(self.db.query(Release).count(), 0)

    def test_release_is_only_mirrored_when_auto_sync_is_off(self):
        from reposync.models import ExternalRelease, Release

        self.connection.auto_sync_releases = False
        self.db.commit()
        result = self._ingest("release", _release_event())

        self.assertEqual(result["outcome"], "mirrored")
        self.assertEqual(self.db.query(Release).count(), 0)
        self.assertEqual(self.db.query(ExternalRelease).count(), 1)

    def test_release_deleted_marks_mirror(self):
        from reposync.models import ExternalRelease

        self._ingest("release", _release_event())
        result = self._ingest("release", _release_event(action="deleted"), delivery_id="d-9")

        self.assertEqual(result["outcome"], "updated")
        self.assertIsNotNone(self.db.query(ExternalRelease).one().deleted_externally_at)

    def test_malformed_release_fails_and_can_be_retried(self):
        from reposync.models import WebhookEvent

        body = _release_event(tag_name=None)
        result = self._ingest("release", body)

        self.assertEqual(result["status"], "failed")
        event = self.db.query(WebhookEvent).one()
        self.assertEqual(event.outcome, "failed")
        self.assertIn("tag_name", event.error)
        self.assertIsNone(event.processed_at)

        # Redelivery of a failed event is processed again rather than dropped.
        self.assertEqual(self._ingest("release", body)["status"], "failed")
        self.assertEqual(self.db.query(WebhookEvent).count(), 1)

    def test_issue_with_auto_sync_label_creates_feedback(self):
        from reposync.models import Feedback, LabelMapping

        self.db.add(LabelMapping(connection_id=self.connection.id, label_name="bug", auto_sync=True))
        self.db.commit()
        result = self._ingest("issues", _issue_event())

        self.assertEqual(result["outcome"], "created")
        self.assertEqual(self.db.query(Feedback).one().title, "Crash on save")

    def test_issues_ignored_when_issue_sync_disabled(self):
        from reposync.models import ExternalIssue

        self.connection.issues_sync_enabled = False
        self.db.commit()
        result = self._ingest("issues", _issue_event())

        self.assertEqual(result["outcome"], "ignored: issue sync disabled")
        self.assertEqual(self.db.query(ExternalIssue).count(), 0)

    def test_pull_request_issue_events_are_ignored(self):
        body = _issue_event(pull_request={"url": "https://api.github.com/repos/acme/widgets/pulls/7"})
        self.assertEqual(self._ingest("issues", body)["outcome"], "ignored: pull request")

    def test_installation_deleted_disconnects(self):
        from reposync.models import Connection
        from reposync.models.connection import ConnectionStatus

        body = json.dumps({"action": "deleted", "installation": {"id": 42}}).encode()
        result = self._ingest("installation", body)

        self.assertEqual(result["outcome"], "disconnected")
        connection = self.db.query(Connection).one()
        self.assertEqual(connection.status, ConnectionStatus.PENDING)
        self.assertIsNotNone(connection.disconnected_at)

        # Release events for a disconnected connection no longer sync.
        self.assertEqual(
            self._ingest("release", _release_event(), delivery_id="d-10")["outcome"],
            "ignored: connection not active",
        )

    def test_push_to_target_branch_is_recorded(self):
        body = json.dumps({"ref": "refs/heads/main", "after": "abc123", "installation": {"id": 42}}).encode()
        other = json.dumps({"ref": "refs/heads/feature", "after": "def456", "installation": {"id": 42}}).encode()
        self.assertEqual(self._ingest("push", body)["outcome"], "recorded")
        self.assertEqual(self._ingest("push", other, delivery_id="d-2")["outcome"], "ignored")

    def test_app_level_secret_is_used_when_connection_has_none(self):
        from unittest.mock import patch

        from reposync.config import settings

        self.connection.webhook_secret = None
        self.db.commit()
        body = _release_event()
        with patch.object(settings, "github_webhook_secret", "app-secret"):
            result = self._ingestor().ingest("release", _sign(body, "app-secret"), body, "d-1")
        self.assertEqual(result["status"], "processed")


if __name__ == "__main__":
    unittest.main()
