import hashlib
import hmac
import json
import unittest
from unittest.mock import patch


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        from fastapi.testclient import TestClient

        from _db import add_connection, make_session_factory
        from reposync.main import app
        from reposync.models.base import get_db

        self.Session = make_session_factory(self)
        self.db = self.Session()
        self.addCleanup(self.db.close)
        self.connection = add_connection(self.db)

        def _get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app)


class WebhookApiTests(ApiTestCase):
    def _post(self, event, payload, secret="s3cret", delivery="d-1"):
        body = json.dumps(payload).encode()
        signature = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return self.client.post(
            "/api/webhooks/github",
            content=body,
            headers={
                "X-GitHub-Event": event,
                "X-Hub-Signature-256": signature,
                "X-GitHub-Delivery": delivery,
                "Content-Type": "application/json",
            },
        )

    def _release(self):
        return {
            "action": "published",
            "release": {"id": 555, "tag_name": "v2.1.0", "name": "Two one", "body": "Fixes"},
            "repository": {"id": 1001},
            "installation": {"id": 42},
        }

    def test_signed_release_is_processed(self):
        from reposync.models import Release

        response = self._post("release", self._release())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcome"], "created")
        self.assertEqual(self.db.query(Release).one().version, "v2.1.0")

        replay = self._post("release", self._release())
        self.assertEqual(replay.status_code, 200)
        self.assertEqual(replay.json()["status"], "duplicate")

    def test_bad_signature_is_401(self):
        response = self._post("release", self._release(), secret="nope")
        self.assertEqual(response.status_code, 401)

    def test_invalid_json_is_400(self):
        response = self.client.post(
            "/api/webhooks/github", content=b"{oops", headers={"X-GitHub-Event": "release"}
        )
        self.assertEqual(response.status_code, 400)


class ConnectionApiTests(ApiTestCase):
    def test_settings_and_direction(self):
        with patch("reposync.api.connections.scheduler") as scheduler:
            response = self.client.patch(
                f"/api/connections/{self.connection.id}/settings", json={"auto_publish_imported": True}
            )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["auto_publish_imported"])
        scheduler.refresh_connection.assert_called_once()

        response = self.client.put(f"/api/connections/{self.connection.id}/direction", json={"direction": "bidirectional"})
        self.assertEqual(response.json()["sync_direction"], "bidirectional")

        response = self.client.put(f"/api/connections/{self.connection.id}/direction", json={"direction": "sideways"})
        self.assertEqual(response.status_code, 422)

    def test_unknown_connection_is_404(self):
        self.assertEqual(self.client.get("/api/connections/9999").status_code, 404)

    def test_label_mapping_roundtrip(self):
        base = f"/api/connections/{self.connection.id}/label-mappings"
        created = self.client.put(base + "/", json={"label_name": "bug", "auto_sync": True})
        self.assertEqual(created.status_code, 200)

        listed = self.client.get(base + "/").json()
        self.assertEqual([m["label_name"] for m in listed], ["bug"])

        self.assertEqual(self.client.delete(f"{base}/{listed[0]['id']}").status_code, 200)
        self.assertEqual(self.client.get(base + "/").json(), [])


class SyncApiTests(ApiTestCase):
    def test_cancel_unknown_job_is_404(self):
        self.assertEqual(self.client.post("/api/sync/jobs/9999/cancel").status_code, 404)

    def test_trigger_rejected_while_lease_held(self):
        from reposync.services.connection_store import ConnectionStore

        ConnectionStore(self.db).begin_sync(self.connection.id)
        response = self.client.post(f"/api/sync/connections/{self.connection.id}/trigger")
        self.assertEqual(response.status_code, 409)

    def test_resolve_conflict(self):
        from reposync.models import Conflict

        conflict = Conflict(
            connection_id=self.connection.id,
            entity_kind="release",
            conflict_type="concurrent_update",
            description="'title' changed on both sides",
        )
        self.db.add(conflict)
        self.db.commit()

        response = self.client.post(
            f"/api/sync/conflicts/{conflict.id}/resolve", json={"resolution_notes": "kept local"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["resolved"])
        self.assertEqual(self.client.get("/api/sync/conflicts?resolved=false").json(), [])


if __name__ == "__main__":
    unittest.main()
