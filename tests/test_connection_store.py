import unittest
from datetime import timedelta


class ConnectionStoreTests(unittest.TestCase):
    def setUp(self):
        from _db import make_session_factory

        self.Session = make_session_factory(self)
        self.db = self.Session()
        self.addCleanup(self.db.close)

    def _store(self):
        from reposync.services.connection_store import ConnectionStore

        return ConnectionStore(self.db)

    def _linked_release_mirror(self, connection, repository_id="1001"):
        from reposync.models import ExternalRelease, Release

        release = Release(organization_id=connection.organization_id, title="v1", version="v1", external_release_id="1")
        self.db.add(release)
        self.db.flush()
        mirror = ExternalRelease(
            connection_id=connection.id,
            repository_id=repository_id,
            external_release_id="1",
            tag_name="v1",
            linked_release_id=release.id,
        )
        self.db.add(mirror)
        self.db.commit()
        return mirror, release

    def test_connect_is_idempotent_per_organization(self):
        from reposync.models import Connection

        store = self._store()
        first = store.connect("org-1", "42", account_login="acme", account_type="organization")
        second = store.connect("org-1", "43", repository={"id": 1001, "full_name": "acme/widgets", "default_branch": "main"})

        self.assertTrue(first["created"])
        self.assertFalse(second["created"])
        self.assertEqual(first["connection_id"], second["connection_id"])
        connection = self.db.query(Connection).one()
        self.assertEqual(connection.installation_id, "43")
        self.assertEqual(connection.repository_id, "1001")
        self.assertEqual(connection.repository, "acme/widgets")

    def test_change_repository_unlinks_old_mirrors_and_keeps_canonical_ids(self):
        from _db import add_connection

        connection = add_connection(self.db)
        mirror, release = self._linked_release_mirror(connection)

        result = self._store().change_repository(connection.id, "2002", "acme/gadgets", "trunk")

        self.assertEqual(result, {"status": "success", "unlinked": 1})
        self.db.refresh(mirror)
        self.db.refresh(release)
        self.db.refresh(connection)
        self.assertIsNone(mirror.linked_release_id)
        self.assertEqual(release.external_release_id, "1")
        self.assertEqual(connection.repository_full_name, "acme/gadgets")
        self.assertEqual(connection.target_branch, "trunk")

    def test_change_repository_rejected_while_syncing(self):
        from _db import add_connection
        from reposync.models.sync_job import JobKind
        from reposync.services.job_tracker import JobTracker

        connection = add_connection(self.db)
        store = self._store()

        self.assertEqual(store.begin_sync(connection.id)["status"], "success")
        self.assertEqual(store.change_repository(connection.id, "2002")["status"], "rejected")

        store.end_sync(connection.id, "success")
        tracker = JobTracker(self.db)
        job = tracker.create_job(JobKind.FULL_SYNC, 1, "org-1", connection_id=connection.id)
        tracker.start(job.id)
        self.assertEqual(store.change_repository(connection.id, "2002")["status"], "rejected")

    def test_sync_lease(self):
        from _db import add_connection
        from reposync.models.base import utcnow
        from reposync.models.connection import SyncRunStatus

        connection = add_connection(self.db)
        store = self._store()

        self.assertEqual(store.begin_sync(connection.id)["status"], "success")
        self.assertEqual(store.begin_sync(connection.id)["status"], "rejected")

        store.end_sync(connection.id, SyncRunStatus.SUCCESS)
        self.db.refresh(connection)
        self.assertIsNone(connection.sync_started_at)
        self.assertEqual(connection.last_sync_status, SyncRunStatus.SUCCESS)
        self.assertEqual(store.begin_sync(connection.id)["status"], "success")

        # An abandoned lease expires.
        self.db.refresh(connection)
        connection.sync_started_at = utcnow() - timedelta(days=1)
        self.db.commit()
        self.assertEqual(store.begin_sync(connection.id)["status"], "success")
        self.assertEqual(store.begin_sync(9999)["status"], "not_found")

    def test_update_direction_and_settings(self):
        from _db import add_connection
        from reposync.models.connection import SyncDirection

        connection = add_connection(self.db)
        store = self._store()

        self.assertEqual(store.update_direction(connection.id, "bidirectional")["direction"], "bidirectional")
        self.assertEqual(store.update_direction(connection.id, "sideways")["status"], "invalid")
        self.assertEqual(store.update_settings(connection.id, auto_publish_imported=True)["status"], "success")
        self.assertEqual(store.update_settings(connection.id, color="blue")["status"], "invalid")

        self.db.refresh(connection)
        self.assertEqual(connection.sync_direction, SyncDirection.BIDIRECTIONAL)
        self.assertTrue(connection.auto_publish_imported)

    def test_disconnect_unlinks_mirrors(self):
        from _db import add_connection
        from reposync.models.connection import ConnectionStatus

        connection = add_connection(self.db)
        mirror, release = self._linked_release_mirror(connection)

        result = self._store().disconnect(connection.id)

        self.assertEqual(result["unlinked"], 1)
        self.db.refresh(connection)
        self.db.refresh(mirror)
        self.assertEqual(connection.status, ConnectionStatus.PENDING)
        self.assertIsNotNone(connection.disconnected_at)
        self.assertIsNone(mirror.linked_release_id)
        self.assertEqual(self._store().disconnect(9999)["status"], "not_found")

    def test_record_sync_outcome_and_mark_error(self):
        from _db import add_connection
        from reposync.models.connection import ConnectionStatus, SyncRunStatus

        connection = add_connection(self.db)
        store = self._store()
        store.record_sync_outcome(connection.id, "error", "GitHub returned 502")
        store.mark_error(connection.id, "GitHub App installation suspended")

        self.db.refresh(connection)
        self.assertEqual(connection.last_sync_status, SyncRunStatus.ERROR)
        self.assertEqual(connection.last_sync_error, "GitHub returned 502")
        self.assertIsNotNone(connection.last_sync_at)
        self.assertEqual(connection.status, ConnectionStatus.ERROR)
        self.assertEqual(connection.status_message, "GitHub App installation suspended")

    def test_reconnect_after_disconnect(self):
        from _db import add_connection
        from reposync.models.connection import ConnectionStatus

        connection = add_connection(self.db)
        store = self._store()
        store.disconnect(connection.id)
        store.connect("org-1", "42")

        self.db.refresh(connection)
        self.assertEqual(connection.status, ConnectionStatus.CONNECTED)
        self.assertIsNone(connection.disconnected_at)


if __name__ == "__main__":
    unittest.main()
