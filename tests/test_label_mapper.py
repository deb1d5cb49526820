import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace


def _mapping(id, label, *, tag=None, auto_sync=False, closed=False, status=None, minutes=0):
    return SimpleNamespace(
        id=id,
        label_name=label,
        target_tag_id=tag,
        auto_sync=auto_sync,
        sync_closed_issues=closed,
        default_status=status,
        created_at=datetime(2025, 1, 1) + timedelta(minutes=minutes),
    )


class LabelResolveTests(unittest.TestCase):
    def test_label_order_does_not_matter(self):
        from reposync.services.label_mapper import resolve

        mappings = [
            _mapping(1, "bug", tag=10, status="under_review", minutes=0),
            _mapping(2, "ui", tag=20, status="planned", minutes=1),
        ]
        a = resolve(["ui", "bug"], mappings)
        b = resolve(["bug", "ui"], list(reversed(mappings)))

        self.assertEqual(a, b)
        self.assertEqual(a.tag_ids, [10, 20])
        self.assertEqual(a.default_status, "under_review")

    def test_default_status_comes_from_first_mapping_defining_one(self):
        from reposync.services.label_mapper import resolve

        mappings = [
            _mapping(3, "ui", tag=20, status="planned", minutes=5),
            _mapping(1, "bug", tag=10, minutes=0),
            _mapping(2, "feature", tag=30, status="in_progress", minutes=2),
        ]
        result = resolve(["bug", "ui", "feature"], mappings)

        self.assertEqual(result.tag_ids, [10, 30, 20])
        self.assertEqual(result.default_status, "in_progress")

    def test_ties_on_created_at_break_by_id(self):
        from reposync.services.label_mapper import resolve

        mappings = [
            _mapping(7, "b", tag=2, status="planned"),
            _mapping(3, "a", tag=1, status="closed"),
        ]
        result = resolve(["a", "b"], mappings)
        self.assertEqual(result.tag_ids, [1, 2])
        self.assertEqual(result.default_status, "closed")

    def test_match_is_case_sensitive(self):
        from reposync.services.label_mapper import resolve

        result = resolve(["Bug"], [_mapping(1, "bug", tag=10, auto_sync=True)])
        self.assertEqual(result.tag_ids, [])
        self.assertFalse(result.should_sync)

    def test_duplicate_target_tags_are_collapsed(self):
        from reposync.services.label_mapper import resolve

        mappings = [_mapping(1, "bug", tag=10), _mapping(2, "defect", tag=10, minutes=1)]
        self.assertEqual(resolve(["bug", "defect"], mappings).tag_ids, [10])

    def test_should_sync_rules(self):
        from reposync.services.label_mapper import resolve

        mappings = [
            _mapping(1, "bug", tag=10, auto_sync=True),
            _mapping(2, "wontfix", tag=11, auto_sync=True, closed=True, minutes=1),
            _mapping(3, "docs", tag=12, auto_sync=False, minutes=2),
        ]

        self.assertTrue(resolve(["bug"], mappings, "open").should_sync)
        self.assertFalse(resolve(["bug"], mappings, "closed").should_sync)
        self.assertTrue(resolve(["wontfix"], mappings, "closed").should_sync)
        self.assertFalse(resolve(["docs"], mappings, "open").should_sync)
        self.assertFalse(resolve(["unmapped"], mappings, "open").should_sync)


class LabelMappingServiceTests(unittest.TestCase):
    def test_upsert_updates_existing_mapping(self):
        from _db import add_connection, make_session_factory
        from reposync.models import LabelMapping
        from reposync.services.label_mapper import LabelMappingService

        db = make_session_factory(self)()
        self.addCleanup(db.close)
        connection = add_connection(db)
        svc = LabelMappingService(db)

        first = svc.update_label_mapping(connection.id, "bug", auto_sync=True)
        second = svc.update_label_mapping(connection.id, "bug", auto_sync=False, default_status="planned")

        self.assertTrue(first["created"])
        self.assertFalse(second["created"])
        self.assertEqual(first["mapping_id"], second["mapping_id"])
        rows = db.query(LabelMapping).all()
        self.assertEqual(len(rows), 1)
        self.assertFalse(rows[0].auto_sync)
        self.assertEqual(rows[0].default_status, "planned")

    def test_rejects_unknown_status_and_connection(self):
        from _db import add_connection, make_session_factory
        from reposync.services.label_mapper import LabelMappingService

        db = make_session_factory(self)()
        self.addCleanup(db.close)
        connection = add_connection(db)
        svc = LabelMappingService(db)

        self.assertEqual(svc.update_label_mapping(connection.id, "bug", default_status="done")["status"], "invalid")
        self.assertEqual(svc.update_label_mapping(999, "bug")["status"], "not_found")
        self.assertEqual(svc.delete_mapping(connection.id, 12345)["status"], "not_found")


if __name__ == "__main__":
    unittest.main()
