"""Throwaway SQLite databases for tests."""

import os
import shutil
import tempfile

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


def make_session_factory(testcase):
    """A file-backed SQLite database (separate connections per session), removed after the test."""
    from reposync.models.base import init_db

    tmpdir = tempfile.mkdtemp(prefix="reposync-test-")
    engine = create_engine(
        f"sqlite:///{os.path.join(tmpdir, 'test.db')}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    testcase.addCleanup(shutil.rmtree, tmpdir, True)
    testcase.addCleanup(engine.dispose)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def add_connection(db, **overrides):
    from reposync.models import Connection
    from reposync.models.connection import SyncDirection

    values = dict(
        organization_id="org-1",
        installation_id="42",
        account_login="acme",
        account_type="organization",
        repository_id="1001",
        repository_full_name="acme/widgets",
        default_branch="main",
        target_branch="main",
        sync_direction=SyncDirection.EXTERNAL_FIRST,
        auto_sync_releases=True,
        issues_sync_enabled=True,
        auto_sync_issues=True,
        webhook_secret="s3cret",
    )
    values.update(overrides)
    connection = Connection(**values)
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection
