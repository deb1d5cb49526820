"""Database models"""

from reposync.models.base import Base
from reposync.models.canonical import Feedback, FeedbackTag, Release, Tag
from reposync.models.conflict import Conflict
from reposync.models.connection import Connection
from reposync.models.label_mapping import LabelMapping
from reposync.models.mirror import ExternalIssue, ExternalRelease
from reposync.models.sync_job import SyncJob
from reposync.models.sync_log import SyncLog
from reposync.models.webhook_event import WebhookEvent

__all__ = [
    "Base",
    "Connection",
    "ExternalRelease",
    "ExternalIssue",
    "Release",
    "Feedback",
    "Tag",
    "FeedbackTag",
    "LabelMapping",
    "WebhookEvent",
    "SyncJob",
    "SyncLog",
    "Conflict",
]
