"""Services"""

from reposync.services.connection_store import ConnectionStore
from reposync.services.github_client import GitHubApp, GitHubClient
from reposync.services.job_tracker import BatchRunner, JobTracker
from reposync.services.reconciler import Reconciler
from reposync.services.sync_service import SyncService
from reposync.services.webhook_ingestor import WebhookIngestor

__all__ = [
    "ConnectionStore",
    "GitHubApp",
    "GitHubClient",
    "JobTracker",
    "BatchRunner",
    "Reconciler",
    "SyncService",
    "WebhookIngestor",
]
