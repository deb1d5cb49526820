"""API routes"""

from reposync.api import auto_tagging, connections, label_mappings, sync, webhooks

__all__ = ["connections", "label_mappings", "sync", "webhooks", "auto_tagging"]
