"""Sync error taxonomy.

Everything the GitHub client raises is mapped onto one of these so callers can
decide between retrying, failing the whole job, or recording a per-item error.
"""


class SyncError(Exception):
    """Base class for sync failures."""


class TransientSyncError(SyncError):
    """Timeouts, rate limits and 5xx responses (retried with backoff)."""


class AuthenticationSyncError(SyncError):
    """Bad, expired or missing credentials. Never retried."""


class ValidationSyncError(SyncError):
    """Malformed payloads, missing fields and non-retryable 4xx responses."""
