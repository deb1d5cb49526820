"""Normalized release/issue payloads.

GitHub hands us the same entity in two shapes: PyGithub objects from the REST
API and raw JSON dicts from webhooks. Both are flattened into these dataclasses
before reconciliation.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from reposync.services.errors import ValidationSyncError


def normalize_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to UTC tz-naive (safe for comparisons)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_github_datetime(value: Any) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into UTC tz-naive datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return normalize_utc_naive(value)
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationSyncError(f"Invalid timestamp: {value!r}") from e
    return normalize_utc_naive(dt)


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    value = data.get(key)
    if value is None:
        raise ValidationSyncError(f"{kind} payload is missing '{key}'")
    return value


def _hash(data: Dict[str, Any]) -> str:
    raw = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class ReleasePayload:
    external_id: str
    tag_name: str
    name: Optional[str] = None
    body: Optional[str] = None
    html_url: Optional[str] = None
    is_draft: bool = False
    is_prerelease: bool = False
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def title(self) -> str:
        return self.name or self.tag_name

    @classmethod
    def from_webhook(cls, data: Dict[str, Any]) -> "ReleasePayload":
        if not isinstance(data, dict):
            raise ValidationSyncError("release payload is not an object")
        return cls(
            external_id=str(_require(data, "id", "release")),
            tag_name=str(_require(data, "tag_name", "release")),
            name=data.get("name") or None,
            body=data.get("body"),
            html_url=data.get("html_url"),
            is_draft=bool(data.get("draft", False)),
            is_prerelease=bool(data.get("prerelease", False)),
            published_at=parse_github_datetime(data.get("published_at")),
            created_at=parse_github_datetime(data.get("created_at")),
        )

    @classmethod
    def from_github(cls, release: Any) -> "ReleasePayload":
        """Build from a PyGithub GitRelease."""
        return cls(
            external_id=str(release.id),
            tag_name=release.tag_name,
            name=release.title or None,
            body=release.body,
            html_url=release.html_url,
            is_draft=bool(release.draft),
            is_prerelease=bool(release.prerelease),
            published_at=normalize_utc_naive(release.published_at),
            created_at=normalize_utc_naive(release.created_at),
        )

    def content_hash(self) -> str:
        # GitHub releases carry no updated_at, so content is the revision marker.
        return _hash(
            {
                "tag_name": self.tag_name,
                "name": self.name,
                "body": self.body or "",
                "draft": self.is_draft,
                "prerelease": self.is_prerelease,
                "published_at": self.published_at,
            }
        )


@dataclass
class IssuePayload:
    external_id: str
    number: int
    title: str
    body: Optional[str] = None
    html_url: Optional[str] = None
    state: str = "open"
    labels: List[str] = field(default_factory=list)
    author: Optional[str] = None
    milestone: Optional[str] = None
    assignees: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_webhook(cls, data: Dict[str, Any]) -> "IssuePayload":
        if not isinstance(data, dict):
            raise ValidationSyncError("issue payload is not an object")
        if data.get("pull_request"):
            raise ValidationSyncError("pull requests are not synced")

        labels = []
        for label in data.get("labels") or []:
            name = label.get("name") if isinstance(label, dict) else label
            if name:
                labels.append(str(name))

        milestone = data.get("milestone")
        if isinstance(milestone, dict):
            milestone = milestone.get("title")

        assignees = [
            a.get("login") for a in (data.get("assignees") or []) if isinstance(a, dict) and a.get("login")
        ]

        return cls(
            external_id=str(_require(data, "id", "issue")),
            number=int(_require(data, "number", "issue")),
            title=str(_require(data, "title", "issue")),
            body=data.get("body"),
            html_url=data.get("html_url"),
            state=data.get("state") or "open",
            labels=labels,
            author=(data.get("user") or {}).get("login"),
            milestone=milestone,
            assignees=assignees,
            created_at=parse_github_datetime(data.get("created_at")),
            updated_at=parse_github_datetime(data.get("updated_at")),
            closed_at=parse_github_datetime(data.get("closed_at")),
        )

    @classmethod
    def from_github(cls, issue: Any) -> "IssuePayload":
        """Build from a PyGithub Issue."""
        if getattr(issue, "pull_request", None) is not None:
            raise ValidationSyncError("pull requests are not synced")
        user = getattr(issue, "user", None)
        milestone = getattr(issue, "milestone", None)
        return cls(
            external_id=str(issue.id),
            number=int(issue.number),
            title=issue.title,
            body=issue.body,
            html_url=issue.html_url,
            state=issue.state or "open",
            labels=[label.name for label in (issue.labels or [])],
            author=getattr(user, "login", None),
            milestone=getattr(milestone, "title", None),
            assignees=[a.login for a in (issue.assignees or [])],
            created_at=normalize_utc_naive(issue.created_at),
            updated_at=normalize_utc_naive(issue.updated_at),
            closed_at=normalize_utc_naive(issue.closed_at),
        )

    def content_hash(self) -> str:
        return _hash(
            {
                "title": self.title,
                "body": self.body or "",
                "state": self.state,
                "labels": sorted(self.labels),
                "milestone": self.milestone,
                "assignees": sorted(self.assignees),
            }
        )
