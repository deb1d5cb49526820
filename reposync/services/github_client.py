"""GitHub API client wrapper"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    GithubIntegration,
    RateLimitExceededException,
    UnknownObjectException,
)

from reposync.config import settings
from reposync.services.errors import (
    AuthenticationSyncError,
    SyncError,
    TransientSyncError,
    ValidationSyncError,
)

logger = logging.getLogger(__name__)

_RETRY_STATUSES = (429, 500, 502, 503, 504)


def _repo_ref(repository: str):
    """PyGithub accepts either a numeric id or "owner/name"."""
    ref = str(repository)
    return int(ref) if ref.isdigit() else ref


def classify_exception(exc: Exception) -> SyncError:
    """Map a PyGithub/requests failure onto the sync error taxonomy."""
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, BadCredentialsException):
        return AuthenticationSyncError(f"GitHub rejected the credentials: {exc}")
    if isinstance(exc, RateLimitExceededException):
        return TransientSyncError(f"GitHub rate limit exceeded: {exc}")
    if isinstance(exc, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return TransientSyncError(f"GitHub request failed: {exc}")
    if isinstance(exc, GithubException):
        status = getattr(exc, "status", None)
        if status == 401:
            return AuthenticationSyncError(f"GitHub rejected the credentials: {exc}")
        if status in _RETRY_STATUSES:
            return TransientSyncError(f"GitHub returned {status}: {exc}")
        if status == 403 and "secondary rate limit" in str(exc).lower():
            return TransientSyncError(f"GitHub secondary rate limit: {exc}")
        return ValidationSyncError(f"GitHub returned {status}: {exc}")
    return ValidationSyncError(str(exc))


class GitHubClient:
    """Wrapper for GitHub API operations"""

    def __init__(
        self,
        access_token: str,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base_s: Optional[float] = None,
        backoff_max_s: Optional[float] = None,
        github: Optional[Github] = None,
    ):
        """Initialize GitHub client"""
        self.base_url = base_url or settings.github_api_url
        self.max_attempts = max_attempts or settings.github_max_attempts
        self.backoff_base_s = backoff_base_s if backoff_base_s is not None else settings.github_backoff_base_seconds
        self.backoff_max_s = backoff_max_s if backoff_max_s is not None else settings.github_backoff_max_seconds
        # Retries are ours (see _with_retries); PyGithub's own retry would sleep unbounded.
        self.gh = github or Github(
            auth=Auth.Token(access_token),
            base_url=self.base_url,
            timeout=timeout or settings.github_timeout_seconds,
            retry=None,
        )

    @classmethod
    def for_installation(cls, installation_id: str, app: Optional["GitHubApp"] = None) -> "GitHubClient":
        """Client authenticated as a GitHub App installation."""
        token = (app or GitHubApp()).get_installation_token(installation_id)
        return cls(token)

    @staticmethod
    def _should_retry(exc: Exception) -> bool:
        """Retry predicate: only transient failures are retried."""
        return isinstance(classify_exception(exc), TransientSyncError)

    def _backoff_delay(self, exc: Exception, attempt: int) -> float:
        delay = self.backoff_base_s * (2 ** (attempt - 1))
        headers = getattr(exc, "headers", None) or {}
        retry_after = headers.get("retry-after") or headers.get("Retry-After")
        if retry_after:
            try:
                delay = max(delay, float(retry_after))
            except ValueError:
                pass
        return min(delay, self.backoff_max_s)

    def _with_retries(self, fn, *, what: str = "GitHub call"):
        """Run callable with exponential backoff on transient errors.

        Every failure leaves this method as a SyncError subclass.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as e:
                error = classify_exception(e)
                if attempt >= self.max_attempts or not isinstance(error, TransientSyncError):
                    logger.error(f"{what} failed after {attempt} attempt(s): {e}")
                    raise error from e
                delay = self._backoff_delay(e, attempt)
                logger.warning(f"{what} failed (attempt {attempt}/{self.max_attempts}), retrying in {delay:.1f}s: {e}")
                time.sleep(delay)
                attempt += 1

    def get_repo(self, repository: str):
        """Get repository by id or "owner/name"."""
        return self._with_retries(lambda: self.gh.get_repo(_repo_ref(repository)), what=f"get repo {repository}")

    def list_branches(self, repository: str) -> List[Dict[str, Any]]:
        repo = self.get_repo(repository)
        branches = self._with_retries(lambda: list(repo.get_branches()), what=f"list branches of {repository}")
        return [
            {"name": b.name, "sha": b.commit.sha, "protected": bool(b.protected)}
            for b in branches
        ]

    def list_tags(self, repository: str) -> List[Dict[str, Any]]:
        repo = self.get_repo(repository)
        tags = self._with_retries(lambda: list(repo.get_tags()), what=f"list tags of {repository}")
        return [{"name": t.name, "sha": t.commit.sha} for t in tags]

    @staticmethod
    def _commit_dict(commit: Any) -> Dict[str, Any]:
        git_commit = commit.commit
        return {
            "sha": commit.sha,
            "message": git_commit.message,
            "author": getattr(git_commit.author, "name", None),
            "date": getattr(git_commit.author, "date", None),
            "html_url": commit.html_url,
        }

    def compare_commits(self, repository: str, base: str, head: str) -> List[Dict[str, Any]]:
        """Commits reachable from head but not from base."""
        repo = self.get_repo(repository)
        comparison = self._with_retries(lambda: repo.compare(base, head), what=f"compare {base}...{head}")
        return [self._commit_dict(c) for c in comparison.commits]

    def list_recent_commits(self, repository: str, branch: str, limit: int = 30) -> List[Dict[str, Any]]:
        repo = self.get_repo(repository)

        def _fetch():
            commits = []
            for commit in repo.get_commits(sha=branch):
                commits.append(commit)
                if len(commits) >= limit:
                    break
            return commits

        commits = self._with_retries(_fetch, what=f"list commits on {branch}")
        return [self._commit_dict(c) for c in commits]

    def list_releases(self, repository: str) -> List[Any]:
        """Get all releases (drafts included when the token can see them)."""
        repo = self.get_repo(repository)
        return self._with_retries(lambda: list(repo.get_releases()), what=f"list releases of {repository}")

    def get_release(self, repository: str, release_id: str) -> Any:
        repo = self.get_repo(repository)
        return self._with_retries(lambda: repo.get_release(int(release_id)), what=f"get release {release_id}")

    def get_release_or_none(self, repository: str, release_id: str) -> Optional[Any]:
        """Get a release, returning None when GitHub says it does not exist."""
        repo = self.get_repo(repository)
        try:
            return repo.get_release(int(release_id))
        except UnknownObjectException:
            return None
        except Exception as e:
            raise classify_exception(e) from e

    def create_release(
        self,
        repository: str,
        *,
        tag_name: str,
        name: str,
        body: str = "",
        draft: bool = False,
        prerelease: bool = False,
        target_commitish: Optional[str] = None,
    ) -> Any:
        """Create a new release"""
        repo = self.get_repo(repository)
        kwargs = {"draft": draft, "prerelease": prerelease}
        if target_commitish:
            kwargs["target_commitish"] = target_commitish
        release = self._with_retries(
            lambda: repo.create_git_release(tag_name, name, body or "", **kwargs),
            what=f"create release {tag_name}",
        )
        logger.info(f"Created release {tag_name} in {repository}")
        return release

    def update_release(self, repository: str, release_id: str, *, name: str, body: str) -> Any:
        """Update name/body of an existing release, preserving its draft/prerelease flags."""
        release = self.get_release(repository, release_id)
        updated = self._with_retries(
            lambda: release.update_release(
                name, body or "", draft=bool(release.draft), prerelease=bool(release.prerelease)
            ),
            what=f"update release {release_id}",
        )
        logger.info(f"Updated release {release_id} in {repository}")
        return updated

    def list_issues(self, repository: str, since: Optional[datetime] = None) -> List[Any]:
        """Get all issues (open and closed), pull requests excluded."""
        repo = self.get_repo(repository)
        kwargs: Dict[str, Any] = {"state": "all", "sort": "updated", "direction": "desc"}
        if since is not None:
            # Our DB uses UTC tz-naive; assume UTC if tzinfo is missing.
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            kwargs["since"] = since
        issues = self._with_retries(lambda: list(repo.get_issues(**kwargs)), what=f"list issues of {repository}")
        return [i for i in issues if getattr(i, "pull_request", None) is None]

    def get_issue(self, repository: str, number: int) -> Any:
        repo = self.get_repo(repository)
        return self._with_retries(lambda: repo.get_issue(int(number)), what=f"get issue #{number}")

    def create_issue_comment(self, repository: str, number: int, body: str) -> Any:
        """Create a comment on an issue"""
        issue = self.get_issue(repository, number)
        comment = self._with_retries(lambda: issue.create_comment(body), what=f"comment on issue #{number}")
        logger.info(f"Created comment on issue #{number} in {repository}")
        return comment


class GitHubApp:
    """GitHub App credentials: installation tokens and installation metadata."""

    def __init__(
        self,
        app_id: Optional[str] = None,
        private_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        integration: Optional[GithubIntegration] = None,
    ):
        self.app_id = app_id or settings.github_app_id
        key = private_key or settings.github_app_private_key
        self.private_key = key.replace("\\n", "\n") if key else None
        self.base_url = base_url or settings.github_api_url
        self._integration = integration

    @property
    def integration(self) -> GithubIntegration:
        if self._integration is None:
            if not self.app_id or not self.private_key:
                raise AuthenticationSyncError("GitHub App credentials are not configured")
            self._integration = GithubIntegration(
                auth=Auth.AppAuth(self.app_id, self.private_key),
                base_url=self.base_url,
            )
        return self._integration

    def get_installation_token(self, installation_id: str) -> str:
        try:
            authorization = self.integration.get_access_token(int(installation_id))
        except SyncError:
            raise
        except Exception as e:
            raise classify_exception(e) from e
        return authorization.token

    def get_installation_account(self, installation_id: str) -> Dict[str, Any]:
        """Account the app is installed on (login + "user"/"organization")."""
        try:
            installation = self.integration.get_app_installation(int(installation_id))
            account = installation.account
        except SyncError:
            raise
        except Exception as e:
            raise classify_exception(e) from e
        account_type = (getattr(account, "type", None) or "user").lower()
        return {"login": account.login, "type": account_type}

    def list_installation_repositories(self, installation_id: str) -> List[Dict[str, Any]]:
        try:
            installation = self.integration.get_app_installation(int(installation_id))
            repos = list(installation.get_repos())
        except SyncError:
            raise
        except Exception as e:
            raise classify_exception(e) from e
        return [
            {
                "id": str(r.id),
                "full_name": r.full_name,
                "default_branch": r.default_branch,
                "private": bool(r.private),
            }
            for r in repos
        ]
