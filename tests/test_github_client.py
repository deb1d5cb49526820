import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock, patch


class _StubRepo:
    def __init__(self, issues=None, releases=None):
        self.issue_calls = []
        self._issues = issues or []
        self._releases = releases or []

    def get_issues(self, **kwargs):
        self.issue_calls.append(kwargs)
        return iter(self._issues)

    def get_releases(self):
        return iter(self._releases)


def _client(repo=None, **kwargs):
    from reposync.services.github_client import GitHubClient

    gh = Mock()
    gh.get_repo.return_value = repo
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("backoff_base_s", 0.5)
    kwargs.setdefault("backoff_max_s", 4.0)
    return GitHubClient("token", github=gh, **kwargs), gh


class ClassifyExceptionTests(unittest.TestCase):
    def test_status_codes(self):
        from github import BadCredentialsException, GithubException

        from reposync.services.errors import (
            AuthenticationSyncError,
            TransientSyncError,
            ValidationSyncError,
        )
        from reposync.services.github_client import classify_exception

        self.assertIsInstance(classify_exception(GithubException(502, {"message": "Bad gateway"}, None)), TransientSyncError)
        self.assertIsInstance(classify_exception(GithubException(429, {"message": "slow down"}, None)), TransientSyncError)
        self.assertIsInstance(classify_exception(BadCredentialsException(401, {"message": "Bad credentials"}, None)), AuthenticationSyncError)
        self.assertIsInstance(classify_exception(GithubException(404, {"message": "Not Found"}, None)), ValidationSyncError)
        self.assertIsInstance(classify_exception(GithubException(422, {"message": "Validation Failed"}, None)), ValidationSyncError)

    def test_network_errors_are_transient(self):
        import requests

        from reposync.services.errors import TransientSyncError
        from reposync.services.github_client import classify_exception

        self.assertIsInstance(classify_exception(requests.exceptions.Timeout("read timeout")), TransientSyncError)
        self.assertIsInstance(classify_exception(requests.exceptions.ConnectionError("reset")), TransientSyncError)


class GitHubClientRetryTests(unittest.TestCase):
    def test_transient_error_is_retried_then_succeeds(self):
        from github import GithubException

        repo = _StubRepo()
        client, gh = _client()
        gh.get_repo.side_effect = [GithubException(502, {"message": "Bad gateway"}, None), repo]

        with patch("reposync.services.github_client.time.sleep") as sleep:
            self.assertIs(client.get_repo("acme/widgets"), repo)

        sleep.assert_called_once_with(0.5)
        self.assertEqual(gh.get_repo.call_count, 2)

    def test_backoff_is_exponential_and_capped(self):
        from github import GithubException

        from reposync.services.errors import TransientSyncError

        client, gh = _client(max_attempts=5)
        gh.get_repo.side_effect = GithubException(503, {"message": "unavailable"}, None)

        with patch("reposync.services.github_client.time.sleep") as sleep:
            with self.assertRaises(TransientSyncError):
                client.get_repo("acme/widgets")

        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.5, 1.0, 2.0, 4.0])
        self.assertEqual(gh.get_repo.call_count, 5)

    def test_retry_after_header_is_honoured(self):
        from github import GithubException

        repo = _StubRepo()
        client, gh = _client(backoff_max_s=30.0)
        gh.get_repo.side_effect = [
            GithubException(429, {"message": "slow down"}, {"retry-after": "7"}),
            repo,
        ]
        with patch("reposync.services.github_client.time.sleep") as sleep:
            client.get_repo("acme/widgets")
        sleep.assert_called_once_with(7.0)

    def test_authentication_error_is_not_retried(self):
        from github import BadCredentialsException

        from reposync.services.errors import AuthenticationSyncError

        client, gh = _client()
        gh.get_repo.side_effect = BadCredentialsException(401, {"message": "Bad credentials"}, None)

        with patch("reposync.services.github_client.time.sleep") as sleep:
            with self.assertRaises(AuthenticationSyncError):
                client.get_repo("acme/widgets")

        sleep.assert_not_called()
        self.assertEqual(gh.get_repo.call_count, 1)

    def test_not_found_is_a_validation_error(self):
        from github import UnknownObjectException

        from reposync.services.errors import ValidationSyncError

        client, gh = _client()
        gh.get_repo.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
        with patch("reposync.services.github_client.time.sleep") as sleep:
            with self.assertRaises(ValidationSyncError):
                client.get_repo("acme/widgets")
        sleep.assert_not_called()

    def test_numeric_repository_reference_is_passed_as_int(self):
        client, gh = _client(_StubRepo())
        client.get_repo("1001")
        gh.get_repo.assert_called_once_with(1001)


class GitHubClientCallTests(unittest.TestCase):
    def test_list_issues_requests_all_states_and_drops_pull_requests(self):
        issue = SimpleNamespace(number=1, pull_request=None)
        pr = SimpleNamespace(number=2, pull_request=SimpleNamespace(url="https://api.github.com/pulls/2"))
        repo = _StubRepo(issues=[issue, pr])
        client, _ = _client(repo)

        since = datetime(2025, 1, 1)
        result = client.list_issues("acme/widgets", since=since)

        self.assertEqual(result, [issue])
        params = repo.issue_calls[0]
        self.assertEqual(params["state"], "all")
        self.assertEqual(params["since"], datetime(2025, 1, 1, tzinfo=timezone.utc))

    def test_update_release_preserves_flags(self):
        release = Mock(draft=True, prerelease=False)
        repo = Mock()
        repo.get_release.return_value = release
        client, _ = _client(repo)

        client.update_release("acme/widgets", "555", name="Two one", body="Notes")

        repo.get_release.assert_called_once_with(555)
        release.update_release.assert_called_once_with("Two one", "Notes", draft=True, prerelease=False)

    def test_get_release_or_none(self):
        from github import UnknownObjectException

        repo = Mock()
        repo.get_release.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
        client, _ = _client(repo)
        self.assertIsNone(client.get_release_or_none("acme/widgets", "555"))

    def test_create_release_passes_target_commitish(self):
        repo = Mock()
        client, _ = _client(repo)
        client.create_release("acme/widgets", tag_name="v2.2.0", name="Two two", body="", target_commitish="main")
        repo.create_git_release.assert_called_once_with(
            "v2.2.0", "Two two", "", draft=False, prerelease=False, target_commitish="main"
        )


class GitHubAppTests(unittest.TestCase):
    def test_missing_credentials_raise_authentication_error(self):
        from reposync.services.errors import AuthenticationSyncError
        from reposync.services.github_client import GitHubApp

        app = GitHubApp.__new__(GitHubApp)
        app.app_id = None
        app.private_key = None
        app.base_url = "https://api.github.com"
        app._integration = None

        with self.assertRaises(AuthenticationSyncError):
            app.get_installation_token("42")

    def test_installation_repositories(self):
        from reposync.services.github_client import GitHubApp

        repo = SimpleNamespace(id=1001, full_name="acme/widgets", default_branch="main", private=True)
        installation = Mock()
        installation.get_repos.return_value = [repo]
        integration = Mock()
        integration.get_app_installation.return_value = installation

        app = GitHubApp("1", "key", integration=integration)

        self.assertEqual(
            app.list_installation_repositories("42"),
            [{"id": "1001", "full_name": "acme/widgets", "default_branch": "main", "private": True}],
        )
        integration.get_app_installation.assert_called_once_with(42)

    def test_installation_token(self):
        from reposync.services.github_client import GitHubApp

        integration = Mock()
        integration.get_access_token.return_value = SimpleNamespace(token="ghs_abc")
        app = GitHubApp("1", "-----BEGIN KEY-----\\nabc", integration=integration)

        self.assertEqual(app.get_installation_token("42"), "ghs_abc")
        self.assertEqual(app.private_key, "-----BEGIN KEY-----\nabc")


if __name__ == "__main__":
    unittest.main()
