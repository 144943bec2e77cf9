import pytest
import requests

from infrastructure.github_issues import GitHubIssuesClient, IssuesClientError, IssuesPermissionError


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FlakySession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        self.calls.append((method, url, json, params, headers))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def _client(session, **kwargs):
    return GitHubIssuesClient("o/r", lambda: "tok", session=session, **kwargs)


def test_create_issue_posts_payload_with_token():
    session = FlakySession([DummyResponse(201, {"number": 5, "html_url": "https://github.com/o/r/issues/5"})])

    issue = _client(session).create_issue("Title", "Body", ["dex"])

    method, url, payload, _, headers = session.calls[0]
    assert issue["number"] == 5
    assert method == "POST"
    assert url == "https://api.github.com/repos/o/r/issues"
    assert payload == {"title": "Title", "body": "Body", "labels": ["dex"]}
    assert headers["Authorization"] == "token tok"


def test_update_issue_patches_only_given_fields():
    session = FlakySession([DummyResponse(200, {"number": 5})])

    _client(session).update_issue(5, state="closed")

    method, url, payload, _, _ = session.calls[0]
    assert method == "PATCH"
    assert url.endswith("/issues/5")
    assert payload == {"state": "closed"}


def test_retries_network_errors_and_server_errors(monkeypatch):
    monkeypatch.setattr(GitHubIssuesClient, "_sleep", lambda self, d: None)
    session = FlakySession(
        [requests.ConnectionError("boom"), DummyResponse(502), DummyResponse(200, {"number": 1})]
    )

    assert _client(session, max_attempts=3).get_issue(1)["number"] == 1
    assert len(session.calls) == 3


def test_gives_up_after_max_attempts(monkeypatch):
    monkeypatch.setattr(GitHubIssuesClient, "_sleep", lambda self, d: None)
    session = FlakySession([DummyResponse(500), DummyResponse(503)])

    with pytest.raises(IssuesClientError):
        _client(session, max_attempts=2).get_issue(1)


def test_permission_and_client_errors_are_not_retried():
    session = FlakySession([DummyResponse(403)])
    with pytest.raises(IssuesPermissionError):
        _client(session).get_issue(1)
    assert len(session.calls) == 1

    session = FlakySession([DummyResponse(404, {"message": "Not Found"})])
    with pytest.raises(IssuesClientError) as excinfo:
        _client(session).get_issue(1)
    assert not isinstance(excinfo.value, IssuesPermissionError)


def test_missing_token_fails_before_any_request():
    session = FlakySession([])
    client = GitHubIssuesClient("o/r", lambda: None, session=session)

    with pytest.raises(IssuesPermissionError):
        client.get_issue(1)
    assert session.calls == []


def test_list_issues_paginates_and_drops_pull_requests():
    first_page = [{"number": i} for i in range(99)] + [{"number": 99, "pull_request": {}}]
    session = FlakySession([DummyResponse(200, first_page), DummyResponse(200, [{"number": 100}])])

    issues = _client(session).list_issues(label="dex")

    assert len(issues) == 100
    assert issues[-1]["number"] == 100
    assert [call[3]["page"] for call in session.calls] == [1, 2]
    assert session.calls[0][3]["labels"] == "dex"


def test_repo_must_be_owner_slash_name():
    with pytest.raises(ValueError):
        GitHubIssuesClient("just-a-name", lambda: "tok", session=FlakySession([]))
