import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

import requests

API_ROOT = "https://api.github.com"

logger = logging.getLogger("dex.sync")


class IssuesClientError(RuntimeError):
    pass


class IssuesPermissionError(IssuesClientError):
    pass


class GitHubIssuesClient:
    """Thin REST wrapper for the issues of one `owner/repo`."""

    def __init__(
        self,
        repo: str,
        token_provider: Callable[[], Optional[str]],
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        max_attempts: int = 3,
        api_root: str = API_ROOT,
    ) -> None:
        if repo.count("/") != 1:
            raise ValueError(f"Repository must look like owner/repo, got {repo!r}")
        self.repo = repo
        self.session = session or requests.Session()
        self.token_provider = token_provider
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.api_root = api_root.rstrip("/")

    @property
    def issues_url(self) -> str:
        return f"{self.api_root}/repos/{self.repo}/issues"

    def request(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        token = self.token_provider()
        if not token:
            raise IssuesPermissionError("GitHub token missing")
        headers = {"Authorization": f"token {token}", "Accept": "application/vnd.github+json"}
        attempt = 0
        delay = 1.0
        while True:
            attempt += 1
            try:
                resp = self.session.request(
                    method.upper(), url, json=payload, params=params, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as exc:
                if attempt >= self.max_attempts:
                    raise IssuesClientError(f"{method.upper()} {url} failed: {exc}") from exc
                logger.warning("issue request retry #%s after network error: %s", attempt, exc)
                self._sleep(delay)
                delay *= 2
                continue
            if resp.status_code in (401, 403):
                raise IssuesPermissionError(f"HTTP {resp.status_code}")
            if resp.status_code < 500:
                if resp.status_code >= 400:
                    raise IssuesClientError(f"HTTP {resp.status_code}: {resp.text}")
                return resp
            if attempt >= self.max_attempts:
                raise IssuesClientError(f"HTTP {resp.status_code} after {attempt} attempts")
            logger.warning("issue request retry #%s due to %s", attempt, resp.status_code)
            self._sleep(delay)
            delay *= 2

    def _sleep(self, base_delay: float) -> None:
        time.sleep(base_delay + random.uniform(0, base_delay))

    def get_issue(self, number: int) -> Dict[str, Any]:
        return self.request("get", f"{self.issues_url}/{number}").json()

    def list_issues(self, label: Optional[str] = None, state: str = "all") -> List[Dict[str, Any]]:
        issues: List[Dict[str, Any]] = []
        page = 1
        while True:
            params: Dict[str, Any] = {"state": state, "per_page": 100, "page": page}
            if label:
                params["labels"] = label
            batch = self.request("get", self.issues_url, params=params).json()
            issues.extend(item for item in batch if "pull_request" not in item)
            if len(batch) < 100:
                return issues
            page += 1

    def create_issue(self, title: str, body: str, labels: List[str]) -> Dict[str, Any]:
        payload = {"title": title, "body": body, "labels": labels}
        return self.request("post", self.issues_url, payload).json()

    def update_issue(self, number: int, **fields: Any) -> Dict[str, Any]:
        return self.request("patch", f"{self.issues_url}/{number}", fields).json()
