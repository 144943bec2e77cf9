"""Two-way bridge between the task graph and GitHub issues.

A root task maps to one issue; its descendants are embedded in the issue
body as `<details>` blocks. Network calls run one at a time through the
`IssueGateway`.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from core import MAX_DEPTH, GithubMetadata, Task, TaskGraph, TaskMetadata, generate_task_id, now_iso
from core import task_relationships as rel
from infrastructure.github_issues import IssuesClientError
from infrastructure.issue_markdown import (
    parse_hierarchical_issue_body,
    parse_root_task_metadata,
    render_hierarchical_issue_body,
    render_root_task_metadata,
    strip_root_task_metadata,
)

from .ports import IssueGateway

logger = logging.getLogger("dex.sync")


def render_task_issue_body(root: Task, tasks: Sequence[Task]) -> str:
    descendants = rel.collect_descendants_ordered(list(tasks), root.id)
    return f"{render_root_task_metadata(root)}\n{render_hierarchical_issue_body(root.context, descendants)}"


def _issue_labels(issue: Dict[str, Any]) -> List[str]:
    names = []
    for label in issue.get("labels") or []:
        name = label if isinstance(label, str) else (label or {}).get("name") or ""
        if name:
            names.append(name)
    return names


def _with_github(task: Task, github: GithubMetadata) -> Task:
    commit = task.metadata.commit if task.metadata else None
    task.metadata = TaskMetadata(commit=commit, github=github)
    return task


def _within_depth(
    graph: TaskGraph,
    task_id: str,
    parent_id: str,
    levels: Dict[str, int],
    parent_of: Dict[str, Optional[str]],
) -> str:
    """Nearest ancestor of `parent_id` that still leaves room for one more level."""
    wanted = parent_id
    while True:
        if parent_id not in levels:
            levels[parent_id] = len(graph.ancestors_of(parent_id))
        if levels[parent_id] + 1 < MAX_DEPTH:
            break
        if parent_id not in parent_of:
            parent_of[parent_id] = graph.require(parent_id).parent_id
        parent_id = parent_of[parent_id]
    if parent_id != wanted:
        logger.warning("Subtask %s nested too deep under %s; attached to %s", task_id, wanted, parent_id)
    return parent_id


@dataclass
class ImportResult:
    root_id: str
    imported_ids: List[str] = field(default_factory=list)
    skipped: int = 0


def import_issue(graph: TaskGraph, issue: Dict[str, Any], repo: Optional[str] = None) -> ImportResult:
    """Upsert the task tree described by one issue into `graph`."""
    number = issue["number"]
    body = issue.get("body") or ""
    meta = parse_root_task_metadata(body)
    parsed = parse_hierarchical_issue_body(strip_root_task_metadata(body))

    existing = next(
        (t for t in graph.tasks if t.metadata and t.metadata.github and t.metadata.github.issue_number == number),
        None,
    )
    root_id = (meta.id if meta and meta.id else None) or (existing.id if existing else None) or generate_task_id()
    closed = issue.get("state") == "closed"
    current = graph.get(root_id)
    root = Task(
        id=root_id,
        description=issue.get("title") or f"GitHub issue #{number}",
        context=parsed.context,
        metadata=current.metadata if current else None,
    )
    if current is not None:
        root.created_at = current.created_at
    if meta is not None:
        root = meta.apply_to(root)
    if closed and not root.completed:
        root.completed = True
        root.completed_at = root.completed_at or now_iso()
    stored = current.metadata.github if current and current.metadata else None
    repo = repo or (stored.repo if stored else None)
    if repo:
        url = issue.get("html_url") or f"https://github.com/{repo}/issues/{number}"
        _with_github(root, GithubMetadata(number, url, repo, "closed" if closed else "open"))

    imported = [root_id]
    with graph.transaction():
        graph.upsert(root)
        levels = {root_id: 0}
        parent_of: Dict[str, Optional[str]] = {root_id: None}
        for entry in parsed.entries:
            parent_id = entry.parent_id if entry.parent_id in parent_of or entry.parent_id in graph else root_id
            parent_id = _within_depth(graph, entry.task.id, parent_id, levels, parent_of)
            graph.upsert(entry.task.to_task(parent_id))
            levels[entry.task.id] = levels[parent_id] + 1
            parent_of[entry.task.id] = parent_id
            imported.append(entry.task.id)
    logger.info("Imported issue #%s as %s with %d subtask(s)", number, root_id, len(imported) - 1)
    return ImportResult(root_id=root_id, imported_ids=imported, skipped=parsed.skipped)


@dataclass
class SyncResult:
    task_id: str
    github: GithubMetadata
    created: bool = False
    skipped: bool = False


class IssueSyncService:
    def __init__(self, gateway: IssueGateway, repo: str, label_prefix: str = "dex") -> None:
        self.gateway = gateway
        self.repo = repo
        self.label_prefix = label_prefix

    def labels_for(self, task: Task) -> List[str]:
        state = "completed" if task.completed else "pending"
        return [self.label_prefix, f"{self.label_prefix}:priority-{task.priority}", f"{self.label_prefix}:{state}"]

    def issue_url(self, number: int) -> str:
        return f"https://github.com/{self.repo}/issues/{number}"

    def sync_task(self, task: Task, graph: TaskGraph) -> Optional[SyncResult]:
        """Sync the issue hosting `task`; subtasks sync through their root."""
        ancestors = graph.ancestors_of(task.id) if task.parent_id else []
        if task.parent_id and not ancestors:
            return None
        root = ancestors[0] if ancestors else task
        return self._sync_root(root, graph, self._fetch_issue_cache())

    def sync_all(self, graph: TaskGraph) -> List[SyncResult]:
        cache = self._fetch_issue_cache()
        results = []
        for root in graph.roots():
            result = self._sync_root(root, graph, cache)
            if result is not None:
                results.append(result)
        return results

    def _fetch_issue_cache(self) -> Dict[str, Dict[str, Any]]:
        cache: Dict[str, Dict[str, Any]] = {}
        for issue in self.gateway.list_issues(label=self.label_prefix):
            meta = parse_root_task_metadata(issue.get("body") or "")
            if meta is not None and meta.id:
                cache[meta.id] = issue
        return cache

    def _sync_root(self, root: Task, graph: TaskGraph, cache: Dict[str, Dict[str, Any]]) -> Optional[SyncResult]:
        stored = root.metadata.github if root.metadata else None
        number = stored.issue_number if stored else None
        cached = cache.get(root.id)
        if number is None and cached is not None:
            number = cached["number"]

        state = "closed" if root.completed else "open"
        title = root.description
        body = render_task_issue_body(root, graph.tasks)
        labels = self.labels_for(root)

        if number is None:
            issue = self.gateway.create_issue(title, body, labels)
            number = issue["number"]
            if root.completed:
                self.gateway.update_issue(number, state="closed")
            github = GithubMetadata(number, issue.get("html_url") or self.issue_url(number), self.repo, state)
            _with_github(root, github)
            logger.info("Created issue #%s for %s", number, root.id)
            return SyncResult(task_id=root.id, github=github, created=True)

        github = GithubMetadata(number, self.issue_url(number), self.repo, state)
        if state == "closed" and stored is not None and stored.state == "closed":
            return SyncResult(task_id=root.id, github=github, skipped=True)
        if cached is None or cached.get("number") != number:
            cached = self._fetch_issue(number)
        if cached is not None and not self._needs_update(cached, title, body, state, labels):
            _with_github(root, github)
            return SyncResult(task_id=root.id, github=github, skipped=True)

        self.gateway.update_issue(number, title=title, body=body, labels=labels, state=state)
        _with_github(root, github)
        logger.info("Updated issue #%s for %s", number, root.id)
        return SyncResult(task_id=root.id, github=github)

    def _fetch_issue(self, number: int) -> Optional[Dict[str, Any]]:
        try:
            return self.gateway.get_issue(number)
        except IssuesClientError as exc:
            logger.warning("Could not fetch issue #%s, updating unconditionally: %s", number, exc)
            return None

    def _needs_update(self, issue: Dict[str, Any], title: str, body: str, state: str, labels: List[str]) -> bool:
        current_labels = sorted(name for name in _issue_labels(issue) if name.startswith(self.label_prefix))
        return (
            issue.get("title") != title
            or (issue.get("body") or "").strip() != body.strip()
            or issue.get("state") != state
            or current_labels != sorted(labels)
        )
