import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

MAX_CONTENT_LENGTH = 50 * 1024
DEFAULT_PRIORITY = 1
MAX_PRIORITY = 100
_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_iso() -> str:
    """UTC timestamp with millisecond precision and a `Z` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    raw = (value or "").strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_task_id(length: int = 8) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def _require_str(data: Dict[str, Any], key: str, *, allow_empty: bool = True, max_length: int = MAX_CONTENT_LENGTH) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected string, got {type(value).__name__}")
    if not allow_empty and not value:
        raise ValueError(f"{key}: must not be empty")
    if len(value) > max_length:
        raise ValueError(f"{key}: exceeds maximum length")
    return value


def _optional_str(data: Dict[str, Any], key: str, *, max_length: int = MAX_CONTENT_LENGTH) -> Optional[str]:
    if data.get(key) is None:
        return None
    return _require_str(data, key, max_length=max_length)


def _timestamp(data: Dict[str, Any], key: str, *, required: bool = True) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValueError(f"{key}: required timestamp is missing")
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected ISO-8601 string")
    try:
        parse_timestamp(value)
    except ValueError:
        raise ValueError(f"{key}: invalid ISO-8601 timestamp {value!r}") from None
    return value


def _id_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ValueError(f"{key}: expected a list of task ids")
    return list(value)


@dataclass(frozen=True)
class CommitMetadata:
    sha: str
    message: Optional[str] = None
    branch: Optional[str] = None
    url: Optional[str] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"sha": self.sha}
        for key in ("message", "branch", "url", "timestamp"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "CommitMetadata":
        if not isinstance(data, dict):
            raise ValueError("metadata.commit: expected object")
        sha = data.get("sha")
        if not isinstance(sha, str) or not sha:
            raise ValueError("metadata.commit.sha: must be a non-empty string")
        values = {}
        for key in ("message", "branch", "url", "timestamp"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"metadata.commit.{key}: expected string")
            values[key] = value
        return cls(sha=sha, **values)


@dataclass(frozen=True)
class GithubMetadata:
    issue_number: int
    issue_url: str
    repo: str
    state: Optional[str] = None  # last synced state: "open" / "closed"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"issueNumber": self.issue_number, "issueUrl": self.issue_url, "repo": self.repo}
        if self.state is not None:
            data["state"] = self.state
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "GithubMetadata":
        if not isinstance(data, dict):
            raise ValueError("metadata.github: expected object")
        number = data.get("issueNumber")
        if isinstance(number, bool) or not isinstance(number, int) or number <= 0:
            raise ValueError("metadata.github.issueNumber: expected positive integer")
        url = data.get("issueUrl")
        repo = data.get("repo")
        if not isinstance(url, str) or not url:
            raise ValueError("metadata.github.issueUrl: expected URL string")
        if not isinstance(repo, str) or not repo:
            raise ValueError("metadata.github.repo: expected owner/repo string")
        state = data.get("state")
        if state is not None and state not in ("open", "closed"):
            raise ValueError(f"metadata.github.state: invalid value {state!r}")
        return cls(issue_number=number, issue_url=url, repo=repo, state=state)


@dataclass(frozen=True)
class TaskMetadata:
    commit: Optional[CommitMetadata] = None
    github: Optional[GithubMetadata] = None

    def is_empty(self) -> bool:
        return self.commit is None and self.github is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.commit is not None:
            data["commit"] = self.commit.to_dict()
        if self.github is not None:
            data["github"] = self.github.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TaskMetadata"]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValueError("metadata: expected object or null")
        commit = CommitMetadata.from_dict(data["commit"]) if data.get("commit") is not None else None
        github = GithubMetadata.from_dict(data["github"]) if data.get("github") is not None else None
        meta = cls(commit=commit, github=github)
        return None if meta.is_empty() else meta


@dataclass
class Task:
    id: str
    description: str
    context: str = ""
    parent_id: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    completed: bool = False
    result: Optional[str] = None
    metadata: Optional[TaskMetadata] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: Optional[str] = None
    blocked_by: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "description": self.description,
            "context": self.context,
            "priority": self.priority,
            "completed": self.completed,
            "result": self.result,
            "metadata": self.metadata.to_dict() if self.metadata and not self.metadata.is_empty() else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "blockedBy": list(self.blocked_by),
            "blocks": list(self.blocks),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Task":
        if not isinstance(data, dict):
            raise ValueError("task record must be a JSON object")
        data = _migrate_legacy_fields(data)
        priority = data.get("priority", DEFAULT_PRIORITY)
        if isinstance(priority, bool) or not isinstance(priority, int) or not 0 <= priority <= MAX_PRIORITY:
            raise ValueError(f"priority: expected integer in [0, {MAX_PRIORITY}]")
        completed = data.get("completed", False)
        if not isinstance(completed, bool):
            raise ValueError("completed: expected boolean")
        parent_id = data.get("parent_id")
        if parent_id is not None and (not isinstance(parent_id, str) or not parent_id):
            raise ValueError("parent_id: expected non-empty string or null")
        return cls(
            id=_require_str(data, "id", allow_empty=False),
            description=_require_str(data, "description", allow_empty=False),
            context=_require_str({"context": data.get("context") or ""}, "context"),
            parent_id=parent_id,
            priority=priority,
            completed=completed,
            result=_optional_str(data, "result"),
            metadata=TaskMetadata.from_dict(data.get("metadata")),
            created_at=_timestamp(data, "created_at"),
            updated_at=_timestamp(data, "updated_at"),
            completed_at=_timestamp(data, "completed_at", required=False),
            blocked_by=_id_list(data, "blockedBy"),
            blocks=_id_list(data, "blocks"),
        )


def _migrate_legacy_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map older record shapes onto the current one without mutating the input."""
    out = dict(data)
    if "status" in out and "completed" not in out:
        out["completed"] = out.get("status") == "completed"
    out.pop("status", None)
    if "name" in out and "context" not in out:
        # {name: title, description: body} shape
        out["context"] = out.get("description") or ""
        out["description"] = out.pop("name")
    out.pop("children", None)
    return out
