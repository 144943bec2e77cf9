from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .task import CommitMetadata, GithubMetadata, TaskMetadata, _optional_str, _require_str, _timestamp


@dataclass(frozen=True)
class ArchivedChild:
    """Minimal summary of a direct child kept inside its parent's archive record."""

    id: str
    name: str
    description: str = ""
    result: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description, "result": self.result}

    @classmethod
    def from_dict(cls, data: Any) -> "ArchivedChild":
        if not isinstance(data, dict):
            raise ValueError("archived_children[]: expected object")
        return cls(
            id=_require_str(data, "id", allow_empty=False),
            name=_require_str(data, "name", allow_empty=False),
            description=_require_str({"description": data.get("description") or ""}, "description"),
            result=_optional_str(data, "result"),
        )


@dataclass(frozen=True)
class ArchivedTask:
    """Compacted, immutable projection of a completed task.

    Priority, blocking edges and created/updated timestamps are dropped;
    metadata keeps only the commit and GitHub references.
    """

    id: str
    name: str
    archived_at: str
    parent_id: Optional[str] = None
    description: str = ""
    result: Optional[str] = None
    completed_at: Optional[str] = None
    metadata: Optional[TaskMetadata] = None
    archived_children: List[ArchivedChild] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "description": self.description,
            "result": self.result,
            "completed_at": self.completed_at,
            "archived_at": self.archived_at,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "archived_children": [child.to_dict() for child in self.archived_children],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ArchivedTask":
        if not isinstance(data, dict):
            raise ValueError("archived task record must be a JSON object")
        parent_id = data.get("parent_id")
        if parent_id is not None and (not isinstance(parent_id, str) or not parent_id):
            raise ValueError("parent_id: expected non-empty string or null")
        children = data.get("archived_children") or []
        if not isinstance(children, list):
            raise ValueError("archived_children: expected list")
        return cls(
            id=_require_str(data, "id", allow_empty=False),
            name=_require_str(data, "name", allow_empty=False),
            archived_at=_timestamp(data, "archived_at"),
            parent_id=parent_id,
            description=_require_str({"description": data.get("description") or ""}, "description"),
            result=_optional_str(data, "result"),
            completed_at=_timestamp(data, "completed_at", required=False),
            metadata=TaskMetadata.from_dict(data.get("metadata")),
            archived_children=[ArchivedChild.from_dict(child) for child in children],
        )


def archive_safe_metadata(metadata: Optional[TaskMetadata]) -> Optional[TaskMetadata]:
    if metadata is None:
        return None
    commit: Optional[CommitMetadata] = metadata.commit
    github: Optional[GithubMetadata] = metadata.github
    if commit is None and github is None:
        return None
    return TaskMetadata(commit=commit, github=github)
