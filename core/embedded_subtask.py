"""Transient views used by the issue-body Markdown protocol."""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Union

from .task import DEFAULT_PRIORITY, CommitMetadata, Task, TaskMetadata, now_iso


@dataclass
class EmbeddedSubtask:
    """A subtask living inside an issue body, keyed by a compound id like `9-1`."""

    id: str
    description: str
    context: str = ""
    priority: int = DEFAULT_PRIORITY
    completed: bool = False
    result: Optional[str] = None
    metadata: Optional[TaskMetadata] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    completed_at: Optional[str] = None

    def to_task(self, parent_id: Optional[str]) -> Task:
        completed_at = self.completed_at
        if self.completed and not completed_at:
            completed_at = self.updated_at
        if not self.completed:
            completed_at = None
        return Task(
            id=self.id,
            description=self.description,
            context=self.context,
            parent_id=parent_id,
            priority=self.priority,
            completed=self.completed,
            result=self.result,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=completed_at,
        )

    @classmethod
    def from_task(cls, task: Task) -> "EmbeddedSubtask":
        commit = task.metadata.commit if task.metadata else None
        return cls(
            id=task.id,
            description=task.description,
            context=task.context,
            priority=task.priority,
            completed=task.completed,
            result=task.result,
            metadata=TaskMetadata(commit=commit) if commit else None,
            created_at=task.created_at,
            updated_at=task.updated_at,
            completed_at=task.completed_at,
        )


@dataclass
class HierarchicalTask:
    task: Union[Task, EmbeddedSubtask]
    depth: int  # 0 = direct child of the root
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class ParsedSubtaskId:
    parent_id: str
    local_index: int


@dataclass
class ParsedIssueBody:
    context: str
    subtasks: List[EmbeddedSubtask] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ParsedHierarchicalIssueBody:
    context: str
    entries: List[HierarchicalTask] = field(default_factory=list)
    skipped: int = 0

    @property
    def subtasks(self) -> List[EmbeddedSubtask]:
        return [entry.task for entry in self.entries]


@dataclass
class RootTaskMetadata:
    """Fields of the hosting task carried as `dex:task:` comments."""

    id: Optional[str] = None
    priority: Optional[int] = None
    completed: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None
    result: Optional[str] = None
    commit: Optional[CommitMetadata] = None

    def apply_to(self, task: Task) -> Task:
        """Return a copy of `task` with every field present here applied."""
        changes = {}
        for key in ("priority", "completed", "created_at", "updated_at", "completed_at", "result"):
            value = getattr(self, key)
            if value is not None:
                changes[key] = value
        if self.commit is not None:
            github = task.metadata.github if task.metadata else None
            changes["metadata"] = TaskMetadata(commit=self.commit, github=github)
        return replace(task, **changes)
