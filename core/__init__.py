from .task import (
    CommitMetadata,
    GithubMetadata,
    Task,
    TaskMetadata,
    generate_task_id,
    now_iso,
    parse_timestamp,
)
from .archived_task import ArchivedChild, ArchivedTask
from .embedded_subtask import (
    EmbeddedSubtask,
    HierarchicalTask,
    ParsedHierarchicalIssueBody,
    ParsedIssueBody,
    ParsedSubtaskId,
    RootTaskMetadata,
)
from .errors import (
    ArchiveValidationError,
    ConfigError,
    DataCorruptionError,
    DexError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .task_graph import MAX_DEPTH, TaskGraph

__all__ = [
    "CommitMetadata",
    "GithubMetadata",
    "Task",
    "TaskMetadata",
    "generate_task_id",
    "now_iso",
    "parse_timestamp",
    # Archive
    "ArchivedChild",
    "ArchivedTask",
    # Markdown protocol views
    "EmbeddedSubtask",
    "HierarchicalTask",
    "ParsedHierarchicalIssueBody",
    "ParsedIssueBody",
    "ParsedSubtaskId",
    "RootTaskMetadata",
    # Errors
    "ArchiveValidationError",
    "ConfigError",
    "DataCorruptionError",
    "DexError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Graph
    "MAX_DEPTH",
    "TaskGraph",
]
