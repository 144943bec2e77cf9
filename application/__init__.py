from .archive_compactor import (
    ArchiveCheck,
    AutoArchivePolicy,
    CollectedArchiveTasks,
    can_auto_archive,
    check_archivable,
    collect_archivable_tasks,
    compact_collection,
    compact_task,
    find_auto_archivable_tasks,
)
from .archive_service import ArchiveResult, ArchiveService, parse_duration
from .auto_archive import AutoArchiveResult, perform_auto_archive, save_with_auto_archive
from .issue_sync import ImportResult, IssueSyncService, SyncResult, import_issue, render_task_issue_body
from .ports import IssueGateway, TaskStorage

__all__ = [
    "ArchiveCheck",
    "AutoArchivePolicy",
    "CollectedArchiveTasks",
    "can_auto_archive",
    "check_archivable",
    "collect_archivable_tasks",
    "compact_collection",
    "compact_task",
    "find_auto_archivable_tasks",
    "ArchiveResult",
    "ArchiveService",
    "parse_duration",
    "AutoArchiveResult",
    "perform_auto_archive",
    "save_with_auto_archive",
    "ImportResult",
    "IssueSyncService",
    "SyncResult",
    "import_issue",
    "render_task_issue_body",
    "IssueGateway",
    "TaskStorage",
]
