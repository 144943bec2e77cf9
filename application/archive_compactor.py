"""Compaction of completed task subtrees into archive records.

Pure functions over task lists: nothing here touches the filesystem.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set

from core import ArchivedChild, ArchivedTask, Task, now_iso, parse_timestamp
from core import task_relationships as rel
from core.archived_task import archive_safe_metadata

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class CollectedArchiveTasks:
    root: Task
    descendants: List[Task] = field(default_factory=list)

    @property
    def all_tasks(self) -> List[Task]:
        return [self.root] + self.descendants


@dataclass
class ArchiveCheck:
    """Outcome of the archival preconditions for one task.

    `reason` is one of not_found, not_completed, incomplete_descendants or
    incomplete_ancestors; `task_ids` lists the offending tasks.
    """

    task_id: str
    ok: bool
    reason: Optional[str] = None
    task_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AutoArchivePolicy:
    min_age_days: int = 90
    keep_recent_count: int = 50


DEFAULT_AUTO_ARCHIVE_POLICY = AutoArchivePolicy()


def check_archivable(task_id: str, tasks: Sequence[Task]) -> ArchiveCheck:
    tasks = list(tasks)
    root = rel.index_tasks(tasks).get(task_id)
    if root is None:
        return ArchiveCheck(task_id, False, "not_found")
    if not root.completed:
        return ArchiveCheck(task_id, False, "not_completed", [task_id])
    incomplete = rel.find_incomplete_descendants(tasks, task_id)
    if incomplete:
        return ArchiveCheck(task_id, False, "incomplete_descendants", sorted(t.id for t in incomplete))
    active = rel.find_active_ancestors(tasks, task_id)
    if active:
        return ArchiveCheck(task_id, False, "incomplete_ancestors", [t.id for t in active])
    return ArchiveCheck(task_id, True)


def collect_archivable_tasks(task_id: str, tasks: Sequence[Task]) -> Optional[CollectedArchiveTasks]:
    """Root plus its full descendant set, or None when any precondition fails."""
    tasks = list(tasks)
    if not check_archivable(task_id, tasks).ok:
        return None
    root = rel.index_tasks(tasks)[task_id]
    descendants = [entry.task for entry in rel.collect_descendants_ordered(tasks, task_id)]
    return CollectedArchiveTasks(root=root, descendants=descendants)


def compact_task(
    task: Task,
    direct_children: Iterable[Task] = (),
    archived_at: Optional[str] = None,
) -> ArchivedTask:
    children = [
        ArchivedChild(id=child.id, name=child.description, description=child.context, result=child.result)
        for child in direct_children
    ]
    return ArchivedTask(
        id=task.id,
        parent_id=task.parent_id,
        name=task.description,
        description=task.context,
        result=task.result,
        completed_at=task.completed_at,
        archived_at=archived_at or now_iso(),
        metadata=archive_safe_metadata(task.metadata),
        archived_children=children,
    )


def compact_collection(collected: CollectedArchiveTasks, archived_at: Optional[str] = None) -> List[ArchivedTask]:
    """One record per former active task, root first; each rolls up only its direct children."""
    stamp = archived_at or now_iso()
    members = collected.all_tasks
    by_parent: Dict[str, List[Task]] = {}
    for task in collected.descendants:
        by_parent.setdefault(task.parent_id, []).append(task)
    return [compact_task(task, by_parent.get(task.id, []), stamp) for task in members]


def _age_days(completed_at: str, now: datetime) -> float:
    return (now - parse_timestamp(completed_at)).total_seconds() / SECONDS_PER_DAY


def _recent_root_ids(tasks: Sequence[Task], keep: int) -> Set[str]:
    if keep <= 0:
        return set()
    completed_roots = [t for t in tasks if t.parent_id is None and t.completed and t.completed_at]
    completed_roots.sort(key=lambda t: parse_timestamp(t.completed_at), reverse=True)
    return {t.id for t in completed_roots[:keep]}


def can_auto_archive(
    task: Task,
    tasks: Sequence[Task],
    policy: AutoArchivePolicy = DEFAULT_AUTO_ARCHIVE_POLICY,
    now: Optional[datetime] = None,
) -> bool:
    if task.parent_id is not None or not task.completed or not task.completed_at:
        return False
    now = now or datetime.now(timezone.utc)
    if _age_days(task.completed_at, now) < policy.min_age_days:
        return False
    if task.id in _recent_root_ids(tasks, policy.keep_recent_count):
        return False
    return collect_archivable_tasks(task.id, tasks) is not None


def find_auto_archivable_tasks(
    tasks: Sequence[Task],
    policy: AutoArchivePolicy = DEFAULT_AUTO_ARCHIVE_POLICY,
    now: Optional[datetime] = None,
) -> List[Task]:
    tasks = list(tasks)
    now = now or datetime.now(timezone.utc)
    recent = _recent_root_ids(tasks, policy.keep_recent_count)
    eligible: List[Task] = []
    for task in tasks:
        if task.parent_id is not None or task.id in recent:
            continue
        if can_auto_archive(task, tasks, AutoArchivePolicy(policy.min_age_days, 0), now):
            eligible.append(task)
    return eligible
