import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from core import ArchivedTask, ArchiveValidationError, Task, TaskGraph, ValidationError, now_iso, parse_timestamp
from core import task_relationships as rel
from infrastructure.archive_store import ArchiveStore

from .archive_compactor import CollectedArchiveTasks, check_archivable, collect_archivable_tasks, compact_collection
from .ports import TaskStorage

logger = logging.getLogger("dex.archive")

_DURATION_RE = re.compile(r"^(\d+)([dwm])$")
_DAYS_PER_UNIT = {"d": 1, "w": 7, "m": 30}


def parse_duration(value: str) -> timedelta:
    """`30d`, `12w` or `6m` (a month counts as 30 days)."""
    match = _DURATION_RE.match((value or "").strip())
    if not match:
        raise ValidationError(
            f"Invalid duration format: {value}",
            "Expected format: 30d (days), 12w (weeks), 6m (months)",
        )
    return timedelta(days=int(match.group(1)) * _DAYS_PER_UNIT[match.group(2)])


def _json_size(records: Iterable[dict]) -> int:
    return len(json.dumps(list(records), ensure_ascii=False, separators=(",", ":")))


@dataclass
class ArchiveResult:
    archived_tasks: List[ArchivedTask] = field(default_factory=list)
    root_ids: List[str] = field(default_factory=list)
    original_size: int = 0
    archived_size: int = 0
    dry_run: bool = False

    @property
    def root_count(self) -> int:
        return len(self.root_ids)

    @property
    def total_count(self) -> int:
        return len(self.archived_tasks)

    @property
    def reduction_percent(self) -> int:
        if not self.original_size:
            return 0
        return round((1 - self.archived_size / self.original_size) * 100)


class ArchiveService:
    """Manual archival of completed task trees into the archive store."""

    def __init__(self, task_store: TaskStorage, archive_store: ArchiveStore) -> None:
        self.task_store = task_store
        self.archive_store = archive_store

    def archive(self, task_id: str) -> ArchiveResult:
        graph = self.task_store.read()
        tasks = graph.tasks
        check = check_archivable(task_id, tasks)
        if not check.ok:
            raise ArchiveValidationError(check)
        collected = collect_archivable_tasks(task_id, tasks)
        return self._commit(graph, [collected], dry_run=False)

    def bulk_archive(
        self,
        older_than: Optional[str] = None,
        all_completed: bool = False,
        except_ids: Iterable[str] = (),
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> ArchiveResult:
        if not older_than and not all_completed:
            raise ValidationError("Nothing selected", "Pass older_than or all_completed=True")
        cutoff = None
        if older_than:
            cutoff = (now or datetime.now(timezone.utc)) - parse_duration(older_than)
        excluded = set(except_ids)
        graph = self.task_store.read()
        tasks = graph.tasks

        def selected(task: Task) -> bool:
            if task.id in excluded or not task.completed:
                return False
            # archiving a tree takes its whole subtree along
            if excluded & rel.collect_descendant_ids(tasks, task.id):
                return False
            if cutoff is not None:
                if task.completed_at:
                    if parse_timestamp(task.completed_at) > cutoff:
                        return False
                elif not all_completed:
                    return False
            return collect_archivable_tasks(task.id, tasks) is not None

        collections: List[CollectedArchiveTasks] = []
        for task in tasks:
            if not selected(task):
                continue
            if any(selected(ancestor) for ancestor in rel.collect_ancestors(tasks, task.id)):
                continue
            collections.append(collect_archivable_tasks(task.id, tasks))
        return self._commit(graph, collections, dry_run)

    def list_archived(self, query: Optional[str] = None) -> List[ArchivedTask]:
        if query:
            return self.archive_store.search(query)
        return self.archive_store.read()

    def get_with_archive(self, task_id: str) -> Optional[Union[Task, ArchivedTask]]:
        """Active task when present, otherwise its archive record."""
        task = self.task_store.read().get(task_id)
        if task is not None:
            return task
        return self.archive_store.get(task_id)

    def _commit(self, graph: TaskGraph, collections: List[CollectedArchiveTasks], dry_run: bool) -> ArchiveResult:
        stamp = now_iso()
        records: List[ArchivedTask] = []
        originals: List[Task] = []
        seen = set()
        for collected in collections:
            fresh = [t for t in collected.all_tasks if t.id not in seen]
            seen.update(t.id for t in fresh)
            keep = {t.id for t in fresh}
            records.extend(r for r in compact_collection(collected, stamp) if r.id in keep)
            originals.extend(fresh)
        result = ArchiveResult(
            archived_tasks=records,
            root_ids=[c.root.id for c in collections],
            original_size=_json_size(t.to_dict() for t in originals),
            archived_size=_json_size(r.to_dict() for r in records),
            dry_run=dry_run,
        )
        if dry_run or not records:
            return result
        self.archive_store.append(records)
        graph.remove(t.id for t in originals)
        self.task_store.write(graph)
        logger.info(
            "Archived %d task(s) under %d root(s): %s",
            result.total_count,
            result.root_count,
            ", ".join(result.root_ids),
        )
        return result
