import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from config import ArchiveConfig
from core import ArchivedTask, TaskGraph
from infrastructure.archive_store import ArchiveStore

from .archive_compactor import (
    AutoArchivePolicy,
    collect_archivable_tasks,
    compact_collection,
    find_auto_archivable_tasks,
)
from .ports import TaskStorage

ARCHIVE_LOG_NAME = "archive.log"
DEFAULT_ARCHIVE_CONFIG = ArchiveConfig()

logger = logging.getLogger("dex.archive")


@dataclass
class AutoArchiveResult:
    archived_count: int = 0
    archived_ids: List[str] = field(default_factory=list)


def _timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def perform_auto_archive(
    graph: TaskGraph,
    storage_path: Union[str, Path],
    config: Optional[ArchiveConfig] = None,
    now: Optional[datetime] = None,
) -> AutoArchiveResult:
    """Move old completed root trees from `graph` into the archive store.

    The graph is mutated in place; the caller persists it. Nothing is
    written unless every selected tree compacted successfully.
    """
    config = config or DEFAULT_ARCHIVE_CONFIG
    if not config.auto:
        return AutoArchiveResult()

    now = now or datetime.now(timezone.utc)
    stamp = _timestamp(now)
    tasks = graph.tasks
    policy = AutoArchivePolicy(min_age_days=config.age_days, keep_recent_count=config.keep_recent)

    records: List[ArchivedTask] = []
    roots = []
    removed_ids = set()
    for candidate in find_auto_archivable_tasks(tasks, policy, now):
        collected = collect_archivable_tasks(candidate.id, tasks)
        if collected is None:
            continue
        records.extend(compact_collection(collected, stamp))
        removed_ids.update(task.id for task in collected.all_tasks)
        roots.append(collected.root)

    if not records:
        return AutoArchiveResult()

    storage_path = Path(storage_path)
    ArchiveStore(storage_path).append(records)
    graph.remove(removed_ids)

    _write_audit_log(storage_path, [f"{stamp} AUTO-ARCHIVED {root.id}: {root.description}" for root in roots])
    archived_ids = [root.id for root in roots]
    logger.info("Auto-archived %d root task(s): %s", len(archived_ids), ", ".join(archived_ids))
    return AutoArchiveResult(archived_count=len(archived_ids), archived_ids=archived_ids)


def _write_audit_log(storage_path: Path, lines: List[str]) -> None:
    path = storage_path / ARCHIVE_LOG_NAME
    try:
        with open(path, "a", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")
    except OSError as exc:
        logger.warning("Could not append to %s: %s", path, exc)


def save_with_auto_archive(
    task_store: TaskStorage,
    graph: TaskGraph,
    config: Optional[ArchiveConfig] = None,
    now: Optional[datetime] = None,
) -> AutoArchiveResult:
    """Run auto-archive on `graph` and persist the result with a single write."""
    result = perform_auto_archive(graph, task_store.identifier(), config, now)
    task_store.write(graph)
    return result
