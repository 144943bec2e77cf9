import copy
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .errors import NotFoundError, ValidationError
from .task import Task, now_iso
from . import task_relationships as rel

MAX_DEPTH = 3  # epic -> task -> subtask

logger = logging.getLogger("dex.graph")


class TaskGraph:
    """Arena of tasks keyed by id.

    Parent links are back-references (`parent_id`); children are derived on
    demand. Every deletion path prunes references over the remaining set.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, Task] = {}

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "TaskGraph":
        graph = cls()
        for task in tasks:
            if task.id in graph._tasks:
                raise ValidationError(f"Duplicate task id {task.id}")
            graph._tasks[task.id] = task
        graph._check_parent_cycles()
        graph._repair_references()
        return graph

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self):
        return iter(self.tasks)

    @property
    def tasks(self) -> List[Task]:
        return [self._tasks[tid] for tid in sorted(self._tasks)]

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def children_of(self, task_id: str) -> List[Task]:
        return sorted(rel.children_of(self._tasks.values(), task_id), key=lambda t: (t.priority, t.id))

    def roots(self) -> List[Task]:
        return [task for task in self.tasks if task.parent_id is None]

    def descendants_of(self, task_id: str) -> List[Task]:
        return [entry.task for entry in rel.collect_descendants_ordered(self.tasks, task_id)]

    def ancestors_of(self, task_id: str) -> List[Task]:
        return rel.collect_ancestors(self.tasks, task_id)

    # -- mutations -------------------------------------------------------

    @contextmanager
    def transaction(self):
        """Undo every mutation made inside the block when it raises."""
        saved = copy.deepcopy(self._tasks)
        try:
            yield self
        except Exception:
            self._tasks = saved
            raise

    def add(self, task: Task) -> Task:
        if task.id in self._tasks:
            raise ValidationError(f"Task {task.id} already exists")
        if task.parent_id is not None:
            self._check_depth(task.parent_id, task.id)
        blocked_by, blocks = list(task.blocked_by), list(task.blocks)
        task.blocked_by, task.blocks = [], []
        self._tasks[task.id] = task
        try:
            for blocker_id in blocked_by:
                self.add_blocker(blocker_id, task.id)
            for blocked_id in blocks:
                self.add_blocker(task.id, blocked_id)
        except Exception:
            self._tasks.pop(task.id)
            rel.cleanup_task_references(self._tasks.values(), [task.id])
            raise
        return task

    def upsert(self, task: Task) -> Task:
        """Insert or replace by id, keeping blocking edges of a replaced task."""
        existing = self._tasks.get(task.id)
        if existing is None:
            return self.add(task)
        if task.parent_id is not None and task.parent_id != existing.parent_id:
            self._check_reparent(task.id, task.parent_id)
        merged = replace(task, blocked_by=list(existing.blocked_by), blocks=list(existing.blocks))
        self._tasks[task.id] = merged
        return merged

    def set_parent(self, task_id: str, parent_id: Optional[str]) -> Task:
        task = self.require(task_id)
        if parent_id is not None:
            self._check_reparent(task_id, parent_id)
        task.parent_id = parent_id
        task.updated_at = now_iso()
        return task

    def add_blocker(self, blocker_id: str, blocked_id: str) -> None:
        if blocker_id == blocked_id:
            raise ValidationError(f"Task {blocked_id} cannot block itself")
        blocker = self._tasks.get(blocker_id)
        if blocker is None:
            raise NotFoundError("Task", blocker_id, "The specified blocker task does not exist")
        blocked = self.require(blocked_id)
        if rel.would_create_blocking_cycle(self.tasks, blocker_id, blocked_id):
            raise ValidationError(f"Blocking {blocked_id} by {blocker_id} would create a cycle")
        if blocked_id not in blocker.blocks:
            blocker.blocks.append(blocked_id)
        if blocker_id not in blocked.blocked_by:
            blocked.blocked_by.append(blocker_id)

    def remove_blocker(self, blocker_id: str, blocked_id: str) -> None:
        blocker = self._tasks.get(blocker_id)
        if blocker is not None and blocked_id in blocker.blocks:
            blocker.blocks.remove(blocked_id)
        blocked = self._tasks.get(blocked_id)
        if blocked is not None and blocker_id in blocked.blocked_by:
            blocked.blocked_by.remove(blocker_id)

    def complete(self, task_id: str, result: Optional[str] = None) -> Task:
        task = self.require(task_id)
        stamp = now_iso()
        task.completed = True
        task.completed_at = task.completed_at or stamp
        if result is not None:
            task.result = result
        task.updated_at = stamp
        return task

    def reopen(self, task_id: str) -> Task:
        task = self.require(task_id)
        task.completed = False
        task.completed_at = None
        task.updated_at = now_iso()
        return task

    def remove(self, task_ids: Iterable[str], cascade: bool = False) -> List[Task]:
        ids = set(task_ids)
        for tid in ids:
            self.require(tid)
        if cascade:
            for tid in list(ids):
                rel.collect_descendant_ids(self.tasks, tid, ids)
        else:
            orphans = [t.id for t in self._tasks.values() if t.parent_id in ids and t.id not in ids]
            if orphans:
                raise ValidationError(
                    f"Removing {', '.join(sorted(ids))} would orphan {', '.join(sorted(orphans))}",
                    "Remove the subtasks too or pass cascade=True",
                )
        removed = [self._tasks.pop(tid) for tid in sorted(ids)]
        rel.cleanup_task_references(self._tasks.values(), ids)
        return removed

    # -- invariants ------------------------------------------------------

    def _check_depth(self, parent_id: str, child_id: str) -> None:
        if parent_id not in self._tasks:
            raise NotFoundError("Task", parent_id, "The specified parent task does not exist")
        depth = rel.get_depth_from_parent(self.tasks, parent_id)
        below = rel.get_max_descendant_depth(self.tasks, child_id) if child_id in self._tasks else 0
        if depth + below >= MAX_DEPTH:
            raise ValidationError(
                f"Cannot nest {child_id} under {parent_id}: maximum depth is {MAX_DEPTH} levels",
            )

    def _check_reparent(self, task_id: str, parent_id: str) -> None:
        if parent_id == task_id:
            raise ValidationError(f"Task {task_id} cannot be its own parent")
        if parent_id in self._tasks and rel.is_descendant(self.tasks, parent_id, task_id):
            raise ValidationError(f"Cannot move {task_id} under its own descendant {parent_id}")
        self._check_depth(parent_id, task_id)

    def _check_parent_cycles(self) -> None:
        for task in self._tasks.values():
            seen = {task.id}
            current = task
            while current.parent_id is not None and current.parent_id in self._tasks:
                if current.parent_id in seen:
                    raise ValidationError(f"Task {task.id} is its own ancestor")
                seen.add(current.parent_id)
                current = self._tasks[current.parent_id]

    def _repair_references(self) -> None:
        for task in self._tasks.values():
            if task.parent_id is not None and task.parent_id not in self._tasks:
                logger.warning("Task %s referenced missing parent %s; cleared", task.id, task.parent_id)
                task.parent_id = None
            dangling = [tid for tid in task.blocked_by + task.blocks if tid not in self._tasks]
            if dangling:
                logger.warning("Task %s referenced missing tasks %s; pruned", task.id, ", ".join(dangling))
                task.blocked_by = [tid for tid in task.blocked_by if tid in self._tasks]
                task.blocks = [tid for tid in task.blocks if tid in self._tasks]
        for task in self._tasks.values():
            for blocked_id in task.blocks:
                other = self._tasks[blocked_id]
                if task.id not in other.blocked_by:
                    logger.warning("Mirrored blocking edge %s -> %s", task.id, blocked_id)
                    other.blocked_by.append(task.id)
            for blocker_id in task.blocked_by:
                other = self._tasks[blocker_id]
                if task.id not in other.blocks:
                    logger.warning("Mirrored blocking edge %s -> %s", blocker_id, task.id)
                    other.blocks.append(task.id)
