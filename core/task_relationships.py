"""Parent/child and blocking relationship helpers.

Pure domain logic: receives task lists as parameters, performs no I/O.
`children` is never stored; it is always derived from `parent_id`.
"""

from typing import Dict, Iterable, List, Optional, Set

from .embedded_subtask import HierarchicalTask
from .task import Task


def index_tasks(tasks: Iterable[Task]) -> Dict[str, Task]:
    return {task.id: task for task in tasks}


def children_of(tasks: Iterable[Task], parent_id: str) -> List[Task]:
    return [task for task in tasks if task.parent_id == parent_id]


def collect_descendant_ids(tasks: List[Task], parent_id: str, result: Optional[Set[str]] = None) -> Set[str]:
    """Collect every transitive descendant id of `parent_id` (cycle-safe)."""
    result = set() if result is None else result
    by_parent: Dict[str, List[str]] = {}
    for task in tasks:
        if task.parent_id is not None:
            by_parent.setdefault(task.parent_id, []).append(task.id)
    stack = [parent_id]
    while stack:
        current = stack.pop()
        for child_id in by_parent.get(current, []):
            if child_id in result or child_id == parent_id:
                continue
            result.add(child_id)
            stack.append(child_id)
    return result


def collect_descendants_ordered(tasks: List[Task], root_id: str) -> List[HierarchicalTask]:
    """Depth-first walk below `root_id`, siblings ordered by priority then id."""
    ordered: List[HierarchicalTask] = []
    seen: Set[str] = {root_id}

    def walk(parent_id: str, depth: int) -> None:
        children = sorted(children_of(tasks, parent_id), key=lambda t: (t.priority, t.id))
        for child in children:
            if child.id in seen:
                continue
            seen.add(child.id)
            ordered.append(HierarchicalTask(task=child, depth=depth, parent_id=parent_id))
            walk(child.id, depth + 1)

    walk(root_id, 0)
    return ordered


def collect_ancestors(tasks: List[Task], task_id: str) -> List[Task]:
    """Ancestors of `task_id` ordered from the root down to the immediate parent."""
    index = index_tasks(tasks)
    chain: List[Task] = []
    seen = {task_id}
    current = index.get(task_id)
    while current is not None and current.parent_id is not None:
        parent = index.get(current.parent_id)
        if parent is None or parent.id in seen:
            break
        seen.add(parent.id)
        chain.append(parent)
        current = parent
    chain.reverse()
    return chain


def find_incomplete_descendants(tasks: List[Task], task_id: str) -> List[Task]:
    ids = collect_descendant_ids(tasks, task_id)
    return [task for task in tasks if task.id in ids and not task.completed]


def find_active_ancestors(tasks: List[Task], task_id: str) -> List[Task]:
    return [task for task in collect_ancestors(tasks, task_id) if not task.completed]


def is_descendant(tasks: List[Task], potential_descendant: str, ancestor_id: str) -> bool:
    return any(task.id == ancestor_id for task in collect_ancestors(tasks, potential_descendant))


def get_depth_from_parent(tasks: List[Task], parent_id: str) -> int:
    """Depth a new child would have under `parent_id` (root children are depth 1)."""
    return len(collect_ancestors(tasks, parent_id)) + 1


def get_max_descendant_depth(tasks: List[Task], task_id: str) -> int:
    entries = collect_descendants_ordered(tasks, task_id)
    return max((entry.depth + 1 for entry in entries), default=0)


def cleanup_task_references(tasks: Iterable[Task], removed_ids: Iterable[str]) -> int:
    """Prune every reference to `removed_ids` from the remaining tasks.

    Returns the number of tasks that were modified.
    """
    removed = set(removed_ids)
    changed = 0
    for task in tasks:
        touched = False
        if task.parent_id in removed:
            task.parent_id = None
            touched = True
        if any(tid in removed for tid in task.blocked_by):
            task.blocked_by = [tid for tid in task.blocked_by if tid not in removed]
            touched = True
        if any(tid in removed for tid in task.blocks):
            task.blocks = [tid for tid in task.blocks if tid not in removed]
            touched = True
        if touched:
            changed += 1
    return changed


def would_create_blocking_cycle(tasks: List[Task], blocker_id: str, blocked_id: str) -> bool:
    """True if `blocked_id` already sits upstream of `blocker_id`.

    Walks both `blockedBy` and `blocks` so one-sided edges are still caught.
    """
    index = index_tasks(tasks)
    visited: Set[str] = set()
    stack = [blocker_id]
    while stack:
        current = stack.pop()
        if current == blocked_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        task = index.get(current)
        if task is not None:
            stack.extend(task.blocked_by)

    blocked = index.get(blocked_id)
    if blocked is None:
        return False
    visited = set()
    stack = list(blocked.blocks)
    while stack:
        current = stack.pop()
        if current == blocker_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        task = index.get(current)
        if task is not None:
            stack.extend(task.blocks)
    return False


def get_incomplete_blocker_ids(tasks: List[Task], task: Task) -> List[str]:
    index = index_tasks(tasks)
    return [bid for bid in task.blocked_by if bid in index and not index[bid].completed]


def is_blocked(tasks: List[Task], task: Task) -> bool:
    return bool(get_incomplete_blocker_ids(tasks, task))


def has_incomplete_children(tasks: List[Task], task: Task) -> bool:
    return any(not child.completed for child in children_of(tasks, task.id))


def is_ready(tasks: List[Task], task: Task) -> bool:
    """Pending, unblocked and with every child completed."""
    if task.completed:
        return False
    return not is_blocked(tasks, task) and not has_incomplete_children(tasks, task)
