from datetime import datetime, timedelta, timezone

from application.archive_compactor import (
    AutoArchivePolicy,
    can_auto_archive,
    check_archivable,
    collect_archivable_tasks,
    compact_collection,
    compact_task,
    find_auto_archivable_tasks,
)
from core import CommitMetadata, GithubMetadata, Task, TaskMetadata

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _ago(days):
    return (NOW - timedelta(days=days)).isoformat().replace("+00:00", "Z")


def _task(task_id, parent_id=None, completed=True, days_ago=100, **kwargs):
    return Task(
        id=task_id,
        description=f"Task {task_id}",
        context=f"ctx {task_id}",
        parent_id=parent_id,
        completed=completed,
        completed_at=_ago(days_ago) if completed else None,
        **kwargs,
    )


def test_collect_returns_root_and_all_descendants():
    tasks = [_task("r"), _task("c", "r"), _task("g", "c"), _task("x")]

    collected = collect_archivable_tasks("r", tasks)

    assert collected.root.id == "r"
    assert [t.id for t in collected.descendants] == ["c", "g"]


def test_collect_fails_for_incomplete_root_or_descendant():
    assert collect_archivable_tasks("missing", [_task("r")]) is None
    assert collect_archivable_tasks("r", [_task("r", completed=False)]) is None
    assert collect_archivable_tasks("r", [_task("r"), _task("c", "r", completed=False)]) is None


def test_collect_fails_with_incomplete_ancestor():
    tasks = [_task("top", completed=False), _task("mid", "top"), _task("leaf", "mid")]

    assert collect_archivable_tasks("mid", tasks) is None
    check = check_archivable("mid", tasks)
    assert not check.ok
    assert check.reason == "incomplete_ancestors"
    assert check.task_ids == ["top"]


def test_check_archivable_reports_reasons():
    tasks = [_task("r"), _task("c", "r", completed=False), _task("open", completed=False)]

    assert check_archivable("nope", tasks).reason == "not_found"
    assert check_archivable("open", tasks).reason == "not_completed"
    check = check_archivable("r", tasks)
    assert check.reason == "incomplete_descendants"
    assert check.task_ids == ["c"]
    assert check_archivable("c", [_task("r"), _task("c", "r")]).ok


def test_compact_task_projects_fields_and_keeps_safe_metadata():
    github = GithubMetadata(issue_number=3, issue_url="https://github.com/o/r/issues/3", repo="o/r")
    task = _task(
        "r",
        priority=5,
        result="done",
        metadata=TaskMetadata(commit=CommitMetadata(sha="abc"), github=github),
        blocks=["z"],
    )
    child = _task("c", "r", result="child done")

    archived = compact_task(task, [child], archived_at="2024-06-01T00:00:00.000Z")

    assert archived.name == "Task r"
    assert archived.description == "ctx r"
    assert archived.result == "done"
    assert archived.metadata.github == github
    assert archived.metadata.commit.sha == "abc"
    assert archived.archived_at == "2024-06-01T00:00:00.000Z"
    assert [(c.id, c.name, c.description, c.result) for c in archived.archived_children] == [
        ("c", "Task c", "ctx c", "child done")
    ]
    assert "priority" not in archived.to_dict()
    assert compact_task(task, [child], "2024-06-01T00:00:00.000Z") == archived


def test_compact_collection_rolls_up_one_level_per_record():
    tasks = [_task("r"), _task("c", "r"), _task("g", "c")]

    records = compact_collection(collect_archivable_tasks("r", tasks), "2024-06-01T00:00:00.000Z")

    assert [r.id for r in records] == ["r", "c", "g"]
    assert [c.id for c in records[0].archived_children] == ["c"]
    assert [c.id for c in records[1].archived_children] == ["g"]
    assert records[2].archived_children == []
    assert {r.archived_at for r in records} == {"2024-06-01T00:00:00.000Z"}


def test_can_auto_archive_respects_age_and_root_only():
    policy = AutoArchivePolicy(min_age_days=90, keep_recent_count=0)
    old = _task("old", days_ago=120)
    fresh = _task("fresh", days_ago=10)
    child = _task("child", "old", days_ago=120)
    tasks = [old, fresh, child]

    assert can_auto_archive(old, tasks, policy, NOW)
    assert not can_auto_archive(fresh, tasks, policy, NOW)
    assert not can_auto_archive(child, tasks, policy, NOW)


def test_can_auto_archive_needs_completed_descendants():
    root = _task("r", days_ago=200)
    tasks = [root, _task("c", "r", completed=False)]

    assert not can_auto_archive(root, tasks, AutoArchivePolicy(90, 0), NOW)


def test_keep_recent_window_protects_newest_roots():
    tasks = [_task(f"t{i}", days_ago=100 + i) for i in range(5)]
    policy = AutoArchivePolicy(min_age_days=90, keep_recent_count=2)

    eligible = find_auto_archivable_tasks(tasks, policy, NOW)

    assert [t.id for t in eligible] == ["t2", "t3", "t4"]
    assert len(eligible) <= len(tasks) - policy.keep_recent_count


def test_find_auto_archivable_skips_subtasks_even_when_old():
    tasks = [_task("r", completed=False), _task("c", "r", days_ago=365)]

    assert find_auto_archivable_tasks(tasks, AutoArchivePolicy(90, 0), NOW) == []
