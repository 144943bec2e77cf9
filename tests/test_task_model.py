import pytest

from core import (
    CommitMetadata,
    EmbeddedSubtask,
    GithubMetadata,
    Task,
    TaskMetadata,
    generate_task_id,
    now_iso,
    parse_timestamp,
)
from core.archived_task import ArchivedTask, archive_safe_metadata


def _record(**overrides):
    data = {
        "id": "abc123",
        "parent_id": None,
        "description": "Write docs",
        "context": "All of them",
        "priority": 2,
        "completed": False,
        "result": None,
        "metadata": None,
        "created_at": "2024-01-01T00:00:00.000Z",
        "updated_at": "2024-01-02T00:00:00.000Z",
        "completed_at": None,
        "blockedBy": [],
        "blocks": [],
    }
    data.update(overrides)
    return data


def test_task_dict_roundtrip_keeps_blocking_keys():
    data = _record(blockedBy=["x1"], blocks=["y2"])
    task = Task.from_dict(data)

    assert task.blocked_by == ["x1"]
    assert task.blocks == ["y2"]
    assert task.to_dict() == data


def test_task_from_dict_migrates_status_and_name_shape():
    data = _record(status="completed", completed_at="2024-01-03T00:00:00Z")
    data.pop("completed")
    data.pop("context")
    data["name"] = "Old title"
    data["description"] = "Old body"
    data["children"] = ["ignored"]

    task = Task.from_dict(data)

    assert task.completed is True
    assert task.description == "Old title"
    assert task.context == "Old body"
    assert "children" not in task.to_dict()


def test_task_from_dict_rejects_bad_priority_and_timestamp():
    with pytest.raises(ValueError):
        Task.from_dict(_record(priority=101))
    with pytest.raises(ValueError):
        Task.from_dict(_record(created_at="yesterday"))
    with pytest.raises(ValueError):
        Task.from_dict(_record(description=""))


def test_task_from_dict_treats_null_context_as_empty():
    assert Task.from_dict(_record(context=None)).context == ""


def test_metadata_roundtrip_and_empty_collapse():
    meta = TaskMetadata(
        commit=CommitMetadata(sha="deadbeef", message="fix"),
        github=GithubMetadata(issue_number=7, issue_url="https://github.com/o/r/issues/7", repo="o/r", state="open"),
    )
    data = meta.to_dict()

    assert data["github"]["issueNumber"] == 7
    assert TaskMetadata.from_dict(data) == meta
    assert TaskMetadata.from_dict({}) is None


def test_archive_safe_metadata_drops_empty():
    assert archive_safe_metadata(None) is None
    assert archive_safe_metadata(TaskMetadata()) is None
    commit = CommitMetadata(sha="abc")
    assert archive_safe_metadata(TaskMetadata(commit=commit)).commit == commit


def test_archived_task_roundtrip():
    data = {
        "id": "r1",
        "parent_id": None,
        "name": "Ship it",
        "description": "ctx",
        "result": "done",
        "completed_at": "2024-01-01T00:00:00.000Z",
        "archived_at": "2024-04-01T00:00:00.000Z",
        "metadata": None,
        "archived_children": [{"id": "c1", "name": "Child", "description": "", "result": None}],
    }

    assert ArchivedTask.from_dict(data).to_dict() == data


def test_generate_task_id_and_timestamps():
    task_id = generate_task_id()
    assert len(task_id) == 8
    assert task_id.isalnum() and task_id == task_id.lower()

    stamp = now_iso()
    assert stamp.endswith("Z")
    assert parse_timestamp(stamp).tzinfo is not None
    assert parse_timestamp("2024-01-01T00:00:00").tzinfo is not None


def test_embedded_subtask_from_task_keeps_fields_and_drops_github():
    commit = CommitMetadata(sha="abc", branch="main")
    task = Task(
        id="t1",
        description="Step",
        context="ctx",
        parent_id="root",
        priority=3,
        completed=True,
        completed_at="2024-01-02T00:00:00.000Z",
        result="ok",
        metadata=TaskMetadata(commit=commit, github=GithubMetadata(1, "https://github.com/o/r/issues/1", "o/r")),
        blocked_by=["other"],
    )

    embedded = EmbeddedSubtask.from_task(task)

    assert embedded.metadata == TaskMetadata(commit=commit)
    back = embedded.to_task("root")
    assert (back.id, back.description, back.context, back.priority) == ("t1", "Step", "ctx", 3)
    assert back.completed and back.completed_at == "2024-01-02T00:00:00.000Z"
    assert back.result == "ok"
    assert back.blocked_by == []
