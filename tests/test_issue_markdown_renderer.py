from core import CommitMetadata, EmbeddedSubtask, HierarchicalTask, Task, TaskMetadata
from infrastructure.issue_markdown import (
    create_subtask_id,
    parse_hierarchical_issue_body,
    parse_issue_body,
    parse_root_task_metadata,
    parse_subtask_id,
    render_hierarchical_issue_body,
    render_issue_body,
    render_root_task_metadata,
)


def _subtasks():
    return [
        EmbeddedSubtask(
            id="9-1",
            description="Design the API",
            context="Talk to --> the team\nand write it up",
            priority=2,
            completed=True,
            result="Done\n\nwith notes",
            metadata=TaskMetadata(commit=CommitMetadata(sha="abc", message="feat: api\n\nbody", branch="main")),
            created_at="2024-01-01T00:00:00.000Z",
            updated_at="2024-01-02T00:00:00.000Z",
            completed_at="2024-01-02T00:00:00.000Z",
        ),
        EmbeddedSubtask(
            id="9-2",
            description="Implement",
            created_at="2024-01-01T00:00:00.000Z",
            updated_at="2024-01-01T00:00:00.000Z",
        ),
    ]


def test_flat_roundtrip_reproduces_context_and_subtasks():
    subtasks = _subtasks()
    body = render_issue_body("Issue context", subtasks)

    parsed = parse_issue_body(body)

    assert parsed.context == "Issue context"
    assert parsed.subtasks == subtasks


def test_render_is_idempotent_and_ordered():
    first = render_issue_body("ctx", _subtasks())

    assert first == render_issue_body("ctx", _subtasks())
    assert first.startswith("ctx\n\n## Subtasks\n\n<details>\n<summary>[x] Design the API</summary>\n")
    assert first.index("dex:subtask:id:9-1") < first.index("dex:subtask:priority:2")
    assert first.index("dex:subtask:completed_at:") < first.index("dex:subtask:commit_sha:abc")
    assert "### Context" in first and "### Result" in first
    assert "dex:subtask:completed_at:null" in first


def test_markdown_headings_inside_text_survive_roundtrip():
    subtask = EmbeddedSubtask(
        id="9-1",
        description="Heading heavy",
        context="Intro\n### Steps\n1. do it",
        result="### Result\nshipped\n\\### already escaped",
        created_at="2024-01-01T00:00:00.000Z",
        updated_at="2024-01-01T00:00:00.000Z",
    )
    context = "Root\n## Subtasks\n## Task Details\nmore"

    body = render_issue_body(context, [subtask])
    parsed = parse_issue_body(body)

    assert parsed.context == context
    assert parsed.subtasks == [subtask]

    entries = [HierarchicalTask(subtask.to_task("root"), 0, "root")]
    hierarchical = parse_hierarchical_issue_body(render_hierarchical_issue_body(context, entries))
    assert hierarchical.context == context
    assert hierarchical.entries[0].task.context == subtask.context
    assert hierarchical.entries[0].task.result == subtask.result


def test_no_subtasks_renders_context_only():
    assert render_issue_body("only context", []) == "only context"
    assert render_hierarchical_issue_body("only context", []) == "only context"


def test_hierarchical_roundtrip_regenerates_tree():
    parent = Task(id="p1", description="Parent step", context="details", created_at="2024-01-01T00:00:00.000Z")
    child = Task(id="c1", description="Child step", parent_id="p1", completed=True,
                 completed_at="2024-01-03T00:00:00.000Z", created_at="2024-01-01T00:00:00.000Z")
    entries = [HierarchicalTask(parent, 0, "root"), HierarchicalTask(child, 1, "p1")]

    body = render_hierarchical_issue_body("Root body", entries)
    parsed = parse_hierarchical_issue_body(body)

    assert "## Task Tree" in body and "## Task Details" in body
    assert "  - [x] **Child step** `c1`" in body
    assert "<summary>[x] ↳ <b>Child step</b> <code>c1</code></summary>" in body
    assert "### Description" in body
    assert parsed.context == "Root body"
    assert [(e.task.id, e.depth, e.parent_id) for e in parsed.entries] == [("p1", 0, "root"), ("c1", 1, "p1")]
    assert parsed.entries[0].task.context == "details"
    assert parsed.entries[1].task.completed is True

    edited = body.replace("**Child step**", "**Renamed by hand**")
    assert parse_hierarchical_issue_body(edited).entries[1].task.description == "Child step"
    assert render_hierarchical_issue_body(parsed.context, parsed.entries) == body


def test_root_metadata_roundtrip():
    task = Task(
        id="abc12345",
        description="Root",
        priority=4,
        completed=True,
        result="multi\nline",
        completed_at="2024-02-01T00:00:00.000Z",
        metadata=TaskMetadata(commit=CommitMetadata(sha="f00")),
    )

    meta = parse_root_task_metadata(render_root_task_metadata(task))

    assert meta.id == task.id
    assert meta.priority == 4
    assert meta.completed is True
    assert meta.result == "multi\nline"
    assert meta.commit.sha == "f00"
    applied = meta.apply_to(Task(id="abc12345", description="Root"))
    assert applied.completed_at == "2024-02-01T00:00:00.000Z"


def test_subtask_ids_are_inverse():
    for parent, index in (("9", 1), ("123", 42)):
        parsed = parse_subtask_id(create_subtask_id(parent, index))
        assert (parsed.parent_id, parsed.local_index) == (parent, index)
