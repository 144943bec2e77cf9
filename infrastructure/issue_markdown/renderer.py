"""Renders tasks into the issue-body micro-grammar.

Pure functions: identical input always yields byte-identical output, so a
re-sync of unchanged data never produces a diff against the previous body.
"""

from typing import List, Optional, Sequence

from core import EmbeddedSubtask, HierarchicalTask, Task

from .encoding import encode_metadata_value, escape_section_text
from .parser import SUBTASKS_HEADER, TASK_DETAILS_HEADER, TASK_TREE_HEADER

DEPTH_ARROW = "↳"


def create_subtask_id(parent_id: str, index: int) -> str:
    return f"{parent_id}-{index}"


def _comment(prefix: str, key: str, value: str) -> str:
    return f"<!-- dex:{prefix}:{key}:{encode_metadata_value(value)} -->"


def _metadata_comments(task, prefix: str = "subtask", parent_id: Optional[str] = None) -> List[str]:
    lines = [_comment(prefix, "id", task.id)]
    if parent_id:
        lines.append(_comment(prefix, "parent", parent_id))
    lines.append(_comment(prefix, "priority", str(task.priority)))
    lines.append(_comment(prefix, "completed", "true" if task.completed else "false"))
    lines.append(_comment(prefix, "created_at", task.created_at))
    lines.append(_comment(prefix, "updated_at", task.updated_at))
    lines.append(_comment(prefix, "completed_at", task.completed_at or "null"))
    commit = task.metadata.commit if task.metadata else None
    if commit is not None:
        lines.append(_comment(prefix, "commit_sha", commit.sha))
        for key in ("message", "branch", "url", "timestamp"):
            value = getattr(commit, key)
            if value:
                lines.append(_comment(prefix, f"commit_{key}", value))
    return lines


def _summary_label(text: str) -> str:
    return " ".join(text.splitlines()).strip()


def _render_block(task, summary: str, context_heading: str, parent_id: Optional[str] = None) -> str:
    lines = ["<details>", summary]
    lines.extend(_metadata_comments(task, parent_id=parent_id))
    lines.append("")
    if task.context:
        lines.append(f"### {context_heading}")
        lines.append(escape_section_text(task.context))
        lines.append("")
    if task.result is not None:
        lines.append("### Result")
        lines.append(escape_section_text(task.result))
        lines.append("")
    lines.append("</details>")
    return "\n".join(lines)


def render_subtask_block(subtask: EmbeddedSubtask) -> str:
    checkbox = "x" if subtask.completed else " "
    summary = f"<summary>[{checkbox}] {_summary_label(subtask.description)}</summary>"
    return _render_block(subtask, summary, "Context")


def render_hierarchical_block(task, depth: int, parent_id: Optional[str]) -> str:
    checkbox = "x" if task.completed else " "
    arrows = DEPTH_ARROW * depth + " " if depth > 0 else ""
    summary = f"<summary>[{checkbox}] {arrows}<b>{_summary_label(task.description)}</b> <code>{task.id}</code></summary>"
    return _render_block(task, summary, "Description", parent_id=parent_id)


def render_issue_body(context: str, subtasks: Sequence[EmbeddedSubtask]) -> str:
    context = escape_section_text(context)
    if not subtasks:
        return context
    blocks = "\n\n".join(render_subtask_block(subtask) for subtask in subtasks)
    return f"{context}\n\n{SUBTASKS_HEADER}\n\n{blocks}"


def render_task_tree(descendants: Sequence[HierarchicalTask]) -> List[str]:
    """Checklist overview for humans; derived from the blocks and never parsed."""
    lines = []
    for entry in descendants:
        checkbox = "x" if entry.task.completed else " "
        indent = "  " * entry.depth
        lines.append(f"{indent}- [{checkbox}] **{_summary_label(entry.task.description)}** `{entry.task.id}`")
    return lines


def render_hierarchical_issue_body(context: str, descendants: Sequence[HierarchicalTask]) -> str:
    context = escape_section_text(context)
    if not descendants:
        return context
    lines = [context, "", TASK_TREE_HEADER, ""]
    lines.extend(render_task_tree(descendants))
    lines.extend(["", TASK_DETAILS_HEADER, ""])
    for entry in descendants:
        lines.append(render_hierarchical_block(entry.task, entry.depth, entry.parent_id))
        lines.append("")
    return "\n".join(lines)


def render_root_task_metadata(task: Task) -> str:
    """`dex:task:` comment lines describing the hosting task itself."""
    lines = _metadata_comments(task, prefix="task")
    if task.result:
        # after completed_at, ahead of commit_*
        lines.insert(6, _comment("task", "result", task.result))
    return "\n".join(lines)
