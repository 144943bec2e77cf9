from .encoding import decode_metadata_value, encode_metadata_value
from .parser import (
    SUBTASKS_HEADER,
    TASK_DETAILS_HEADER,
    TASK_TREE_HEADER,
    IssueBodyParser,
    get_next_subtask_index,
    parse_hierarchical_issue_body,
    parse_issue_body,
    parse_root_task_metadata,
    parse_subtask_id,
    strip_root_task_metadata,
)
from .renderer import (
    create_subtask_id,
    render_hierarchical_issue_body,
    render_issue_body,
    render_root_task_metadata,
    render_task_tree,
)

__all__ = [
    "SUBTASKS_HEADER",
    "TASK_DETAILS_HEADER",
    "TASK_TREE_HEADER",
    "IssueBodyParser",
    "create_subtask_id",
    "decode_metadata_value",
    "encode_metadata_value",
    "get_next_subtask_index",
    "parse_hierarchical_issue_body",
    "parse_issue_body",
    "parse_root_task_metadata",
    "parse_subtask_id",
    "render_hierarchical_issue_body",
    "render_issue_body",
    "render_root_task_metadata",
    "render_task_tree",
    "strip_root_task_metadata",
]
