import logging
import re
from typing import Dict, List, Optional, Tuple, Union

from core import (
    CommitMetadata,
    EmbeddedSubtask,
    HierarchicalTask,
    ParsedHierarchicalIssueBody,
    ParsedIssueBody,
    ParsedSubtaskId,
    RootTaskMetadata,
    TaskMetadata,
    ValidationError,
    now_iso,
    parse_timestamp,
)
from core.task import DEFAULT_PRIORITY, MAX_PRIORITY

from .encoding import decode_metadata_value, unescape_section_text

SUBTASKS_HEADER = "## Subtasks"
TASK_TREE_HEADER = "## Task Tree"
TASK_DETAILS_HEADER = "## Task Details"

logger = logging.getLogger("dex.markdown")

_COMMIT_KEYS = {
    "commit_sha": "sha",
    "commit_message": "message",
    "commit_branch": "branch",
    "commit_url": "url",
    "commit_timestamp": "timestamp",
}


def _header_pattern(header: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(header)}[ \t]*$", re.MULTILINE)


class IssueBodyParser:
    """Reads the `<details>` micro-grammar back out of an issue body.

    Only HTML comments, `<summary>` lines and `###` sections inside
    `<details>` blocks are understood; everything else is context.
    """

    SUBTASKS_PATTERN = _header_pattern(SUBTASKS_HEADER)
    TASK_TREE_PATTERN = _header_pattern(TASK_TREE_HEADER)
    TASK_DETAILS_PATTERN = _header_pattern(TASK_DETAILS_HEADER)
    DETAILS_PATTERN = re.compile(r"<details(?:\s[^>]*)?>(.*?)</details>", re.DOTALL | re.IGNORECASE)
    SUMMARY_PATTERN = re.compile(r"<summary>\s*\[([ xX])\][ \t]*(.*?)\s*</summary>", re.DOTALL)
    SUBTASK_COMMENT_PATTERN = re.compile(r"<!-- dex:subtask:(\w+):(.*?) -->")
    TASK_COMMENT_PATTERN = re.compile(r"<!-- dex:task:(\w+):(.*?) -->")
    LEGACY_TASK_PATTERN = re.compile(r"<!-- dex:task:([a-zA-Z0-9]+) -->")
    TASK_COMMENT_LINE_PATTERN = re.compile(r"^[ \t]*<!-- dex:task:[^\n]*? -->[ \t]*(?:\n|\Z)", re.MULTILINE)
    CONTEXT_PATTERN = re.compile(r"^### (?:Context|Description)[ \t]*$\n?(.*?)(?=^###|\Z)", re.MULTILINE | re.DOTALL)
    RESULT_PATTERN = re.compile(r"^### Result[ \t]*$\n?(.*?)(?=^###|\Z)", re.MULTILINE | re.DOTALL)
    ARROWS_PATTERN = re.compile(r"^(↳+)\s*")
    BOLD_PATTERN = re.compile(r"^<b>(.*)</b>$", re.DOTALL)
    CODE_PATTERN = re.compile(r"\s*<code>(.*?)</code>\s*$")

    @staticmethod
    def _as_text(body: Union[str, bytes]) -> str:
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ValidationError(f"Issue body is not valid UTF-8: {exc}") from exc
        if not isinstance(body, str):
            raise ValidationError(f"Issue body must be text, got {type(body).__name__}")
        return body.replace("\r\n", "\n")

    @classmethod
    def _locate_sections(cls, text: str) -> Tuple[int, Optional[int], bool]:
        """Return (context_end, blocks_start, hierarchical)."""
        tree = cls.TASK_TREE_PATTERN.search(text)
        details = cls.TASK_DETAILS_PATTERN.search(text)
        if tree or details:
            context_end = min(m.start() for m in (tree, details) if m)
            return context_end, (details.end() if details else None), True
        flat = cls.SUBTASKS_PATTERN.search(text)
        if flat:
            return flat.start(), flat.end(), False
        return len(text), None, False

    @classmethod
    def parse(cls, body: Union[str, bytes]) -> ParsedIssueBody:
        text = cls._as_text(body)
        context_end, blocks_start, _ = cls._locate_sections(text)
        context = unescape_section_text(text[:context_end].strip())
        if blocks_start is None:
            return ParsedIssueBody(context=context)
        parsed, skipped = cls._parse_blocks(text[blocks_start:])
        return ParsedIssueBody(context=context, subtasks=[entry.task for entry, _ in parsed], skipped=skipped)

    @classmethod
    def parse_hierarchical(cls, body: Union[str, bytes]) -> ParsedHierarchicalIssueBody:
        text = cls._as_text(body)
        context_end, blocks_start, hierarchical = cls._locate_sections(text)
        context = unescape_section_text(text[:context_end].strip())
        if blocks_start is None:
            return ParsedHierarchicalIssueBody(context=context)
        parsed, skipped = cls._parse_blocks(text[blocks_start:])
        entries: List[HierarchicalTask] = []
        depth_by_id: Dict[str, int] = {}
        for entry, explicit_depth in parsed:
            if not hierarchical:
                entry.parent_id = None
                entry.depth = 0
            elif explicit_depth is None:
                parent_depth = depth_by_id.get(entry.parent_id or "")
                entry.depth = parent_depth + 1 if parent_depth is not None else 0
            depth_by_id[entry.task.id] = entry.depth
            entries.append(entry)
        return ParsedHierarchicalIssueBody(context=context, entries=entries, skipped=skipped)

    @classmethod
    def _parse_blocks(cls, section: str) -> Tuple[List[Tuple[HierarchicalTask, Optional[int]]], int]:
        results: List[Tuple[HierarchicalTask, Optional[int]]] = []
        skipped = 0
        for match in cls.DETAILS_PATTERN.finditer(section):
            line_start = section.rfind("\n", 0, match.start()) + 1
            prefix = section[line_start:match.start()]
            indent = len(prefix) if not prefix.strip() else 0
            parsed = cls._parse_block(match.group(1), indent)
            if parsed is None:
                skipped += 1
                continue
            results.append(parsed)
        if skipped:
            logger.warning("Skipped %d malformed subtask block(s) without summary or id", skipped)
        return results, skipped

    @classmethod
    def _parse_block(cls, content: str, indent: int) -> Optional[Tuple[HierarchicalTask, Optional[int]]]:
        summary = cls.SUMMARY_PATTERN.search(content)
        if summary is None:
            return None
        fields = cls._read_comments(content)
        subtask_id = fields.get("id")
        if not subtask_id:
            return None

        checked = summary.group(1).lower() == "x"
        label, arrows = cls._clean_label(summary.group(2), subtask_id)
        depth: Optional[int] = None
        if arrows:
            depth = arrows
        elif indent >= 2:
            depth = indent // 2

        context_match = cls.CONTEXT_PATTERN.search(content)
        result_match = cls.RESULT_PATTERN.search(content)
        commit = cls._commit_from(fields)
        stamp = now_iso()
        subtask = EmbeddedSubtask(
            id=subtask_id,
            description=label or subtask_id,
            context=unescape_section_text(context_match.group(1).strip()) if context_match else "",
            priority=cls._priority(fields.get("priority")),
            completed=fields["completed"] == "true" if "completed" in fields else checked,
            result=unescape_section_text(result_match.group(1).strip()) if result_match else None,
            metadata=TaskMetadata(commit=commit) if commit else None,
            created_at=cls._timestamp(fields.get("created_at")) or stamp,
            updated_at=cls._timestamp(fields.get("updated_at")) or stamp,
            completed_at=cls._timestamp(fields.get("completed_at")),
        )
        return HierarchicalTask(task=subtask, depth=depth or 0, parent_id=fields.get("parent") or None), depth

    @classmethod
    def _read_comments(cls, content: str) -> Dict[str, str]:
        fields: Dict[str, str] = {}
        for key, raw in cls.SUBTASK_COMMENT_PATTERN.findall(content):
            if key == "status":
                # old format stored status instead of completed
                fields.setdefault("completed", "true" if raw == "completed" else "false")
                continue
            if key in ("completed", "completed_at"):
                fields[key] = raw
                continue
            fields[key] = decode_metadata_value(raw)
        return fields

    @classmethod
    def _clean_label(cls, raw: str, subtask_id: str) -> Tuple[str, int]:
        label = raw.strip()
        arrows = 0
        arrow_match = cls.ARROWS_PATTERN.match(label)
        if arrow_match:
            arrows = len(arrow_match.group(1))
            label = label[arrow_match.end():]
        code = cls.CODE_PATTERN.search(label)
        if code and code.group(1) == subtask_id:
            label = label[:code.start()]
        bold = cls.BOLD_PATTERN.match(label.strip())
        if bold:
            label = bold.group(1)
        return label.strip(), arrows

    @staticmethod
    def _priority(raw: Optional[str]) -> int:
        try:
            value = int(raw) if raw is not None else DEFAULT_PRIORITY
        except ValueError:
            return DEFAULT_PRIORITY
        return max(0, min(MAX_PRIORITY, value))

    @staticmethod
    def _timestamp(raw: Optional[str]) -> Optional[str]:
        if not raw or raw == "null":
            return None
        try:
            parse_timestamp(raw)
        except ValueError:
            return None
        return raw

    @staticmethod
    def _commit_from(fields: Dict[str, str]) -> Optional[CommitMetadata]:
        values = {attr: fields[key] for key, attr in _COMMIT_KEYS.items() if key in fields}
        if not values.get("sha"):
            return None
        return CommitMetadata(**values)

    @classmethod
    def parse_root_metadata(cls, body: Union[str, bytes]) -> Optional[RootTaskMetadata]:
        text = cls._as_text(body)
        found = cls.TASK_COMMENT_PATTERN.findall(text)
        if not found:
            legacy = cls.LEGACY_TASK_PATTERN.search(text)
            return RootTaskMetadata(id=legacy.group(1)) if legacy else None
        fields: Dict[str, str] = {}
        for key, raw in found:
            fields[key] = raw if key in ("completed", "completed_at") else decode_metadata_value(raw)
        completed = fields.get("completed")
        return RootTaskMetadata(
            id=fields.get("id") or None,
            priority=cls._priority(fields["priority"]) if "priority" in fields else None,
            completed=(completed == "true") if completed is not None else None,
            created_at=cls._timestamp(fields.get("created_at")),
            updated_at=cls._timestamp(fields.get("updated_at")),
            completed_at=cls._timestamp(fields.get("completed_at")),
            result=fields.get("result"),
            commit=cls._commit_from(fields),
        )

    @classmethod
    def strip_root_metadata(cls, body: Union[str, bytes]) -> str:
        text = cls._as_text(body)
        text = cls.TASK_COMMENT_LINE_PATTERN.sub("", text)
        return cls.LEGACY_TASK_PATTERN.sub("", text)


def parse_issue_body(body: Union[str, bytes]) -> ParsedIssueBody:
    return IssueBodyParser.parse(body)


def parse_hierarchical_issue_body(body: Union[str, bytes]) -> ParsedHierarchicalIssueBody:
    return IssueBodyParser.parse_hierarchical(body)


def parse_root_task_metadata(body: Union[str, bytes]) -> Optional[RootTaskMetadata]:
    return IssueBodyParser.parse_root_metadata(body)


def strip_root_task_metadata(body: Union[str, bytes]) -> str:
    return IssueBodyParser.strip_root_metadata(body)


def parse_subtask_id(subtask_id: str) -> Optional[ParsedSubtaskId]:
    """Decode a compound id like `9-2`; returns None for anything malformed."""
    if not isinstance(subtask_id, str) or "-" not in subtask_id:
        return None
    parent_id, _, index = subtask_id.rpartition("-")
    if not (parent_id.isascii() and parent_id.isdigit() and index.isascii() and index.isdigit()):
        return None
    local_index = int(index)
    if local_index <= 0:
        return None
    return ParsedSubtaskId(parent_id=parent_id, local_index=local_index)


def get_next_subtask_index(subtasks: List[EmbeddedSubtask], parent_id: str) -> int:
    highest = 0
    for subtask in subtasks:
        parsed = parse_subtask_id(subtask.id)
        if parsed and parsed.parent_id == parent_id:
            highest = max(highest, parsed.local_index)
    return highest + 1
