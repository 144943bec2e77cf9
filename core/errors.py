"""Error hierarchy shared by every layer.

Every failure raised on purpose is a DexError so callers can print the
message together with an actionable suggestion.
"""

from typing import Optional


class DexError(Exception):
    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self) -> str:
        return self.message


class NotFoundError(DexError):
    def __init__(self, resource_type: str, resource_id: str, suggestion: Optional[str] = None) -> None:
        super().__init__(
            f'{resource_type} "{resource_id}" not found',
            suggestion or f"List all {resource_type.lower()}s to see the available ids",
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(DexError):
    """Operation would leave the task graph in an invalid state."""


class ArchiveValidationError(ValidationError):
    """Archival preconditions are not met; `check` holds the structured reason."""

    def __init__(self, check, suggestion: Optional[str] = None) -> None:
        reason_text = {
            "not_found": "task not found",
            "not_completed": "task is not completed",
            "incomplete_descendants": "task has incomplete subtasks",
            "incomplete_ancestors": "task has incomplete ancestors",
        }.get(check.reason, check.reason)
        detail = f": {', '.join(check.task_ids)}" if check.task_ids else ""
        if suggestion is None and check.reason == "incomplete_ancestors":
            suggestion = "Archive from the root of the completed lineage"
        super().__init__(f"Cannot archive {check.task_id}: {reason_text}{detail}", suggestion)
        self.check = check


class StorageError(DexError):
    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        super().__init__(message, suggestion or "Check file permissions and disk space")
        self.cause = cause


class DataCorruptionError(StorageError):
    def __init__(
        self,
        file_path,
        line_number: Optional[int] = None,
        details: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        message = f'Data file "{file_path}" is corrupted'
        if line_number is not None:
            message = f"{message} at line {line_number}"
        if details:
            message = f"{message}: {details}"
        super().__init__(message, cause, "Restore the file from a backup or delete it to start fresh")
        self.file_path = str(file_path)
        self.line_number = line_number


class ConfigError(DexError):
    def __init__(self, path, details: str) -> None:
        super().__init__(f'Failed to parse config file "{path}": {details}', "Fix the YAML syntax or remove the file")
        self.path = str(path)
