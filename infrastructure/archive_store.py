from pathlib import Path
from typing import Iterable, List, Optional, Union

from core import ArchivedTask

from .jsonl_store import JsonlFile


class ArchiveStore:
    """Compacted tasks in `archive.jsonl`, next to the active store."""

    FILE_NAME = "archive.jsonl"

    def __init__(self, storage_path: Union[str, Path]) -> None:
        self.storage_path = Path(storage_path).expanduser()
        self._file = JsonlFile(self.storage_path / self.FILE_NAME)

    @property
    def archive_file(self) -> Path:
        return self._file.path

    def identifier(self) -> str:
        return str(self.storage_path)

    def read(self) -> List[ArchivedTask]:
        return sorted(self._file.read(ArchivedTask.from_dict), key=lambda t: t.id)

    def write(self, tasks: Iterable[ArchivedTask]) -> None:
        self._file.write(task.to_dict() for task in tasks)

    def append(self, tasks: Iterable[ArchivedTask]) -> List[ArchivedTask]:
        """Merge `tasks` into the archive; ids already present are ignored.

        Returns the records that were actually added.
        """
        incoming = list(tasks)
        if not incoming:
            return []
        existing = self.read()
        seen = {task.id for task in existing}
        added: List[ArchivedTask] = []
        for task in incoming:
            if task.id in seen:
                continue
            seen.add(task.id)
            added.append(task)
        if added:
            self.write(existing + added)
        return added

    def search(self, query: str) -> List[ArchivedTask]:
        needle = query.lower()

        def hit(name: str, result: Optional[str]) -> bool:
            return needle in name.lower() or (result is not None and needle in result.lower())

        return [
            task
            for task in self.read()
            if hit(task.name, task.result) or any(hit(c.name, c.result) for c in task.archived_children)
        ]

    def get(self, task_id: str) -> Optional[ArchivedTask]:
        return next((task for task in self.read() if task.id == task_id), None)

    def remove(self, task_ids: Iterable[str]) -> int:
        ids = set(task_ids)
        if not ids:
            return 0
        tasks = self.read()
        kept = [task for task in tasks if task.id not in ids]
        if len(kept) != len(tasks):
            self.write(kept)
        return len(tasks) - len(kept)
