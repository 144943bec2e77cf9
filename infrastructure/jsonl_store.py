import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterable, List, TypeVar, Union

from core import DataCorruptionError, StorageError, Task, TaskGraph, ValidationError

T = TypeVar("T")

logger = logging.getLogger("dex.store")


class JsonlFile:
    """One JSON record per line, rewritten whole through temp-file + rename."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self, parse: Callable[[Any], T]) -> List[T]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f'Failed to read "{self.path}"', exc, "Check file permissions") from exc

        records: List[T] = []
        for number, line in enumerate(content.split("\n"), 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                raise DataCorruptionError(self.path, number, f"invalid JSON: {exc.msg}", exc) from exc
            try:
                records.append(parse(data))
            except (ValueError, TypeError) as exc:
                raise DataCorruptionError(self.path, number, f"invalid schema: {exc}", exc) from exc
        return records

    def write(self, records: Iterable[dict]) -> None:
        rows = sorted(records, key=lambda r: r["id"])
        payload = "".join(json.dumps(row, ensure_ascii=False, separators=(",", ":")) + "\n" for row in rows)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            self._discard(tmp)
            raise StorageError(f'Failed to write "{self.path}"', exc) from exc

    @staticmethod
    def _discard(tmp: Path) -> None:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove temp file %s: %s", tmp, exc)


class JsonlTaskStore:
    """Active task set persisted as `tasks.jsonl` inside the storage directory."""

    FILE_NAME = "tasks.jsonl"
    LEGACY_DIR = "tasks"

    def __init__(self, storage_path: Union[str, Path]) -> None:
        self.storage_path = Path(storage_path).expanduser()
        self._file = JsonlFile(self.storage_path / self.FILE_NAME)

    @property
    def tasks_file(self) -> Path:
        return self._file.path

    def identifier(self) -> str:
        return str(self.storage_path)

    def read(self) -> TaskGraph:
        self._migrate_from_file_per_task()
        tasks = self._file.read(Task.from_dict)
        try:
            return TaskGraph.from_tasks(tasks)
        except ValidationError as exc:
            raise DataCorruptionError(self.tasks_file, details=str(exc), cause=exc) from exc

    def write(self, graph: Union[TaskGraph, Iterable[Task]]) -> None:
        tasks = graph.tasks if isinstance(graph, TaskGraph) else list(graph)
        self._file.write(task.to_dict() for task in tasks)

    def _migrate_from_file_per_task(self) -> None:
        legacy_dir = self.storage_path / self.LEGACY_DIR
        if self.tasks_file.exists() or not legacy_dir.is_dir():
            return
        tasks: List[Task] = []
        for path in sorted(legacy_dir.glob("*.json")):
            try:
                content = path.read_text(encoding="utf-8")
                if not content.strip():
                    continue
                tasks.append(Task.from_dict(json.loads(content)))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable legacy task file %s: %s", path, exc)
        self.write(tasks)
        backup = self.storage_path / "tasks.bak"
        if backup.exists():
            backup = self.storage_path / f"tasks.bak.{int(time.time() * 1000)}"
        legacy_dir.rename(backup)
        logger.info("Migrated %d legacy task files into %s", len(tasks), self.tasks_file)
