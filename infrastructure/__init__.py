from .archive_store import ArchiveStore
from .jsonl_store import JsonlFile, JsonlTaskStore

__all__ = ["ArchiveStore", "JsonlFile", "JsonlTaskStore"]
