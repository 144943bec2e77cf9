import json

import pytest

from core import ArchivedChild, ArchivedTask, DataCorruptionError
from infrastructure.archive_store import ArchiveStore

STAMP = "2024-06-01T00:00:00.000Z"


def _archived(task_id, name=None, result=None, children=()):
    return ArchivedTask(
        id=task_id,
        name=name or f"Task {task_id}",
        archived_at=STAMP,
        result=result,
        archived_children=list(children),
    )


def test_append_dedupes_against_file_and_batch(tmp_path):
    store = ArchiveStore(tmp_path)

    first = store.append([_archived("b"), _archived("a")])
    second = store.append([_archived("a", name="Renamed"), _archived("c"), _archived("c")])

    assert [t.id for t in first] == ["b", "a"]
    assert [t.id for t in second] == ["c"]
    records = store.read()
    assert [t.id for t in records] == ["a", "b", "c"]
    assert records[0].name == "Task a"


def test_append_nothing_new_leaves_file_untouched(tmp_path):
    store = ArchiveStore(tmp_path)
    store.append([_archived("a")])
    mtime = store.archive_file.stat().st_mtime_ns

    assert store.append([_archived("a")]) == []
    assert store.append([]) == []
    assert store.archive_file.stat().st_mtime_ns == mtime


def test_search_covers_names_results_and_children(tmp_path):
    store = ArchiveStore(tmp_path)
    store.write(
        [
            _archived("a", name="Login page"),
            _archived("b", result="Fixed OAuth flow"),
            _archived("c", children=[ArchivedChild(id="c1", name="Write oauth tests")]),
            _archived("d", name="Unrelated"),
        ]
    )

    assert [t.id for t in store.search("oauth")] == ["b", "c"]
    assert [t.id for t in store.search("LOGIN")] == ["a"]


def test_get_and_remove(tmp_path):
    store = ArchiveStore(tmp_path)
    store.write([_archived("a"), _archived("b")])

    assert store.get("b").name == "Task b"
    assert store.get("zzz") is None
    assert store.remove(["a", "zzz"]) == 1
    assert [t.id for t in store.read()] == ["b"]
    assert store.remove([]) == 0


def test_corrupt_archive_line_is_reported(tmp_path):
    store = ArchiveStore(tmp_path)
    store.archive_file.write_text(json.dumps(_archived("a").to_dict()) + "\n" + json.dumps({"id": "b"}) + "\n")

    with pytest.raises(DataCorruptionError) as excinfo:
        store.read()

    assert excinfo.value.line_number == 2
