"""
Tests for the key-value stores.
"""
import json
import os

import pytest

from scribe.core.storage import FileStorage, MemoryStorage, StorageError, build_storage


def test_memory_storage_basics():
    store = MemoryStorage()

    store.set_item("a", "1")
    store.set_item("b", "2")
    store.remove_item("a")
    store.remove_item("missing")

    assert store.get_item("a") is None
    assert store.get_item("b") == "2"
    assert store.keys() == ["b"]

    store.clear()
    assert store.keys() == []


def test_values_must_be_strings():
    with pytest.raises(TypeError):
        MemoryStorage().set_item("a", 1)


def test_quota_rejects_write_and_keeps_old_value():
    store = MemoryStorage(quota_bytes=10)
    store.set_item("k", "small")

    with pytest.raises(StorageError):
        store.set_item("k", "much too large a value")

    assert store.get_item("k") == "small"


def test_file_storage_survives_reopen(tmp_path):
    path = tmp_path / "state" / "storage.json"
    FileStorage(path).set_item("thinqscribe-force-restore", "true")

    reopened = FileStorage(path)

    assert reopened.get_item("thinqscribe-force-restore") == "true"
    assert json.loads(path.read_text(encoding="utf-8")) == {"thinqscribe-force-restore": "true"}


def test_file_storage_remove_and_clear_persist(tmp_path):
    path = tmp_path / "storage.json"
    store = FileStorage(path)
    store.set_item("a", "1")
    store.set_item("b", "2")

    store.remove_item("a")
    assert FileStorage(path).keys() == ["b"]

    store.clear()
    assert FileStorage(path).keys() == []


def test_corrupt_file_starts_empty_and_is_kept_aside(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{oops", encoding="utf-8")

    store = FileStorage(path)

    assert store.keys() == []
    assert (tmp_path / "storage.json.corrupt").read_text(encoding="utf-8") == "{oops"
    store.set_item("a", "1")
    assert FileStorage(path).get_item("a") == "1"


def test_non_object_file_starts_empty(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert FileStorage(path).keys() == []


def test_failed_write_leaves_previous_state(tmp_path, monkeypatch):
    path = tmp_path / "storage.json"
    store = FileStorage(path)
    store.set_item("k", "old")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(StorageError):
        store.set_item("k", "new")
    with pytest.raises(StorageError):
        store.remove_item("k")
    with pytest.raises(StorageError):
        store.clear()

    assert store.get_item("k") == "old"
    assert list(tmp_path.glob("*.tmp")) == []
    monkeypatch.undo()
    assert FileStorage(path).get_item("k") == "old"


def test_build_storage(tmp_path):
    assert type(build_storage()) is MemoryStorage
    assert isinstance(build_storage(str(tmp_path / "s.json")), FileStorage)
