"""对象迁移引擎与本地对象存储的单元测试。"""

import pytest

from app.packages.drive.core.exceptions import ObjectNotFoundError, ObjectStoreError
from app.packages.drive.services.migration import MigrationStatus, migrate_key, migrate_prefix
from app.packages.drive.services.object_store import LocalObjectStore


class FailingCopyStore(LocalObjectStore):
    def __init__(self, root, *, fail_on, **kwargs):
        super().__init__(root, **kwargs)
        self.fail_on = set(fail_on)
        self.deleted = []

    def copy(self, src_key, dst_key):
        if src_key in self.fail_on:
            raise ObjectStoreError("injected copy failure", key=src_key)
        super().copy(src_key, dst_key)

    def delete(self, key):
        self.deleted.append(key)
        super().delete(key)


class FailingDeleteStore(LocalObjectStore):
    def __init__(self, root, *, fail_on, **kwargs):
        super().__init__(root, **kwargs)
        self.fail_on = set(fail_on)

    def delete(self, key):
        if key in self.fail_on:
            raise ObjectStoreError("injected delete failure", key=key)
        super().delete(key)


def _seed(store, keys):
    for key in keys:
        store.put(key, b"" if key.endswith("/") else key.encode())


def _all_keys(store):
    return sorted(entry.key for entry in store.iter_prefix(""))


KEYS = ["a/b/", "a/b/one.txt", "a/b/sub/", "a/b/sub/two.txt", "a/b/three.txt"]


def test_local_store_paginates_and_filters_by_prefix(tmp_path):
    store = LocalObjectStore(tmp_path, page_size=2)
    _seed(store, KEYS + ["a/bc/other.txt"])

    first = store.list_by_prefix("a/b/")
    assert len(first.entries) == 2
    assert first.next_token is not None
    assert [e.key for e in store.iter_prefix("a/b/")] == sorted(KEYS)


def test_local_store_delete_is_idempotent_and_copy_requires_source(tmp_path):
    store = LocalObjectStore(tmp_path)
    store.delete("missing")
    with pytest.raises(ObjectNotFoundError):
        store.copy("missing", "elsewhere")


def test_migrate_prefix_moves_every_page(tmp_path):
    store = LocalObjectStore(tmp_path, page_size=2)
    _seed(store, KEYS + ["a/bc/other.txt"])

    result = migrate_prefix(store, "a/b/", "a/c/", max_workers=4)

    assert result.status == MigrationStatus.COMPLETED
    assert len(result.moved_keys) == len(KEYS)
    assert _all_keys(store) == sorted(["a/bc/other.txt"] + [k.replace("a/b/", "a/c/", 1) for k in KEYS])
    assert store.get("a/c/sub/two.txt") == b"a/b/sub/two.txt"


def test_migrate_prefix_round_trip_restores_keys_and_content(tmp_path):
    store = LocalObjectStore(tmp_path, page_size=2)
    _seed(store, KEYS)
    before = {k: store.get(k) for k in _all_keys(store)}

    assert migrate_prefix(store, "a/b/", "a/c/").ok
    assert migrate_prefix(store, "a/c/", "a/b/").ok

    assert {k: store.get(k) for k in _all_keys(store)} == before


def test_migrate_prefix_empty_source(tmp_path):
    store = LocalObjectStore(tmp_path)
    _seed(store, ["a/c/x.txt"])

    result = migrate_prefix(store, "a/b/", "a/c/")

    assert result.status == MigrationStatus.EMPTY_SOURCE
    assert _all_keys(store) == ["a/c/x.txt"]


def test_copy_failure_deletes_nothing(tmp_path):
    store = FailingCopyStore(tmp_path, fail_on={"a/b/one.txt"}, page_size=2)
    _seed(store, KEYS)

    result = migrate_prefix(store, "a/b/", "a/c/")

    assert result.status == MigrationStatus.COPY_FAILED
    assert not result.data_at_destination
    assert [f.key for f in result.failures] == ["a/b/one.txt"]
    assert store.deleted == []
    assert set(KEYS) <= set(_all_keys(store))


def test_delete_failure_keeps_both_copies(tmp_path):
    store = FailingDeleteStore(tmp_path, fail_on={"a/b/one.txt"})
    _seed(store, KEYS)

    result = migrate_prefix(store, "a/b/", "a/c/")

    assert result.status == MigrationStatus.CLEANUP_FAILED
    assert result.data_at_destination
    assert result.duplicates == ["a/b/one.txt"]
    assert store.exists("a/b/one.txt")
    assert store.exists("a/c/one.txt")
    assert not store.exists("a/b/three.txt")
    assert result.to_dict()["duplicates"] == ["a/b/one.txt"]


def test_migrate_key(tmp_path):
    store = LocalObjectStore(tmp_path)
    _seed(store, ["u1/Root/a.txt"])

    assert migrate_key(store, "u1/Root/a.txt", "u1/Root/b.txt").ok
    assert _all_keys(store) == ["u1/Root/b.txt"]
    assert migrate_key(store, "u1/Root/a.txt", "u1/Root/c.txt").status == MigrationStatus.EMPTY_SOURCE
