"""
Unit tests for the durable key-value stores.
"""
from auth import JsonFileStore, MemoryStore, NamespacedStore, StorageKeys


def test_json_store_survives_new_instance(tmp_path):
    path = tmp_path / "state" / "auth.json"
    JsonFileStore(path).set(StorageKeys.ATTEMPTS, [1.0, 2.5])

    # A later page load opens its own store on the same file
    assert JsonFileStore(path).get(StorageKeys.ATTEMPTS) == [1.0, 2.5]


def test_json_store_missing_file_reads_default(tmp_path):
    store = JsonFileStore(tmp_path / "absent.json")
    assert store.get("anything") is None
    assert store.get("anything", 42) == 42


def test_json_store_corrupt_file_reads_empty(tmp_path):
    path = tmp_path / "auth.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get(StorageKeys.ATTEMPTS) is None
    store.set(StorageKeys.PAGE_LOADED, 5.0)
    assert store.get(StorageKeys.PAGE_LOADED) == 5.0


def test_json_store_last_write_wins_between_instances(tmp_path):
    path = tmp_path / "auth.json"
    stale, fresh = JsonFileStore(path), JsonFileStore(path)

    fresh.set(StorageKeys.ATTEMPTS, [1.0])
    stale.set(StorageKeys.ATTEMPTS, [1.0, 2.0])
    stale.set(StorageKeys.PAGE_LOADED, 3.0)

    assert fresh.get(StorageKeys.ATTEMPTS) == [1.0, 2.0]
    assert fresh.get(StorageKeys.PAGE_LOADED) == 3.0


def test_json_store_delete_multiple(tmp_path):
    store = JsonFileStore(tmp_path / "auth.json")
    store.set("a", 1)
    store.set("b", 2)
    store.set("c", 3)

    store.delete("a", "b", "missing")

    assert store.snapshot(("a", "b", "c")) == {"a": None, "b": None, "c": 3}
    assert not list(tmp_path.glob("*.tmp"))


def test_memory_store_snapshot_defaults_to_all_keys():
    store = MemoryStore({StorageKeys.PAGE_LOADED: 1.0})
    snapshot = store.snapshot()
    assert set(snapshot) == set(StorageKeys.ALL)
    assert snapshot[StorageKeys.PAGE_LOADED] == 1.0


def test_namespaced_stores_share_backing_without_overlap():
    backing = MemoryStore()
    jane = NamespacedStore(backing, "jane")
    alex = NamespacedStore(backing, "alex")

    jane.set(StorageKeys.ATTEMPTS, [1.0])
    alex.set(StorageKeys.ATTEMPTS, [2.0, 3.0])
    alex.delete(StorageKeys.ATTEMPTS)

    assert jane.get(StorageKeys.ATTEMPTS) == [1.0]
    assert alex.get(StorageKeys.ATTEMPTS, []) == []
    assert backing.get(f"jane:{StorageKeys.ATTEMPTS}") == [1.0]
    assert jane.snapshot()[StorageKeys.ATTEMPTS] == [1.0]
