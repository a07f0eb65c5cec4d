"""
Storage and profile registry tests.
"""

import json
import threading

import pytest

from voxclone.config import VoxCloneConfig, load_config
from voxclone.datatypes import ModelHandle, VoiceProfile
from voxclone.errors import ErrorKind, ProfileNotFound, Result
from voxclone.registry import SNAPSHOT_KEY, ProfileRegistry
from voxclone.storage import FileStore, MemoryStore


def _profile(pid: str, created: float = 1.0) -> VoiceProfile:
    return VoiceProfile(pid, f"name-{pid}", "en", ModelHandle(pid, f"models/{pid}.pt"), created, 2.0)


@pytest.mark.parametrize("make_store", [MemoryStore, None])
def test_store_put_get_delete(make_store, tmp_path):
    store = make_store() if make_store else FileStore(tmp_path)
    assert store.get("models/a.pt") is None
    store.put("models/a.pt", b"123")
    assert store.get("models/a.pt") == b"123"
    store.put("models/a.pt", b"456")
    assert store.get("models/a.pt") == b"456"
    store.delete("models/a.pt")
    assert store.get("models/a.pt") is None
    # Deleting a missing key is a no-op
    store.delete("models/a.pt")


def test_file_store_leaves_no_temp_files(tmp_path):
    store = FileStore(tmp_path)
    store.put("profiles/registry.json", b"[]")
    files = [p.name for p in tmp_path.rglob("*") if p.is_file()]
    assert files == ["registry.json"]
    assert store.keys() == ["profiles/registry.json"]


@pytest.mark.parametrize("key", ["", "/abs", "../escape", "a//b", "a/./b"])
def test_invalid_keys(key, tmp_path):
    with pytest.raises(ValueError):
        FileStore(tmp_path).put(key, b"x")
    with pytest.raises(ValueError):
        MemoryStore().put(key, b"x")


def test_registry_add_list_remove():
    store = MemoryStore()
    reg = ProfileRegistry(store)
    reg.add(_profile("b", created=2.0))
    reg.add(_profile("a", created=1.0))
    assert [p.id for p in reg.snapshot()] == ["a", "b"]
    assert "a" in reg and len(reg) == 2
    with pytest.raises(ValueError):
        reg.add(_profile("a"))
    assert reg.remove("a").id == "a"
    assert reg.remove("a") is None
    snapshot = json.loads(store.get(SNAPSHOT_KEY))
    assert [p["id"] for p in snapshot] == ["b"]


def test_registry_reload_skips_missing_models():
    store = MemoryStore()
    reg = ProfileRegistry(store)
    reg.add(_profile("keep"))
    reg.add(_profile("gone"))

    fresh = ProfileRegistry(store)
    n = fresh.load(lambda handle: handle.profile_id == "keep")
    assert n == 1
    assert [p.id for p in fresh.snapshot()] == ["keep"]


def test_registry_snapshot_failure_rolls_back():
    class BrokenStore(MemoryStore):
        def put(self, key, data):
            raise OSError("read-only")

    reg = ProfileRegistry(BrokenStore())
    with pytest.raises(OSError):
        reg.add(_profile("x"))
    assert "x" not in reg


def test_per_id_lock_serializes_same_id():
    reg = ProfileRegistry(MemoryStore())
    inside = []
    overlap = []

    def work():
        with reg.lock("same"):
            if inside:
                overlap.append(True)
            inside.append(1)
            threading.Event().wait(0.02)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not overlap


def test_profile_roundtrip_dict():
    p = _profile("x")
    assert VoiceProfile.from_dict(p.to_dict()) == p


def test_config_partial_merge(tmp_path):
    cfg = VoxCloneConfig.from_dict({"training": {"epochs": 3}, "max_chunk_size": 50})
    assert cfg.training.epochs == 3
    assert cfg.training.lr == 1e-3
    assert cfg.max_chunk_size == 50

    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"synthesis": {"workers": 2}, "training": {"hidden_sizes": [8, 8]}}))
    loaded = load_config(path)
    assert loaded.synthesis.workers == 2
    assert loaded.training.hidden_sizes == (8, 8)
    assert loaded.to_dict()["synthesis"]["workers"] == 2


def test_config_unknown_keys():
    with pytest.raises(ValueError):
        VoxCloneConfig.from_dict({"nope": 1})
    with pytest.raises(ValueError):
        VoxCloneConfig.from_dict({"training": {"nope": 1}})


def test_result_type():
    ok = Result.success(5)
    assert ok.ok and ok.unwrap() == 5
    err = Result.failure(ProfileNotFound("missing"))
    assert not err.ok
    assert err.error.kind is ErrorKind.PROFILE_NOT_FOUND
    assert str(err.error) == "profile_not_found: missing"
    with pytest.raises(ProfileNotFound):
        err.unwrap()


def test_id_locks_released_after_use():
    reg = ProfileRegistry(MemoryStore())
    for i in range(100):
        with reg.lock(f"id-{i}"):
            assert reg.lock_count == 1
    assert reg.lock_count == 0


def test_id_lock_kept_while_contended():
    reg = ProfileRegistry(MemoryStore())
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with reg.lock("same"):
            entered.set()
            release.wait(5)

    t = threading.Thread(target=holder)
    t.start()
    entered.wait(5)
    order = []

    def second():
        with reg.lock("same"):
            order.append("second")

    waiter = threading.Thread(target=second)
    waiter.start()
    threading.Event().wait(0.05)
    assert reg.lock_count == 1
    assert order == []
    release.set()
    t.join()
    waiter.join()
    assert order == ["second"]
    assert reg.lock_count == 0
