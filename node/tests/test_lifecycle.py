import asyncio
import json

from contentstore.config import COLLECTIONS
from contentstore.lifecycle import Autosaver
from contentstore.snapshots import SnapshotBackend
from contentstore.state import ContentStore


class FlakyBackend(SnapshotBackend):
    def __init__(self, data_dir, failing=()):
        super().__init__(data_dir)
        self.failing = set(failing)
        self.writes = []

    def write(self, name, data):
        self.writes.append(name)
        if name in self.failing:
            return False
        return super().write(name, data)


def test_save_now_writes_all_collections(tmp_path):
    backend = FlakyBackend(str(tmp_path))
    store = ContentStore(backend)
    store.load()

    results = Autosaver(store, interval=30).save_now()

    assert results == {name: True for name in COLLECTIONS}
    assert sorted(backend.writes) == sorted(COLLECTIONS)
    assert json.loads(backend.path_for("posts").read_text()) == []
    assert json.loads(backend.path_for("profiles").read_text()) == {}


def test_one_failure_does_not_block_the_others(tmp_path):
    backend = FlakyBackend(str(tmp_path), failing=["comments"])
    store = ContentStore(backend)
    store.load()

    results = Autosaver(store, interval=30).save_now()

    assert results["comments"] is False
    assert [name for name, ok in results.items() if ok] == [n for n in COLLECTIONS if n != "comments"]
    assert not backend.path_for("comments").exists()
    assert backend.path_for("polls").exists()


def test_autosave_persists_unsaved_mutations(tmp_path):
    backend = FlakyBackend(str(tmp_path), failing=["reactions"])
    store = ContentStore(backend)
    store.load()
    store.create_post("p1", "hello", "0xaa")
    store.toggle_like("p1", "0xbb")
    assert not backend.path_for("reactions").exists()

    # disk recovers; the next tick catches up
    backend.failing.clear()
    Autosaver(store, interval=30).shutdown()

    restarted = ContentStore(SnapshotBackend(str(tmp_path)))
    restarted.load()
    assert restarted.get_post("p1").liked_by == ["0xbb"]


def test_tick_skipped_while_save_running(tmp_path):
    store = ContentStore(SnapshotBackend(str(tmp_path)))
    saver = Autosaver(store, interval=30)

    saver._saving.acquire()
    try:
        assert saver.save_now() is None
    finally:
        saver._saving.release()
    assert saver.save_now() is not None


def test_run_loop_saves_periodically(tmp_path):
    backend = FlakyBackend(str(tmp_path))
    store = ContentStore(backend)
    store.load()
    saver = Autosaver(store, interval=0.01)

    async def scenario():
        task = asyncio.create_task(saver.run())
        while len(backend.writes) < 2 * len(COLLECTIONS):
            await asyncio.sleep(0.01)
        task.cancel()

    asyncio.run(asyncio.wait_for(scenario(), timeout=5))
    assert set(backend.writes) == set(COLLECTIONS)
