import json

import pytest

from contentstore.errors import PersistenceFailure
from contentstore.models import POSTS, PROFILES
from contentstore.snapshots import SnapshotBackend
from contentstore.state import ContentStore


def test_missing_snapshot_returns_default(backend):
    assert backend.load("posts", POSTS, []) == []
    assert backend.load("profiles", PROFILES, {}) == {}


def test_write_then_load(backend):
    data = [{"id": "p1", "content": "hello", "author": "0xaa", "timestamp": 1}]
    assert backend.write("posts", data) is True

    assert json.loads(backend.path_for("posts").read_text()) == data
    [post] = backend.load("posts", POSTS, [])
    assert post.id == "p1"
    # no temp files left behind
    assert [p.name for p in backend.data_dir.iterdir()] == ["posts.json"]


def test_write_failure_returns_false(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("not a directory")
    backend = SnapshotBackend(str(blocker))
    assert backend.write("posts", []) is False


def test_corrupt_snapshot_moved_aside(backend):
    backend.data_dir.mkdir(parents=True)
    backend.path_for("posts").write_text("{not json")

    assert backend.load("posts", POSTS, []) == []
    assert not backend.path_for("posts").exists()
    assert len(list(backend.data_dir.glob("posts.json.corrupt-*"))) == 1


def test_invalid_records_moved_aside(backend):
    backend.data_dir.mkdir(parents=True)
    backend.path_for("posts").write_text(json.dumps([{"id": "p1"}]))

    assert backend.load("posts", POSTS, []) == []
    assert len(list(backend.data_dir.glob("posts.json.corrupt-*"))) == 1


def test_describe(backend):
    backend.write("posts", [])
    files = {f["name"]: f for f in backend.describe(["posts", "polls"])}
    assert files["posts.json"]["exists"] is True
    assert files["posts.json"]["size"] > 0
    assert files["polls.json"] == {"name": "polls.json", "exists": False, "size": 0}


def test_backup_contains_every_collection(store):
    store.create_post("p1", "hello", "0xaa")
    store.upsert_profile("0xaa", "Alice")

    path = store.backup()
    payload = json.loads(path.read_text())
    assert path.name.startswith("backup_")
    assert set(payload) == {"posts", "profiles", "reactions", "comments", "polls", "timestamp"}
    assert payload["posts"][0]["id"] == "p1"
    assert payload["profiles"]["0xaa"]["display_name"] == "Alice"


def test_backup_failure_raises(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("not a directory")
    store = ContentStore(SnapshotBackend(str(blocker)))
    with pytest.raises(PersistenceFailure):
        store.backup()


def test_restart_restores_everything(backend, clock):
    store = ContentStore(backend, clock=clock)
    store.load()
    store.upsert_profile("0xaa", "Alice")
    store.create_post("p1", "hello", "0xaa")
    store.toggle_like("p1", "0xbb")
    store.add_comment("p1", "0xbb", "nice")
    poll = store.create_poll("Q?", ["A", "B"], "0xaa", duration_hours=1)
    store.vote(poll.id, "0xcc", 1)

    restarted = ContentStore(backend, clock=clock)
    restarted.load()

    view = restarted.get_post("p1")
    assert view.liked_by == ["0xbb"]
    assert [c.text for c in view.comments_list] == ["nice"]
    assert view.author_profile.display_name == "Alice"
    restored = restarted.get_poll(poll.id)
    assert restored.options[1].voters == ["0xcc"]
    assert restored.total_votes == 1
    assert restarted.get_profile("0xaa").joined_date == store.get_profile("0xaa").joined_date


class FailingBackend(SnapshotBackend):
    def __init__(self, data_dir, failing):
        super().__init__(data_dir)
        self.failing = set(failing)

    def write(self, name, data):
        if name in self.failing:
            return False
        return super().write(name, data)


def test_best_effort_write_failure_keeps_mutation(tmp_path):
    store = ContentStore(FailingBackend(str(tmp_path), ["reactions"]))
    store.create_post("p1", "hello", "0xaa")
    assert store.toggle_like("p1", "0xbb").liked is True
    assert store.get_post("p1").likes == 1


def test_vote_fails_when_poll_snapshot_fails(tmp_path):
    backend = FailingBackend(str(tmp_path), [])
    store = ContentStore(backend)
    poll = store.create_poll("Q?", ["A", "B"], "0xaa")

    backend.failing.add("polls")
    with pytest.raises(PersistenceFailure):
        store.vote(poll.id, "0xbb", 0)
    with pytest.raises(PersistenceFailure):
        store.create_poll("Again?", ["A", "B"], "0xaa")


def test_older_copy_never_overwrites_newer(backend):
    store = ContentStore(backend)
    store.create_post("p1", "hello", "0xaa")
    stale = store._capture(["posts"])
    store.create_post("p2", "world", "0xaa")

    assert store._write(stale) == {"posts": True}
    on_disk = json.loads(backend.path_for("posts").read_text())
    assert [p["id"] for p in on_disk] == ["p2", "p1"]


def test_non_finite_poll_snapshot_moved_aside(backend):
    backend.data_dir.mkdir(parents=True)
    backend.path_for("polls").write_text(
        '[{"id": "q1", "question": "Q?", "options": [], "duration": NaN,'
        ' "end_time": NaN, "author": "0xaa", "timestamp": 1}]'
    )

    store = ContentStore(backend)
    store.load()
    assert store.get_polls() == []
    assert len(list(backend.data_dir.glob("polls.json.corrupt-*"))) == 1
