import pytest

from contentstore.snapshots import SnapshotBackend
from contentstore.state import ContentStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def backend(tmp_path) -> SnapshotBackend:
    return SnapshotBackend(str(tmp_path / "data"))


@pytest.fixture()
def store(backend, clock) -> ContentStore:
    s = ContentStore(backend, clock=clock)
    s.load()
    return s
