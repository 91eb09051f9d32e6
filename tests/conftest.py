import pytest

from confessbot.diagnostics import Diagnostics
from confessbot.store import ConfessionStore


class FakeClock:
    """Manually advanced clock for cooldown tests (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def diag():
    return Diagnostics()


@pytest.fixture
def storage_path(tmp_path):
    return str(tmp_path / "confessions.json")


@pytest.fixture
def store(storage_path, diag):
    s = ConfessionStore(storage_path, diagnostics=diag)
    s.load()
    return s
