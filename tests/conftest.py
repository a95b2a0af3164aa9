"""Shared fixtures for Peemodoro tests."""

from datetime import datetime

import pytest

from peemodoro.config import ConfigManager
from peemodoro.context import AppContext
from peemodoro.state_sync import StateSync
from peemodoro.storage import Storage

# A Tuesday morning: no secret badge fires at this instant
START = datetime(2024, 3, 5, 10, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock(START.timestamp())


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(config_dir=tmp_path / "peemodoro")


@pytest.fixture
def state_sync(tmp_path, clock):
    sync = StateSync(tmp_path / "state.json", tmp_path / "state.lock", clock=clock)
    yield sync
    sync.cleanup()


@pytest.fixture
def storage(tmp_path):
    return Storage(tmp_path / "history.db")


@pytest.fixture
def app(config_manager, clock):
    """Application context in an isolated data directory, on the fake clock."""
    ctx = AppContext.create(config_manager)
    ctx.state_sync.clock = clock
    yield ctx
    ctx.close()
