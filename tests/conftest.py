"""
Pytest fixtures shared by the benodoro tests
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# The backend builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from benodoro.companion.channel import CompanionChannel
from benodoro.session.manager import SessionManager
from benodoro.storage.local_mirror import LocalMirror, MemoryDefaults
from benodoro.sync.cloud_store import InMemoryRecordStore
from benodoro.sync.cloud_sync import CloudSync


T0 = datetime(2025, 1, 28, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingCompanion(CompanionChannel):
    """Companion channel that records what it was asked to deliver"""

    def __init__(self, reachable: bool = True):
        self.reachable = reachable
        self.messages = []
        self.contexts = []

    async def is_reachable(self) -> bool:
        return self.reachable

    async def send_message(self, payload):
        self.messages.append(payload)

    async def update_application_context(self, payload):
        self.contexts.append(payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def defaults():
    return MemoryDefaults("group.test.Pomodoro")


@pytest.fixture
def mirror(defaults):
    return LocalMirror(defaults)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def cloud(store):
    return CloudSync(store, poll_interval=0.01)


@pytest.fixture
def companion():
    return RecordingCompanion()


@pytest.fixture
async def manager(mirror, cloud, companion, clock):
    """Manager wired to in-memory mirrors"""
    manager = SessionManager(
        local_mirror=mirror,
        cloud=cloud,
        companion=companion,
        clock=clock,
    )
    yield manager
    await manager.drain()
