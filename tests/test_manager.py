"""
Tests for the SessionManager
Tests: local mutations, write-through, cloud reconciliation, companion payloads
"""
import asyncio
from datetime import timedelta

import pytest

from benodoro.session.events import ChangeSource
from benodoro.session.manager import ConflictPolicy, SessionManager
from benodoro.session.state import SessionState
from benodoro.storage.local_mirror import KEY_WIDGET_RELOAD
from benodoro.sync.cloud_store import InMemoryRecordStore
from benodoro.sync.cloud_sync import CloudSync, FetchStatus

from conftest import T0, RecordingCompanion


class SlowStore(InMemoryRecordStore):
    """Store whose next fetch is held until released"""

    def __init__(self):
        super().__init__()
        self.hold_next_fetch = False
        self.fetch_started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, record_name):
        record = await super().fetch(record_name)
        if self.hold_next_fetch:
            self.hold_next_fetch = False
            self.fetch_started.set()
            await self.release.wait()
        return record


async def push_remote(store, state):
    """Write ``state`` as another device would."""
    assert await CloudSync(store).push_state(state)


class TestLocalMutations:
    """Test start and stop"""

    async def test_initial_state_is_idle(self, manager):
        assert not manager.state.is_active
        assert manager.time_remaining == timedelta(0)
        assert manager.remaining_display == "00:00"

    async def test_start_focus(self, manager, clock):
        state = await manager.start(is_break=False, duration=timedelta(minutes=25))

        assert state.start_time == T0
        assert state.updated_at == T0
        assert manager.state == state
        assert manager.remaining_display == "25:00"

        clock.advance(1500)
        assert manager.time_remaining == timedelta(0)

    async def test_start_break(self, manager):
        state = await manager.start(is_break=True, duration=timedelta(minutes=5))
        assert state.is_break
        assert manager.time_remaining == timedelta(minutes=5)

    @pytest.mark.parametrize("seconds", [0, -60])
    async def test_non_positive_duration_rejected(self, manager, seconds):
        with pytest.raises(ValueError):
            await manager.start(duration=timedelta(seconds=seconds))
        assert not manager.state.is_active

    async def test_stop_resets_to_idle(self, manager, clock):
        await manager.start(duration=timedelta(minutes=5))
        clock.advance(30)

        state = await manager.stop()

        assert not state.is_active
        assert state.duration == timedelta(minutes=25)
        assert state.updated_at == clock.now
        assert manager.time_remaining == timedelta(0)

    async def test_stop_uses_configured_duration(self, clock):
        manager = SessionManager(clock=clock, default_duration=timedelta(minutes=50))
        await manager.start(is_break=True, duration=timedelta(minutes=5))

        state = await manager.stop()

        assert state == SessionState.idle(duration=timedelta(minutes=50), updated_at=clock.now)


class TestWriteThrough:
    """Test fan-out of local changes to every mirror"""

    async def test_local_mirror_written_before_event(self, manager, mirror):
        seen = []

        async def observer(event):
            seen.append((event.source, await mirror.read()))

        manager.events.subscribe(observer)
        state = await manager.start(duration=timedelta(minutes=25))

        [(source, mirrored)] = seen
        assert source is ChangeSource.LOCAL
        assert mirrored == state

    async def test_cloud_record_updated(self, manager, cloud):
        state = await manager.start(duration=timedelta(minutes=25))
        await manager.drain()

        result = await cloud.fetch_state()
        assert result.state == state

    async def test_stop_reaches_cloud(self, manager, cloud):
        await manager.start(duration=timedelta(minutes=25))
        await manager.stop()
        await manager.drain()

        result = await cloud.fetch_state()
        assert result.state.start_time is None

    async def test_reachable_companion_gets_message(self, manager, companion):
        state = await manager.start(duration=timedelta(minutes=25))
        await manager.drain()

        assert companion.messages == [state.to_payload()]
        assert companion.contexts == []

    async def test_unreachable_companion_gets_context(self, manager, companion):
        companion.reachable = False
        state = await manager.start(duration=timedelta(minutes=25))
        await manager.drain()

        assert companion.messages == []
        assert companion.contexts == [state.to_payload()]

    async def test_widget_reload_requested(self, manager, defaults, clock):
        await manager.start(duration=timedelta(minutes=25))
        requests = await defaults.get(KEY_WIDGET_RELOAD)
        assert requests[manager.widget_kind] == clock.now.timestamp()

    async def test_works_without_capabilities(self, clock):
        manager = SessionManager(clock=clock)
        state = await manager.start(duration=timedelta(minutes=1))
        await manager.drain()

        assert manager.state == state
        result = await manager.load_from_cloud()
        assert result.status is FetchStatus.NOT_FOUND


class TestRestore:
    """Test launch-time restore from the local mirror"""

    async def test_restore(self, mirror, clock):
        saved = SessionState(start_time=T0, duration=timedelta(minutes=5), is_break=True, updated_at=T0)
        await mirror.write(saved)

        manager = SessionManager(local_mirror=mirror, clock=clock)
        events = []
        manager.events.subscribe(events.append)

        assert await manager.restore() == saved
        assert manager.state == saved
        assert events[0].source is ChangeSource.MIRROR

    async def test_restore_out_of_range_values(self, defaults, mirror, clock):
        await defaults.set("startTime", 1e20)
        await defaults.set("duration", 1e300)
        await defaults.set("isBreak", "false")

        manager = SessionManager(local_mirror=mirror, clock=clock)

        assert await manager.restore() == SessionState()


class TestCloudReconciliation:
    """Test applying the remote record"""

    async def test_not_found_leaves_state(self, manager):
        result = await manager.load_from_cloud()
        assert result.status is FetchStatus.NOT_FOUND
        assert not manager.state.is_active

    async def test_remote_state_applied(self, manager, store, mirror, clock):
        remote = SessionState(start_time=T0, duration=timedelta(minutes=5), is_break=True, updated_at=T0)
        await push_remote(store, remote)
        events = []
        manager.events.subscribe(events.append)

        result = await manager.load_from_cloud()

        assert result.status is FetchStatus.FOUND
        assert manager.state == remote
        assert await mirror.read() == remote
        assert events[0].source is ChangeSource.CLOUD

    async def test_applied_remote_state_is_not_pushed_back(self, manager, store, companion):
        await push_remote(store, SessionState(start_time=T0, updated_at=T0))
        before = (await store.fetch("currentPomodoroState")).change_tag

        await manager.load_from_cloud()
        await manager.drain()

        assert (await store.fetch("currentPomodoroState")).change_tag == before
        assert companion.messages == []

    async def test_older_remote_state_ignored(self, manager, store, clock):
        await push_remote(store, SessionState(start_time=T0, is_break=True, updated_at=T0))
        clock.advance(60)
        local = await manager.start(duration=timedelta(minutes=25))
        # Overwrite the record with the stale state again after the local push lands
        await manager.drain()
        await push_remote(store, SessionState(start_time=T0, is_break=True, updated_at=T0))

        await manager.load_from_cloud()

        assert manager.state == local

    async def test_remote_wins_policy_applies_older_state(self, mirror, store, clock):
        manager = SessionManager(
            local_mirror=mirror,
            cloud=CloudSync(store),
            conflict_policy=ConflictPolicy.REMOTE_WINS,
            clock=clock,
        )
        clock.advance(60)
        await manager.start(duration=timedelta(minutes=25))
        await manager.drain()
        remote = SessionState(start_time=T0, is_break=True, updated_at=T0)
        await push_remote(store, remote)

        await manager.load_from_cloud()

        assert manager.state == remote

    async def test_failed_fetch_keeps_state(self, mirror, clock):
        class Unreachable(InMemoryRecordStore):
            async def fetch(self, record_name):
                raise ConnectionError("offline")

        manager = SessionManager(local_mirror=mirror, cloud=CloudSync(Unreachable()), clock=clock)
        state = await manager.start(duration=timedelta(minutes=25))
        await manager.drain()

        result = await manager.load_from_cloud()

        assert result.status is FetchStatus.FAILED
        assert manager.state == state

    async def test_stale_fetch_discarded(self, mirror, clock):
        store = SlowStore()
        manager = SessionManager(local_mirror=mirror, cloud=CloudSync(store), clock=clock)
        remote = SessionState(start_time=T0, is_break=True, updated_at=T0 + timedelta(hours=1))
        await push_remote(store, remote)

        store.hold_next_fetch = True
        fetch = asyncio.create_task(manager.load_from_cloud())
        await store.fetch_started.wait()

        local = await manager.start(duration=timedelta(minutes=25))
        store.release.set()
        result = await fetch
        await manager.drain()

        assert result.status is FetchStatus.FOUND
        assert manager.state == local

    async def test_refresh_reason(self, manager, store):
        remote = SessionState(start_time=T0, updated_at=T0)
        await push_remote(store, remote)

        result = await manager.refresh("app entered foreground")

        assert result.status is FetchStatus.FOUND
        assert manager.state == remote


class TestCompanionPayloads:
    """Test applying states received from the paired device"""

    async def test_payload_applied(self, manager, mirror):
        incoming = SessionState(start_time=T0, duration=timedelta(minutes=5), is_break=True, updated_at=T0)
        events = []
        manager.events.subscribe(events.append)

        assert await manager.apply_companion_payload(incoming.to_payload())

        assert manager.state == incoming
        assert await mirror.read() == incoming
        assert events[0].source is ChangeSource.COMPANION

    async def test_payload_not_echoed(self, manager, companion, store):
        incoming = SessionState(start_time=T0, updated_at=T0)
        await manager.apply_companion_payload(incoming.to_payload())
        await manager.drain()

        assert companion.messages == []
        assert store.subscriptions == []
        result = await manager.load_from_cloud()
        assert result.status is FetchStatus.NOT_FOUND

    async def test_older_payload_ignored(self, manager, clock):
        clock.advance(60)
        local = await manager.start(duration=timedelta(minutes=25))

        applied = await manager.apply_companion_payload(
            SessionState(start_time=T0, is_break=True, updated_at=T0).to_payload()
        )

        assert applied is False
        assert manager.state == local

    async def test_unstamped_payload_applies_to_fresh_manager(self, manager):
        assert await manager.apply_companion_payload({"startTime": T0.timestamp(), "duration": 300})
        assert manager.state.start_time == T0
        assert manager.state.duration == timedelta(minutes=5)


class TestObservers:
    """Test multiple observers on one manager"""

    async def test_all_observers_see_each_change(self, clock):
        manager = SessionManager(companion=RecordingCompanion(), clock=clock)
        first, second = [], []
        manager.events.subscribe(lambda event: first.append(event.state))
        manager.events.subscribe(lambda event: second.append(event.state))

        started = await manager.start(duration=timedelta(minutes=25))
        stopped = await manager.stop()
        await manager.drain()

        assert first == [started, stopped]
        assert second == [started, stopped]
