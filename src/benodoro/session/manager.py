"""Session manager: the single owner of the current pomodoro state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Coroutine

from benodoro.companion.channel import CompanionChannel
from benodoro.session.events import ChangeSource, EventEmitter, StateChanged
from benodoro.session.state import DEFAULT_DURATION, SessionState, utcnow
from benodoro.storage.local_mirror import LocalMirror
from benodoro.sync.cloud_sync import CloudSync, FetchResult, FetchStatus

logger = logging.getLogger(__name__)

WIDGET_KIND = "benodoroWatchWidget"


class ConflictPolicy(Enum):
    """How incoming remote or companion states are reconciled with local state."""
    LATEST_WINS = "latest_wins"   # apply only if not older than the local update stamp
    REMOTE_WINS = "remote_wins"   # always apply


class SessionManager:
    """Owns the session state and fans every change out to the mirrors.

    A local mutation writes the local mirror, schedules a cloud upsert and a
    companion push, requests a widget reload, then emits ``StateChanged``.
    Incoming states from the cloud or companion go through one apply path
    that writes the local mirror, requests a reload and emits, but does not
    push back out.

    Usage:
        manager = SessionManager(local_mirror=mirror, cloud=cloud_sync)
        manager.events.subscribe(lambda event: print(event.state))

        await manager.restore()
        await manager.start(is_break=False, duration=timedelta(minutes=25))
        await manager.load_from_cloud()
        await manager.stop()
    """

    def __init__(
        self,
        local_mirror: LocalMirror | None = None,
        cloud: CloudSync | None = None,
        companion: CompanionChannel | None = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.LATEST_WINS,
        default_duration: timedelta = DEFAULT_DURATION,
        widget_kind: str = WIDGET_KIND,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.local_mirror = local_mirror
        self.cloud = cloud
        self.companion = companion or CompanionChannel()
        self.conflict_policy = conflict_policy
        self.default_duration = default_duration
        self.widget_kind = widget_kind
        self.clock = clock

        self.events: EventEmitter[StateChanged] = EventEmitter("state changed")

        self._state = SessionState(duration=default_duration)
        # Bumped on every applied change; fetches issued under an older value are stale
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        """Current state (immutable snapshot)."""
        return self._state

    @property
    def time_remaining(self) -> timedelta:
        return self._state.time_remaining(self.clock())

    @property
    def remaining_display(self) -> str:
        return self._state.remaining_display(self.clock())

    async def restore(self) -> SessionState:
        """Load the last state from the local mirror at launch."""
        if self.local_mirror is None:
            return self._state

        self._state = await self.local_mirror.read()
        self._generation += 1
        logger.info(f"Restored session state from local mirror (active={self._state.is_active})")
        await self.events.emit(StateChanged(self._state, ChangeSource.MIRROR))
        return self._state

    async def start(
        self,
        is_break: bool = False,
        duration: timedelta = DEFAULT_DURATION,
    ) -> SessionState:
        """Start a focus or break session now."""
        if duration.total_seconds() <= 0:
            raise ValueError(f"Session duration must be positive, got {duration.total_seconds()}s")

        now = self.clock()
        state = SessionState(start_time=now, duration=duration, is_break=is_break, updated_at=now)
        await self._commit_local(state)

        kind = "break" if is_break else "focus"
        logger.info(f"Started {kind} session for {duration.total_seconds() / 60:.1f} minutes")
        return state

    async def stop(self) -> SessionState:
        """Stop and reset to the idle state."""
        state = SessionState.idle(duration=self.default_duration, updated_at=self.clock())
        await self._commit_local(state)
        logger.info("Session stopped")
        return state

    async def load_from_cloud(self) -> FetchResult:
        """Fetch the remote record and apply it if it should win."""
        if self.cloud is None:
            return FetchResult.not_found()

        generation = self._generation
        result = await self.cloud.fetch_state()

        if result.status is not FetchStatus.FOUND or result.state is None:
            return result

        if generation != self._generation:
            logger.debug("Discarding cloud fetch that completed after a newer change")
            return result

        if not self._accepts(result.state):
            logger.debug("Ignoring cloud state older than local state")
            return result

        await self._apply_incoming(result.state, ChangeSource.CLOUD)
        return result

    async def refresh(self, reason: str) -> FetchResult:
        """Re-fetch from the cloud in response to an app or account event."""
        logger.info(f"Refreshing from cloud ({reason})")
        return await self.load_from_cloud()

    async def apply_companion_payload(self, payload: dict[str, Any]) -> bool:
        """Apply a message or application context received from the companion."""
        incoming = SessionState.from_payload(payload)
        if not self._accepts(incoming):
            logger.debug("Ignoring companion state older than local state")
            return False

        await self._apply_incoming(incoming, ChangeSource.COMPANION)
        return True

    async def drain(self) -> None:
        """Wait for scheduled cloud and companion pushes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _accepts(self, incoming: SessionState) -> bool:
        if self.conflict_policy is ConflictPolicy.REMOTE_WINS:
            return True

        local_stamp = self._state.updated_at
        if local_stamp is None:
            return True
        if incoming.updated_at is None:
            return False
        return incoming.updated_at >= local_stamp

    async def _commit_local(self, state: SessionState) -> None:
        self._state = state
        self._generation += 1

        if self.local_mirror:
            await self.local_mirror.write(state)
        if self.cloud:
            self._schedule(self.cloud.push_state(state))
        self._schedule(self.companion.send_state(state))

        await self._request_widget_reload()
        await self.events.emit(StateChanged(state, ChangeSource.LOCAL))

    async def _apply_incoming(self, state: SessionState, source: ChangeSource) -> None:
        self._state = state
        self._generation += 1

        if self.local_mirror:
            await self.local_mirror.write(state)

        await self._request_widget_reload()
        await self.events.emit(StateChanged(state, source))

    async def _request_widget_reload(self) -> None:
        if self.local_mirror:
            await self.local_mirror.request_widget_reload(self.widget_kind, self.clock())

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
