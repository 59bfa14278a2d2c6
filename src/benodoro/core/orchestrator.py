"""App process: wires the session manager to its mirrors and runs the timers."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timedelta

from benodoro.companion.channel import CompanionChannel, HttpCompanionChannel
from benodoro.core.config import Config, get_config
from benodoro.session.events import EventEmitter
from benodoro.session.manager import ConflictPolicy, SessionManager
from benodoro.session.state import SessionState, utcnow
from benodoro.storage.database import Database
from benodoro.storage.local_mirror import LocalMirror, MemoryDefaults, SharedDefaults, SqliteDefaults
from benodoro.sync.cloud_store import HttpRecordStore, InMemoryRecordStore, NullRecordStore, RecordStore
from benodoro.sync.cloud_sync import CloudSync

logger = logging.getLogger(__name__)

TICK_INTERVAL = 1.0


def create_defaults(config: Config) -> SharedDefaults:
    if config.local_mirror.backend == "memory":
        return MemoryDefaults(config.local_mirror.suite_name)
    return SqliteDefaults(config.local_mirror.suite_name, Database(config.shared_db_path))


def create_record_store(config: Config) -> RecordStore:
    provider = config.cloud.provider
    if provider == "http":
        return HttpRecordStore(
            api_url=config.cloud.api_url,
            container_id=config.cloud.container_id,
            timeout_seconds=config.cloud.request_timeout_seconds,
        )
    if provider == "memory":
        return InMemoryRecordStore()
    return NullRecordStore()


def create_companion(config: Config) -> CompanionChannel:
    if not config.companion.enabled:
        return CompanionChannel()
    return HttpCompanionChannel(
        peer_url=config.companion.peer_url,
        reachability_timeout=config.companion.reachability_timeout_seconds,
    )


def create_manager(config: Config, defaults: SharedDefaults | None = None) -> SessionManager:
    """Build a session manager with the capabilities the config enables."""
    defaults = defaults or create_defaults(config)
    cloud = CloudSync(
        store=create_record_store(config),
        record_name=config.cloud.record_name,
        record_type=config.cloud.record_type,
        poll_interval=config.cloud.poll_interval_seconds,
        enabled=config.cloud.provider != "none",
    )
    return SessionManager(
        local_mirror=LocalMirror(defaults),
        cloud=cloud,
        companion=create_companion(config),
        conflict_policy=ConflictPolicy(config.cloud.conflict_policy),
        default_duration=timedelta(minutes=config.session.focus_minutes),
        widget_kind=config.widget.kind,
    )


class Orchestrator:
    """Main app process coordinator.

    Runs the 1-second UI tick, the cloud poll (which also flushes pending
    companion context) and, when enabled, the HTTP control surface. Ticks
    count each session once when its countdown reaches zero.
    """

    def __init__(self, config: Config | None = None, manager: SessionManager | None = None):
        self.config = config or get_config()
        self.manager = manager or create_manager(self.config)
        self.ticks: EventEmitter[SessionState] = EventEmitter("tick")
        self.ticks.subscribe(self._check_completion)
        self.sessions_completed = 0
        self._completed_start: datetime | None = None

        self._running = False
        self._startup_time: datetime | None = None
        self._tasks: list[asyncio.Task] = []
        self._server = None

        self._pid_file = self.config.data_dir / "app.pid"

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def uptime_seconds(self) -> float:
        if self._startup_time is None:
            return 0.0
        return (utcnow() - self._startup_time).total_seconds()

    async def start(self) -> None:
        """Restore state, activate the channels and start the timers."""
        if self._running:
            logger.warning("Orchestrator already running")
            return

        logger.info("Starting benodoro app process...")

        self.config.ensure_directories()
        self._write_pid_file()

        if self.manager.local_mirror:
            await self.manager.local_mirror.defaults.open()
        await self.manager.restore()
        await self.manager.companion.activate()

        cloud = self.manager.cloud
        if cloud and cloud.enabled:
            if self.config.cloud.callback_url:
                await cloud.register_subscription(self.config.cloud.callback_url)
            await self.manager.load_from_cloud()
            await cloud.start(on_poll=self._poll)

        self._running = True
        self._startup_time = utcnow()
        self._tasks.append(asyncio.create_task(self._tick_loop()))

        logger.info("App process started")

    async def stop(self) -> None:
        """Stop timers, flush pending pushes and close the mirrors."""
        if not self._running:
            return

        logger.info("Stopping benodoro app process...")
        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        if self.manager.cloud:
            await self.manager.cloud.stop()
        await self.manager.drain()
        await self.manager.companion.close()
        if self.manager.cloud:
            await self.manager.cloud.close()
        if self.manager.local_mirror:
            await self.manager.local_mirror.defaults.close()

        self._remove_pid_file()
        logger.info("App process stopped")

    async def _poll(self) -> None:
        await self.manager.load_from_cloud()
        await self.manager.companion.flush_context()

    def _check_completion(self, state: SessionState) -> None:
        """Count each session once when its countdown reaches zero."""
        if state.start_time is None or state.start_time == self._completed_start:
            return
        if state.is_expired(self.manager.clock()):
            self._completed_start = state.start_time
            self.sessions_completed += 1
            kind = "Break" if state.is_break else "Focus session"
            logger.info(f"{kind} complete")

    async def _tick_loop(self) -> None:
        """Emit the current state every second for live countdowns."""
        while self._running:
            await asyncio.sleep(TICK_INTERVAL)
            await self.ticks.emit(self.manager.state)

    async def serve(self) -> None:
        """Run until interrupted, serving the control surface if enabled."""
        await self.start()
        try:
            if self.config.web.enabled:
                import uvicorn

                from benodoro.web.app import create_app

                server_config = uvicorn.Config(
                    create_app(self.manager, self.config),
                    host=self.config.web.host,
                    port=self.config.web.port,
                    log_level="warning",
                )
                self._server = uvicorn.Server(server_config)
                logger.info(f"Control surface at http://{self.config.web.host}:{self.config.web.port}")
                await self._server.serve()
            else:
                while self._running:
                    await asyncio.sleep(1)
        finally:
            await self.stop()

    def _write_pid_file(self) -> None:
        self._pid_file.parent.mkdir(parents=True, exist_ok=True)
        self._pid_file.write_text(str(os.getpid()))

    def _remove_pid_file(self) -> None:
        if self._pid_file.exists():
            self._pid_file.unlink()
            logger.debug("PID file removed")

    @classmethod
    def get_running_pid(cls, config: Config | None = None) -> int | None:
        """Get the PID of a running app process from its PID file."""
        config = config or get_config()
        pid_file = config.data_dir / "app.pid"

        if not pid_file.exists():
            return None

        try:
            pid = int(pid_file.read_text().strip())
            os.kill(pid, 0)
            return pid
        except (ValueError, OSError):
            pid_file.unlink(missing_ok=True)
            return None

    def get_health(self) -> dict:
        """Get health status of all components."""
        state = self.manager.state
        return {
            "status": "running" if self._running else "stopped",
            "uptime_seconds": self.uptime_seconds,
            "pid": os.getpid(),
            "session": {
                "active": state.is_active,
                "is_break": state.is_break,
                "time_remaining": self.manager.remaining_display,
            },
            "cloud_sync": self.manager.cloud.status if self.manager.cloud else None,
            "companion_pending": self.manager.companion.pending_context is not None,
            "sessions_completed": self.sessions_completed,
        }
