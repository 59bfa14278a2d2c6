"""Cloud sync for mirroring the session state to a single remote record."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from benodoro.session.state import SessionState, utcnow
from benodoro.sync.cloud_store import (
    RECORD_NAME,
    RECORD_TYPE,
    SUBSCRIPTION_ID,
    CloudRecord,
    CloudStoreError,
    RecordNotFound,
    RecordStore,
    RecordSubscription,
    state_from_record,
    update_fields,
)

logger = logging.getLogger(__name__)


class FetchStatus(Enum):
    """Outcome of reading the remote record."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class FetchResult:
    """Result of a remote fetch; ``state`` is set only when FOUND."""
    status: FetchStatus
    state: SessionState | None = None
    error: Exception | None = None
    record: CloudRecord | None = None

    @classmethod
    def found(cls, record: CloudRecord) -> FetchResult:
        return cls(FetchStatus.FOUND, state=state_from_record(record), record=record)

    @classmethod
    def not_found(cls) -> FetchResult:
        return cls(FetchStatus.NOT_FOUND)

    @classmethod
    def failed(cls, error: Exception) -> FetchResult:
        return cls(FetchStatus.FAILED, error=error)


class CloudSync:
    """Keeps one named record in the cloud store in step with local state.

    Reads never raise: they return a FetchResult. Writes fetch the existing
    record (or build a new one), overwrite its fields and save it, with no
    concurrency token, so the last save the store accepts wins. Writes from
    this process are serialized in the order they were issued. A disabled
    sync reads as NOT_FOUND and drops writes without touching the store.
    """

    def __init__(
        self,
        store: RecordStore,
        record_name: str = RECORD_NAME,
        record_type: str = RECORD_TYPE,
        poll_interval: float = 5.0,
        enabled: bool = True,
    ):
        self.store = store
        self.record_name = record_name
        self.record_type = record_type
        self.poll_interval = poll_interval
        self.enabled = enabled
        self._running = False
        self._task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()
        self._last_fetch: datetime | None = None
        self._last_push: datetime | None = None
        self._last_error: str | None = None

    async def fetch_state(self) -> FetchResult:
        """Read the remote record."""
        if not self.enabled:
            return FetchResult.not_found()

        try:
            record = await self.store.fetch(self.record_name)
            result = FetchResult.found(record)
        except RecordNotFound:
            logger.info("No session record found in the cloud. This is normal on first run.")
            return FetchResult.not_found()
        except CloudStoreError as e:
            logger.error(f"Error fetching session record: {e}")
            self._last_error = str(e)
            return FetchResult.failed(e)
        except Exception as e:
            logger.error(f"Unexpected error fetching session record: {e}")
            self._last_error = str(e)
            return FetchResult.failed(e)

        self._last_fetch = utcnow()
        return result

    async def push_state(self, state: SessionState) -> bool:
        """Upsert the remote record from ``state``. Returns True on save."""
        if not self.enabled:
            return False

        async with self._write_lock:
            try:
                record = await self.store.fetch(self.record_name)
            except RecordNotFound:
                record = CloudRecord(record_name=self.record_name, record_type=self.record_type)
            except Exception as e:
                logger.error(f"Error fetching session record before save: {e}")
                self._last_error = str(e)
                return False

            update_fields(record, state)

            try:
                await self.store.save(record)
            except Exception as e:
                logger.error(f"Error saving session record to the cloud: {e}")
                self._last_error = str(e)
                return False

            self._last_push = utcnow()
            logger.info("Session record saved to the cloud")
            return True

    async def register_subscription(self, callback_url: str) -> bool:
        """Ask the store to call ``callback_url`` when the record changes."""
        if not self.enabled:
            return False

        subscription = RecordSubscription(
            subscription_id=SUBSCRIPTION_ID,
            record_type=self.record_type,
            callback_url=callback_url,
        )
        try:
            await self.store.save_subscription(subscription)
        except Exception as e:
            logger.error(f"Error setting up cloud subscription: {e}")
            self._last_error = str(e)
            return False
        logger.info("Cloud subscription set up")
        return True

    async def start(self, on_poll: Callable[[], Awaitable[Any]]) -> None:
        """Start periodic polling, calling ``on_poll`` every interval."""
        if not self.enabled:
            logger.info("Cloud sync is disabled")
            return
        if self._running:
            return

        self._running = True
        logger.info(f"Starting cloud sync for record {self.record_name}")
        self._task = asyncio.create_task(self._poll_loop(on_poll))

    async def stop(self) -> None:
        """Stop periodic polling."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cloud sync stopped")

    async def close(self) -> None:
        await self.stop()
        await self.store.close()

    async def _poll_loop(self, on_poll: Callable[[], Awaitable[Any]]) -> None:
        """Main poll loop. Each poll completes before the next is issued."""
        while self._running:
            await asyncio.sleep(self.poll_interval)
            try:
                await on_poll()
            except Exception as e:
                logger.error(f"Cloud poll error: {e}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def status(self) -> dict[str, Any]:
        """Get sync status."""
        return {
            "enabled": self.enabled,
            "record_name": self.record_name,
            "running": self._running,
            "last_fetch": self._last_fetch.isoformat() if self._last_fetch else None,
            "last_push": self._last_push.isoformat() if self._last_push else None,
            "last_error": self._last_error,
        }
