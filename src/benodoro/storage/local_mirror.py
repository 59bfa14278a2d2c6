"""Local mirror of the session state in a process-shared key-value store.

The app process writes the mirror on every change; widget processes read it
for a fast, network-free view of the current session. Each field is written
independently, so a reader racing a writer may see a mix of old and new
values.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from benodoro.session.state import (
    KEY_DURATION,
    KEY_IS_BREAK,
    KEY_START_TIME,
    KEY_UPDATED_AT,
    SessionState,
)
from benodoro.storage.database import Database

logger = logging.getLogger(__name__)

KEY_WIDGET_RELOAD = "widgetReloadRequests"


class SharedDefaults:
    """A named key-value suite holding JSON-serializable values."""

    def __init__(self, suite_name: str):
        self.suite_name = suite_name

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryDefaults(SharedDefaults):
    """In-process suite for platforms without a shared container.

    Values do not outlive the process.
    """

    def __init__(self, suite_name: str):
        super().__init__(suite_name)
        self._values: dict[str, Any] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)


class SqliteDefaults(SharedDefaults):
    """Key-value suite persisted in a WAL-mode SQLite file."""

    def __init__(self, suite_name: str, db: Database):
        super().__init__(suite_name)
        self.db = db

    async def open(self) -> None:
        await self.db.connect()

    async def close(self) -> None:
        await self.db.close()

    async def get(self, key: str, default: Any = None) -> Any:
        found, value = await self.db.read_value(self.suite_name, key)
        return value if found else default

    async def set(self, key: str, value: Any) -> None:
        await self.db.write_value(self.suite_name, key, value)

    async def remove(self, key: str) -> None:
        await self.db.delete_value(self.suite_name, key)


class LocalMirror:
    """Reads and writes the session state fields in a shared defaults suite."""

    def __init__(self, defaults: SharedDefaults):
        self.defaults = defaults

    async def write(self, state: SessionState) -> bool:
        """Store the state fields one by one. Failures are logged, not raised."""
        payload = state.to_payload()
        try:
            for key in (KEY_START_TIME, KEY_DURATION, KEY_IS_BREAK, KEY_UPDATED_AT):
                await self.defaults.set(key, payload[key])
        except Exception as e:
            logger.error(f"Failed to write local mirror: {e}")
            return False
        return True

    async def read(self) -> SessionState:
        """Load the state; a missing or sentinel start time reads as idle."""
        payload: dict[str, Any] = {}
        try:
            for key in (KEY_START_TIME, KEY_DURATION, KEY_IS_BREAK, KEY_UPDATED_AT):
                value = await self.defaults.get(key)
                if value is not None:
                    payload[key] = value
        except Exception as e:
            logger.error(f"Failed to read local mirror: {e}")
        return SessionState.from_payload(payload)

    async def request_widget_reload(self, kind: str, requested_at: datetime) -> None:
        """Record that timelines of ``kind`` should be rebuilt."""
        try:
            requests = await self.defaults.get(KEY_WIDGET_RELOAD) or {}
            requests[kind] = requested_at.timestamp()
            await self.defaults.set(KEY_WIDGET_RELOAD, requests)
        except Exception as e:
            logger.error(f"Failed to request widget reload: {e}")
