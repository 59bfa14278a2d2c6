"""Single-record cloud store clients."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import aiohttp

from benodoro.session.state import (
    KEY_DURATION,
    KEY_IS_BREAK,
    KEY_START_TIME,
    KEY_UPDATED_AT,
    SessionState,
    checked_start,
    to_duration,
    to_flag,
    utcnow,
)

RECORD_TYPE = "PomodoroState"
RECORD_NAME = "currentPomodoroState"
SUBSCRIPTION_ID = "PomodoroStateChanges"


class CloudStoreError(Exception):
    """A record store operation failed."""


class RecordNotFound(CloudStoreError):
    """The requested record does not exist yet."""


@dataclass
class CloudRecord:
    """A named record with loosely typed fields."""
    record_name: str
    record_type: str = RECORD_TYPE
    fields: dict[str, Any] = field(default_factory=dict)
    modified_at: datetime | None = None
    change_tag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordName": self.record_name,
            "recordType": self.record_type,
            "fields": dict(self.fields),
            "modifiedAt": self.modified_at.isoformat() if self.modified_at else None,
            "changeTag": self.change_tag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CloudRecord:
        modified_at = data.get("modifiedAt")
        return cls(
            record_name=data["recordName"],
            record_type=data.get("recordType", RECORD_TYPE),
            fields=dict(data.get("fields") or {}),
            modified_at=_parse_timestamp(modified_at),
            change_tag=data.get("changeTag"),
        )


@dataclass
class RecordSubscription:
    """Ask the store to call back when records of a type change."""
    subscription_id: str
    record_type: str
    callback_url: str
    fires_on: list[str] = field(default_factory=lambda: ["create", "update"])

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscriptionId": self.subscription_id,
            "recordType": self.record_type,
            "callbackUrl": self.callback_url,
            "firesOn": list(self.fires_on),
        }


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def update_fields(record: CloudRecord, state: SessionState) -> CloudRecord:
    """Overwrite the record's session fields from ``state``."""
    record.fields[KEY_START_TIME] = state.start_time.isoformat() if state.start_time else None
    record.fields[KEY_DURATION] = state.duration.total_seconds()
    record.fields[KEY_IS_BREAK] = state.is_break
    record.fields[KEY_UPDATED_AT] = state.updated_at.isoformat() if state.updated_at else None
    return record


def state_from_record(record: CloudRecord) -> SessionState:
    """Build a state from record fields, defaulting what is missing."""
    fields = record.fields
    return SessionState(
        start_time=checked_start(_parse_timestamp(fields.get(KEY_START_TIME))),
        duration=to_duration(fields.get(KEY_DURATION)),
        is_break=to_flag(fields.get(KEY_IS_BREAK)),
        updated_at=_parse_timestamp(fields.get(KEY_UPDATED_AT)),
    )


class RecordStore:
    """Fetch-by-name and upsert-by-name on one container."""

    async def fetch(self, record_name: str) -> CloudRecord:
        raise NotImplementedError

    async def save(self, record: CloudRecord) -> CloudRecord:
        raise NotImplementedError

    async def save_subscription(self, subscription: RecordSubscription) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class NullRecordStore(RecordStore):
    """Store for installs without cloud sync: always empty, drops writes."""

    async def fetch(self, record_name: str) -> CloudRecord:
        raise RecordNotFound(record_name)

    async def save(self, record: CloudRecord) -> CloudRecord:
        return record

    async def save_subscription(self, subscription: RecordSubscription) -> None:
        pass


class InMemoryRecordStore(RecordStore):
    """Process-local store.

    Saves are accepted in arrival order and the last one wins, like the real
    store without change tags.
    """

    def __init__(self) -> None:
        self._records: dict[str, CloudRecord] = {}
        self._subscriptions: dict[str, RecordSubscription] = {}
        self._counter = 0

    async def fetch(self, record_name: str) -> CloudRecord:
        record = self._records.get(record_name)
        if record is None:
            raise RecordNotFound(record_name)
        return CloudRecord.from_dict(record.to_dict())

    async def save(self, record: CloudRecord) -> CloudRecord:
        self._counter += 1
        saved = CloudRecord(
            record_name=record.record_name,
            record_type=record.record_type,
            fields=dict(record.fields),
            modified_at=utcnow(),
            change_tag=str(self._counter),
        )
        self._records[record.record_name] = saved
        return CloudRecord.from_dict(saved.to_dict())

    async def save_subscription(self, subscription: RecordSubscription) -> None:
        self._subscriptions[subscription.subscription_id] = subscription

    @property
    def subscriptions(self) -> list[RecordSubscription]:
        return list(self._subscriptions.values())


class HttpRecordStore(RecordStore):
    """Record store client for the cloud API."""

    def __init__(
        self,
        api_url: str,
        container_id: str,
        timeout_seconds: float = 10.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.container_id = container_id
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @property
    def container_url(self) -> str:
        return f"{self.api_url}/api/containers/{self.container_id}"

    async def fetch(self, record_name: str) -> CloudRecord:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(f"{self.container_url}/records/{record_name}") as resp:
                    if resp.status == 404:
                        raise RecordNotFound(record_name)
                    if resp.status != 200:
                        text = await resp.text()
                        raise CloudStoreError(f"Failed to fetch record: {resp.status} - {text}")
                    return CloudRecord.from_dict(await resp.json())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CloudStoreError(f"Network error fetching record: {e}") from e

    async def save(self, record: CloudRecord) -> CloudRecord:
        payload = {"recordType": record.record_type, "fields": record.fields}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.put(
                    f"{self.container_url}/records/{record.record_name}",
                    json=payload,
                ) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise CloudStoreError(f"Failed to save record: {resp.status} - {text}")
                    return CloudRecord.from_dict(await resp.json())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CloudStoreError(f"Network error saving record: {e}") from e

    async def save_subscription(self, subscription: RecordSubscription) -> None:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(
                    f"{self.container_url}/subscriptions",
                    json=subscription.to_dict(),
                ) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise CloudStoreError(f"Failed to save subscription: {resp.status} - {text}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CloudStoreError(f"Network error saving subscription: {e}") from e
