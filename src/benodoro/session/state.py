"""Pomodoro session state and its wire encodings."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

DEFAULT_DURATION = timedelta(minutes=25)
MAX_DURATION = timedelta(days=365)

# Latest start time whose end still fits in a datetime
LATEST_START = datetime.max.replace(tzinfo=timezone.utc) - MAX_DURATION

# Keys shared by the local mirror and the companion payload
KEY_START_TIME = "startTime"
KEY_DURATION = "duration"
KEY_IS_BREAK = "isBreak"
KEY_UPDATED_AT = "updatedAt"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch(value: datetime | None) -> float:
    """Encode a timestamp as epoch seconds, 0 meaning absent."""
    if value is None:
        return 0.0
    return value.timestamp()


def _to_seconds(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds


def checked_start(value: datetime | None) -> datetime | None:
    """Drop start times so late that adding a duration would overflow."""
    if value is None or value > LATEST_START:
        return None
    return value


def from_epoch(value: Any) -> datetime | None:
    """Decode epoch seconds; zero, negative or malformed values mean absent."""
    seconds = _to_seconds(value)
    if seconds is None:
        return None
    try:
        return checked_start(datetime.fromtimestamp(seconds, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


def to_duration(value: Any) -> timedelta:
    """Decode a duration in seconds, falling back to the default."""
    seconds = _to_seconds(value)
    if seconds is None:
        return DEFAULT_DURATION
    try:
        duration = timedelta(seconds=seconds)
    except OverflowError:
        return DEFAULT_DURATION
    return duration if duration <= MAX_DURATION else DEFAULT_DURATION


def to_flag(value: Any) -> bool:
    """Decode a boolean field; anything that is not a bool reads as False."""
    return value if isinstance(value, bool) else False


def format_remaining(remaining: timedelta) -> str:
    """Format a time span as MM:SS, truncating fractional seconds."""
    total_seconds = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


@dataclass(frozen=True)
class SessionState:
    """One focus or break interval.

    ``start_time`` of ``None`` is the idle state. ``updated_at`` stamps the
    mutation that produced the state and drives conflict resolution.
    """

    start_time: datetime | None = None
    duration: timedelta = DEFAULT_DURATION
    is_break: bool = False
    updated_at: datetime | None = None

    @classmethod
    def idle(cls, duration: timedelta = DEFAULT_DURATION, updated_at: datetime | None = None) -> SessionState:
        """The reset state produced by stopping a session."""
        return cls(duration=duration, updated_at=updated_at)

    @property
    def is_active(self) -> bool:
        return self.start_time is not None

    @property
    def end_time(self) -> datetime | None:
        if self.start_time is None:
            return None
        return self.start_time + self.duration

    def time_remaining(self, now: datetime | None = None) -> timedelta:
        """Time left in the session, never negative and zero when idle."""
        end = self.end_time
        if end is None:
            return timedelta(0)
        now = now or utcnow()
        return max(end - now, timedelta(0))

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.is_active and self.time_remaining(now) == timedelta(0)

    def remaining_display(self, now: datetime | None = None) -> str:
        """Time remaining as MM:SS for menu bars and widgets."""
        return format_remaining(self.time_remaining(now))

    def to_payload(self) -> dict[str, Any]:
        """Loosely typed map used by the local mirror and companion channel."""
        return {
            KEY_START_TIME: to_epoch(self.start_time),
            KEY_DURATION: self.duration.total_seconds(),
            KEY_IS_BREAK: self.is_break,
            KEY_UPDATED_AT: to_epoch(self.updated_at),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SessionState:
        """Decode a loosely typed map, applying the defaults for missing fields."""
        return cls(
            start_time=from_epoch(payload.get(KEY_START_TIME)),
            duration=to_duration(payload.get(KEY_DURATION)),
            is_break=to_flag(payload.get(KEY_IS_BREAK)),
            updated_at=from_epoch(payload.get(KEY_UPDATED_AT)),
        )
