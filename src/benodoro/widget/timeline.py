"""Widget timelines: future display frames for a session and a refresh policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from benodoro.session.state import DEFAULT_DURATION, SessionState, format_remaining

ENTRY_INTERVAL = timedelta(minutes=1)


class RefreshKind(Enum):
    IMMEDIATELY = "immediately"
    AT_END = "at_end"


@dataclass(frozen=True)
class RefreshPolicy:
    """When the host should ask for a new timeline."""
    kind: RefreshKind
    reload_at: datetime

    @classmethod
    def immediately(cls, now: datetime) -> RefreshPolicy:
        return cls(RefreshKind.IMMEDIATELY, now)

    @classmethod
    def at_end(cls, end_time: datetime) -> RefreshPolicy:
        return cls(RefreshKind.AT_END, end_time)


@dataclass(frozen=True)
class TimelineEntry:
    """One frame. The host renders ``end_time`` with a live countdown."""
    date: datetime
    end_time: datetime
    is_break: bool

    @property
    def label(self) -> str:
        return "Break" if self.is_break else "Focus"

    def countdown(self, at: datetime | None = None) -> str:
        """Live timer text as seen at ``at`` (defaults to the entry date)."""
        at = at or self.date
        return format_remaining(max(self.end_time - at, timedelta(0)))


@dataclass(frozen=True)
class Timeline:
    entries: list[TimelineEntry] = field(default_factory=list)
    policy: RefreshPolicy | None = None


def placeholder(now: datetime) -> TimelineEntry:
    """Entry shown in galleries before real data is available."""
    return TimelineEntry(date=now, end_time=now + DEFAULT_DURATION, is_break=False)


def snapshot(state: SessionState, now: datetime) -> TimelineEntry:
    """Single entry describing ``state`` at ``now``."""
    end_time = state.end_time
    if end_time is None:
        return TimelineEntry(date=now, end_time=now, is_break=False)
    return TimelineEntry(date=now, end_time=end_time, is_break=state.is_break)


def build_timeline(
    state: SessionState,
    now: datetime,
    interval: timedelta = ENTRY_INTERVAL,
) -> Timeline:
    """Frames from ``now`` until the session ends.

    Idle or expired sessions get a single frame and ask for an immediate
    refresh. Active sessions get one frame per ``interval`` plus a final
    frame exactly at the end, and refresh when the session ends.
    """
    if interval <= timedelta(0):
        raise ValueError("Timeline interval must be positive")

    end_time = state.end_time
    if end_time is None:
        entry = TimelineEntry(date=now, end_time=now, is_break=state.is_break)
        return Timeline(entries=[entry], policy=RefreshPolicy.immediately(now))

    if end_time <= now:
        entry = TimelineEntry(date=now, end_time=end_time, is_break=state.is_break)
        return Timeline(entries=[entry], policy=RefreshPolicy.immediately(now))

    entries: list[TimelineEntry] = []
    current = now
    while current <= end_time:
        entries.append(TimelineEntry(date=current, end_time=end_time, is_break=state.is_break))
        current += interval

    if entries[-1].date != end_time:
        entries.append(TimelineEntry(date=end_time, end_time=end_time, is_break=state.is_break))

    return Timeline(entries=entries, policy=RefreshPolicy.at_end(end_time))
