"""Widget timelines for home-screen and watch-face hosts."""

from benodoro.widget.provider import WidgetProvider
from benodoro.widget.timeline import (
    RefreshKind,
    RefreshPolicy,
    Timeline,
    TimelineEntry,
    build_timeline,
    placeholder,
    snapshot,
)

__all__ = [
    "WidgetProvider",
    "RefreshKind",
    "RefreshPolicy",
    "Timeline",
    "TimelineEntry",
    "build_timeline",
    "placeholder",
    "snapshot",
]
