"""Timeline provider for widget and complication hosts."""

from __future__ import annotations

import logging
from datetime import timedelta

from benodoro.session.manager import SessionManager
from benodoro.widget.timeline import ENTRY_INTERVAL, Timeline, TimelineEntry, build_timeline, snapshot

logger = logging.getLogger(__name__)


class WidgetProvider:
    """Builds widget timelines from the local mirror.

    With ``refresh_from_cloud`` the remote record is fetched first, as a
    widget woken by the host may hold a state older than the cloud's.
    """

    def __init__(
        self,
        manager: SessionManager,
        interval: timedelta = ENTRY_INTERVAL,
        refresh_from_cloud: bool = True,
    ):
        self.manager = manager
        self.interval = interval
        self.refresh_from_cloud = refresh_from_cloud

    async def _load(self) -> None:
        await self.manager.restore()
        if self.refresh_from_cloud:
            await self.manager.load_from_cloud()

    async def snapshot(self) -> TimelineEntry:
        await self._load()
        return snapshot(self.manager.state, self.manager.clock())

    async def timeline(self) -> Timeline:
        await self._load()
        timeline = build_timeline(self.manager.state, self.manager.clock(), self.interval)
        logger.debug(f"Built widget timeline with {len(timeline.entries)} entries")
        return timeline
