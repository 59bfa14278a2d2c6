"""Paired device channel: immediate messages with a latest-value fallback."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from benodoro.session.state import SessionState

logger = logging.getLogger(__name__)


class CompanionError(Exception):
    """Delivery to the companion failed."""


class CompanionChannel:
    """Companion channel for platforms without a paired device.

    Every operation is a no-op. Subclasses deliver for real.
    """

    async def activate(self) -> None:
        pass

    async def is_reachable(self) -> bool:
        return False

    async def send_message(self, payload: dict[str, Any]) -> None:
        pass

    async def update_application_context(self, payload: dict[str, Any]) -> None:
        pass

    async def flush_context(self) -> bool:
        return False

    async def close(self) -> None:
        pass

    @property
    def pending_context(self) -> dict[str, Any] | None:
        return None

    async def send_state(self, state: SessionState) -> None:
        """Push ``state`` now if the companion is reachable, else queue it as context.

        Errors are logged and swallowed; no acknowledgement is tracked.
        """
        payload = state.to_payload()
        try:
            if await self.is_reachable():
                await self.send_message(payload)
            else:
                await self.update_application_context(payload)
        except CompanionError as e:
            logger.error(f"Error sending update to companion: {e}")
        except Exception as e:
            logger.error(f"Unexpected companion error: {e}")


class HttpCompanionChannel(CompanionChannel):
    """Companion reached over HTTP at the peer app's control surface.

    Application context is latest-value-wins: only the newest payload is
    kept, and it is delivered when the peer answers a health check.
    """

    def __init__(self, peer_url: str, reachability_timeout: float = 1.0, timeout: float = 5.0):
        self.peer_url = peer_url.rstrip("/")
        self._probe_timeout = aiohttp.ClientTimeout(total=reachability_timeout)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._pending_context: dict[str, Any] | None = None
        self._activated = False

    async def activate(self) -> None:
        self._activated = True
        logger.info(f"Companion channel activated for {self.peer_url}")

    @property
    def pending_context(self) -> dict[str, Any] | None:
        return dict(self._pending_context) if self._pending_context is not None else None

    async def is_reachable(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self._probe_timeout) as session:
                async with session.get(f"{self.peer_url}/api/health") as resp:
                    return resp.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def send_message(self, payload: dict[str, Any]) -> None:
        await self._post("/api/companion/message", payload)

    async def update_application_context(self, payload: dict[str, Any]) -> None:
        self._pending_context = dict(payload)
        await self.flush_context()

    async def flush_context(self) -> bool:
        """Deliver the pending context if the peer is up. Returns True on delivery."""
        if self._pending_context is None:
            return False
        if not await self.is_reachable():
            logger.debug("Companion unreachable, keeping application context pending")
            return False

        payload = self._pending_context
        try:
            await self._post("/api/companion/context", payload)
        except CompanionError as e:
            logger.error(f"Error updating application context: {e}")
            return False

        # A newer context may have been queued while this one was in flight
        if self._pending_context is payload:
            self._pending_context = None
        return True

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(f"{self.peer_url}{path}", json=payload) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise CompanionError(f"{path} returned {resp.status} - {text}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CompanionError(f"Network error posting to {path}: {e}") from e
