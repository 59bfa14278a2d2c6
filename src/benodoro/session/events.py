"""State change events scoped to a session manager."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from benodoro.session.state import SessionState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChangeSource(Enum):
    """Where a state change originated."""
    LOCAL = "local"
    MIRROR = "mirror"
    CLOUD = "cloud"
    COMPANION = "companion"


@dataclass(frozen=True)
class StateChanged:
    """Emitted after the state has been replaced and written through."""
    state: SessionState
    source: ChangeSource


Observer = Callable[[T], "Awaitable[None] | None"]


class EventEmitter(Generic[T]):
    """Ordered observer list.

    Observers run in registration order. Coroutine results are awaited before
    the next observer runs, and a failing observer is logged without
    stopping the rest.
    """

    def __init__(self, name: str = "event"):
        self.name = name
        self._observers: list[Observer[T]] = []

    def subscribe(self, observer: Observer[T]) -> Callable[[], None]:
        """Register an observer and return a function that removes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def emit(self, event: T) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in {self.name} observer: {e}")
