"""Session state and change events.

The manager lives in ``benodoro.session.manager``; it depends on the storage,
sync and companion packages, which themselves import the state types here.
"""

from benodoro.session.state import DEFAULT_DURATION, SessionState
from benodoro.session.events import ChangeSource, EventEmitter, StateChanged

__all__ = [
    "DEFAULT_DURATION",
    "SessionState",
    "ChangeSource",
    "EventEmitter",
    "StateChanged",
]
