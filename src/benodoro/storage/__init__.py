"""Shared local storage read by widgets."""

from benodoro.storage.database import Database
from benodoro.storage.local_mirror import LocalMirror, MemoryDefaults, SharedDefaults, SqliteDefaults

__all__ = ["Database", "LocalMirror", "MemoryDefaults", "SharedDefaults", "SqliteDefaults"]
