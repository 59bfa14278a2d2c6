"""Remote mirror of the session state in a cloud record store."""

from benodoro.sync.cloud_store import (
    CloudRecord,
    CloudStoreError,
    HttpRecordStore,
    InMemoryRecordStore,
    NullRecordStore,
    RecordNotFound,
    RecordStore,
)
from benodoro.sync.cloud_sync import CloudSync, FetchResult, FetchStatus

__all__ = [
    "CloudRecord",
    "CloudStoreError",
    "HttpRecordStore",
    "InMemoryRecordStore",
    "NullRecordStore",
    "RecordNotFound",
    "RecordStore",
    "CloudSync",
    "FetchResult",
    "FetchStatus",
]
