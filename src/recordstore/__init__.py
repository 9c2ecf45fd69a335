"""Record store backends for deployable and deployed tables."""

from .base import (
    DEPLOYABLE_INDEX,
    ENV_INDEX,
    VERSION_INDEX,
    PutOperation,
    RecordStore,
    StoreError,
    StoreReadError,
    StoreWriteError,
    UpdateOperation,
)
from .memory import InMemoryRecordStore

__all__ = [
    "DEPLOYABLE_INDEX",
    "ENV_INDEX",
    "VERSION_INDEX",
    "PutOperation",
    "RecordStore",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "UpdateOperation",
    "InMemoryRecordStore",
]
