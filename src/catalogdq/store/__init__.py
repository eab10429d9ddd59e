"""Record store abstraction.

Components receive a store handle explicitly; ``InMemoryRecordStore``
backs tests and file-based batch runs.
"""

from catalogdq.store.base import RecordStore
from catalogdq.store.errors import (
    ForeignKeyViolation,
    MissingColumnError,
    RecordNotFoundError,
    StoreError,
    StoreWriteError,
)
from catalogdq.store.memory import InMemoryRecordStore, Table

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "Table",
    "StoreError",
    "RecordNotFoundError",
    "StoreWriteError",
    "ForeignKeyViolation",
    "MissingColumnError",
]
