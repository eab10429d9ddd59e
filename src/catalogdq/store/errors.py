"""Record store error taxonomy.

- ``RecordNotFoundError``: a referenced record id does not exist
- ``StoreWriteError``: an update, reassignment or delete was rejected
- ``ForeignKeyViolation``: a delete is blocked by a referencing row
- ``MissingColumnError``: a dependent table or its key column is absent
"""

__all__ = [
    "StoreError",
    "RecordNotFoundError",
    "StoreWriteError",
    "ForeignKeyViolation",
    "MissingColumnError",
]


class StoreError(Exception):
    """Base class for record store failures."""


class RecordNotFoundError(StoreError, LookupError):
    """Raised when a record id is not present in the store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"record not found: {record_id}")
        self.record_id = record_id


class StoreWriteError(StoreError):
    """Raised when a store write is rejected."""


class ForeignKeyViolation(StoreWriteError):
    """Raised when deleting a record still referenced by a dependent row."""

    def __init__(self, record_id: str, table: str, column: str, count: int) -> None:
        super().__init__(
            f"cannot delete {record_id}: {count} row(s) in {table}.{column} still reference it"
        )
        self.record_id = record_id
        self.table = table
        self.column = column
        self.count = count


class MissingColumnError(StoreWriteError):
    """Raised when a dependent table or foreign-key column does not exist."""

    def __init__(self, table: str, column: str) -> None:
        super().__init__(f"table {table!r} has no column {column!r}")
        self.table = table
        self.column = column
