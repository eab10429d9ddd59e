"""Abstract record store capability set.

The engine never assumes a storage technology; every component receives
a ``RecordStore`` handle explicitly.
"""

from collections.abc import Collection, Mapping
from typing import Any, Protocol, runtime_checkable

from catalogdq.models import Record

__all__ = ["RecordStore"]


@runtime_checkable
class RecordStore(Protocol):
    """Operations the engine consumes from a record store.

    Implementations must make ``update`` and ``delete`` atomic at the
    single-record level.
    """

    def get(self, record_id: str) -> Record:
        """Point lookup by id; raises ``RecordNotFoundError``."""
        ...

    def find_by_natural_key(self, entity_type: str, key: str) -> Record | None:
        """Point lookup by natural key (``<slug>-<year>``)."""
        ...

    def query(
        self,
        entity_type: str,
        *,
        ids: Collection[str] | None = None,
        min_related: int | None = None,
        include_inactive: bool = False,
    ) -> list[Record]:
        """Filtered range query, ordered by id."""
        ...

    def count_dependents(self, record_id: str) -> int:
        """Number of dependent-table rows referencing *record_id*."""
        ...

    def update(self, record_id: str, changes: Mapping[str, Any]) -> Record:
        """Apply field and reserved-attribute changes to one record."""
        ...

    def delete(self, record_id: str) -> None:
        """Hard delete; raises ``ForeignKeyViolation`` when still referenced."""
        ...

    def reassign(self, table: str, column: str, from_id: str, to_id: str) -> int:
        """Rewrite ``table.column`` from *from_id* to *to_id*; returns rows changed."""
        ...
