"""In-memory record store.

Holds records and dependent-table rows in dictionaries and enforces
declared foreign keys on delete. A store can be loaded from and saved to a
JSON snapshot::

    {
      "records": [{"id": ..., "entity_type": ..., "fields": {...}}, ...],
      "tables": {"movie_reviews": {"columns": ["id", "movie_id"], "rows": [...]}},
      "foreign_keys": [{"table": "movie_reviews", "column": "movie_id"}]
    }

Foreign keys are constraints owned by the store, independent of the
dependent tables an entity schema knows about, so a store can hold a
referencing table the merge resolver does not reassign.
"""

import copy
import json
from collections.abc import Collection, Iterable, Mapping
from pathlib import Path
from typing import Any

from catalogdq.models import RESERVED_ATTRIBUTES, Record, SchemaValidationError, get_schema
from catalogdq.store.errors import (
    ForeignKeyViolation,
    MissingColumnError,
    RecordNotFoundError,
    StoreError,
    StoreWriteError,
)
from catalogdq.utils import write_json_atomic

__all__ = ["InMemoryRecordStore", "Table"]


class Table:
    """A dependent table: a fixed column set and a list of row dicts."""

    def __init__(self, name: str, columns: Iterable[str], rows: Iterable[dict[str, Any]] = ()):
        self.name = name
        self.columns = set(columns)
        self.rows: list[dict[str, Any]] = []
        for row in rows:
            self.insert(row)

    def insert(self, row: Mapping[str, Any]) -> None:
        unknown = set(row) - self.columns
        if unknown:
            raise StoreWriteError(f"unknown column(s) for {self.name}: {sorted(unknown)}")
        self.rows.append(dict(row))

    def count(self, column: str, value: str) -> int:
        return sum(1 for row in self.rows if row.get(column) == value)

    def to_dict(self) -> dict[str, Any]:
        return {"columns": sorted(self.columns), "rows": copy.deepcopy(self.rows)}


class InMemoryRecordStore:
    """Dictionary-backed :class:`~catalogdq.store.base.RecordStore`.

    Parameters
    ----------
    records : Iterable[Record], optional
        Initial records.
    tables : Mapping[str, Table] | None, optional
        Dependent tables by name.
    foreign_keys : Iterable[tuple[str, str]] | None, optional
        ``(table, column)`` constraints checked on delete. Defaults to the
        dependent tables declared by every entity schema that exist in
        *tables*.
    """

    def __init__(
        self,
        records: Iterable[Record] = (),
        tables: Mapping[str, Table] | None = None,
        foreign_keys: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._records: dict[str, Record] = {}
        for record in records:
            if record.id in self._records:
                raise StoreError(f"duplicate record id: {record.id}")
            self._records[record.id] = record.copy()

        self.tables: dict[str, Table] = dict(tables or {})

        if foreign_keys is None:
            foreign_keys = self._schema_foreign_keys()
        self.foreign_keys: list[tuple[str, str]] = sorted(set(foreign_keys))

    def _schema_foreign_keys(self) -> list[tuple[str, str]]:
        keys: list[tuple[str, str]] = []
        for entity_type in {r.entity_type for r in self._records.values()}:
            for dep in get_schema(entity_type).dependent_tables:
                table = self.tables.get(dep.table)
                if table is not None and dep.column in table.columns:
                    keys.append((dep.table, dep.column))
        return keys

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def add_table(
        self,
        name: str,
        columns: Iterable[str],
        rows: Iterable[dict[str, Any]] = (),
        foreign_key: str | None = None,
    ) -> Table:
        """Create a dependent table, optionally declaring a foreign key on it."""
        table = Table(name, columns, rows)
        self.tables[name] = table
        if foreign_key is not None:
            if foreign_key not in table.columns:
                raise MissingColumnError(name, foreign_key)
            self.foreign_keys = sorted(set(self.foreign_keys) | {(name, foreign_key)})
        return table

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Return a copy of the rows of *table*."""
        if table not in self.tables:
            raise StoreError(f"unknown table: {table}")
        return copy.deepcopy(self.tables[table].rows)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> Record:
        try:
            return self._records[record_id].copy()
        except KeyError:
            raise RecordNotFoundError(record_id) from None

    def find_by_natural_key(self, entity_type: str, key: str) -> Record | None:
        for record_id in sorted(self._records):
            record = self._records[record_id]
            if record.entity_type == entity_type and record.is_active:
                if record.natural_key == key:
                    return record.copy()
        return None

    def query(
        self,
        entity_type: str,
        *,
        ids: Collection[str] | None = None,
        min_related: int | None = None,
        include_inactive: bool = False,
    ) -> list[Record]:
        wanted = set(ids) if ids is not None else None
        result: list[Record] = []
        for record_id in sorted(self._records):
            record = self._records[record_id]
            if record.entity_type != entity_type:
                continue
            if not include_inactive and not record.is_active:
                continue
            if wanted is not None and record_id not in wanted:
                continue
            if min_related is not None and self.count_dependents(record_id) < min_related:
                continue
            result.append(record.copy())
        return result

    def count_dependents(self, record_id: str) -> int:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)

        total = 0
        for dep in record.schema.dependent_tables:
            table = self.tables.get(dep.table)
            if table is not None and dep.column in table.columns:
                total += table.count(dep.column, record_id)
        return total

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update(self, record_id: str, changes: Mapping[str, Any]) -> Record:
        """Apply *changes* atomically.

        Field keys are validated against the record's schema; the
        reserved keys ``is_active`` and ``confidence`` update the
        corresponding attributes.

        Raises
        ------
        RecordNotFoundError
            If the record does not exist.
        StoreWriteError
            If a change is invalid; the record is left untouched.
        """
        current = self._records.get(record_id)
        if current is None:
            raise RecordNotFoundError(record_id)

        updated = current.copy()
        try:
            for name, value in changes.items():
                if name in RESERVED_ATTRIBUTES:
                    if name == "is_active":
                        value = bool(value)
                    setattr(updated, name, copy.deepcopy(value))
                else:
                    updated.schema.descriptor(name).validate_value(value)
                    updated.fields[name] = copy.deepcopy(value)
        except SchemaValidationError as e:
            raise StoreWriteError(f"invalid update for {record_id}: {e}") from e

        self._records[record_id] = updated
        return updated.copy()

    def delete(self, record_id: str) -> None:
        if record_id not in self._records:
            raise RecordNotFoundError(record_id)

        for table_name, column in self.foreign_keys:
            table = self.tables.get(table_name)
            if table is None:
                continue
            count = table.count(column, record_id)
            if count:
                raise ForeignKeyViolation(record_id, table_name, column, count)

        del self._records[record_id]

    def reassign(self, table: str, column: str, from_id: str, to_id: str) -> int:
        target = self.tables.get(table)
        if target is None or column not in target.columns:
            raise MissingColumnError(table, column)

        changed = 0
        for row in target.rows:
            if row.get(column) == from_id:
                row[column] = to_id
                changed += 1
        return changed

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [self._records[rid].to_dict() for rid in sorted(self._records)],
            "tables": {name: self.tables[name].to_dict() for name in sorted(self.tables)},
            "foreign_keys": [{"table": t, "column": c} for t, c in self.foreign_keys],
        }

    def save(self, path: Path) -> None:
        """Atomically write the store snapshot to *path*."""
        write_json_atomic(path, self.to_dict())

    @classmethod
    def load(cls, path: Path) -> "InMemoryRecordStore":
        """Load a store snapshot.

        Raises
        ------
        StoreError
            If the file cannot be read or does not describe a valid store.
        """
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"cannot read store snapshot {path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise StoreError(f"store snapshot {path} has no 'records' list")

        try:
            records = [Record.from_dict(item) for item in data["records"]]
            tables = {
                name: _table_from_dict(name, spec)
                for name, spec in (data.get("tables") or {}).items()
            }
            foreign_keys = None
            if "foreign_keys" in data:
                foreign_keys = [(fk["table"], fk["column"]) for fk in data["foreign_keys"]]
        except (SchemaValidationError, AttributeError, KeyError, TypeError) as e:
            raise StoreError(f"invalid store snapshot {path}: {e}") from e

        return cls(records, tables, foreign_keys)


def _table_from_dict(name: str, spec: dict[str, Any]) -> Table:
    """Build a table; columns default to the union of the row keys."""
    rows = spec.get("rows") or []
    columns = spec.get("columns") or sorted({key for row in rows for key in row})
    return Table(name, columns, rows)
