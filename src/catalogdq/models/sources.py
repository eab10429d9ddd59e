"""Field Source Ledger.

Records which external source supplied each field value, the source's
declared reliability and any human verification. Entries are immutable
and only ever accumulated.
"""

import json
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from catalogdq.models.fields import SchemaValidationError
from catalogdq.utils import parse_iso_timestamp

__all__ = ["FieldSource", "FieldSourceLedger", "SOURCE_RELIABILITY"]

# Declared reliability of known metadata providers
SOURCE_RELIABILITY: dict[str, float] = {
    "tmdb": 0.95,
    "letterboxd": 0.92,
    "imdb": 0.90,
    "rottentomatoes": 0.90,
    "idlebrain": 0.88,
    "bookmyshow": 0.88,
    "wikipedia": 0.85,
    "wikidata": 0.80,
    "omdb": 0.75,
    "archive_org": 0.70,
    "ai_enrichment": 0.60,
}


@dataclass(frozen=True, slots=True)
class FieldSource:
    """Provenance of one field value from one source.

    Attributes
    ----------
    record_id : str
        Record the field belongs to.
    field_name : str
        Field name.
    source_id : str
        Supplying source (e.g. ``"tmdb"``, ``"manual"``).
    reliability : float
        Declared reliability in [0, 1].
    verified_at : datetime | None
        When a human verified the value.
    verified_by : str | None
        Verifier identity; a non-empty value marks human verification.
    value : Any
        Value asserted by the source; None means it attests the
        record's current value.
    machine_generated : bool
        True for AI or other automated extraction.
    """

    record_id: str
    field_name: str
    source_id: str
    reliability: float
    verified_at: datetime | None = None
    verified_by: str | None = None
    value: Any = None
    machine_generated: bool = False

    def __post_init__(self) -> None:
        """Validate reliability range."""
        if not 0.0 <= self.reliability <= 1.0:
            raise SchemaValidationError(
                f"reliability must be in [0, 1], got {self.reliability} "
                f"({self.source_id}/{self.field_name})"
            )

    @property
    def is_human_verified(self) -> bool:
        return bool(self.verified_by and self.verified_by.strip())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "record_id": self.record_id,
            "field_name": self.field_name,
            "source_id": self.source_id,
            "reliability": self.reliability,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verified_by": self.verified_by,
            "value": self.value,
            "machine_generated": self.machine_generated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldSource":
        """Create from dictionary; reliability defaults to the provider table."""
        source_id = data["source_id"]
        reliability = data.get("reliability")
        if reliability is None:
            reliability = SOURCE_RELIABILITY.get(source_id, 0.5)

        verified_at = data.get("verified_at")
        return cls(
            record_id=str(data["record_id"]),
            field_name=data["field_name"],
            source_id=source_id,
            reliability=float(reliability),
            verified_at=parse_iso_timestamp(verified_at) if verified_at else None,
            verified_by=data.get("verified_by"),
            value=data.get("value"),
            machine_generated=bool(data.get("machine_generated", False)),
        )


class FieldSourceLedger:
    """Append-only collection of :class:`FieldSource` entries.

    Entries are indexed by record id and field name for O(1) lookup.
    """

    def __init__(self, entries: Iterable[FieldSource] = ()) -> None:
        self._entries: list[FieldSource] = []
        self._index: dict[str, dict[str, list[FieldSource]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self.extend(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FieldSource]:
        return iter(self._entries)

    def add(self, entry: FieldSource) -> None:
        self._entries.append(entry)
        self._index[entry.record_id][entry.field_name].append(entry)

    def extend(self, entries: Iterable[FieldSource]) -> None:
        for entry in entries:
            self.add(entry)

    def has(self, entry: FieldSource) -> bool:
        """Return True if the same source already asserted the same value for the field."""
        return any(
            existing.source_id == entry.source_id and existing.value == entry.value
            for existing in self._index.get(entry.record_id, {}).get(entry.field_name, [])
        )

    def for_record(self, record_id: str) -> dict[str, list[FieldSource]]:
        """Return ``{field_name: [sources...]}`` for a record (copy)."""
        by_field = self._index.get(record_id, {})
        return {name: list(sources) for name, sources in by_field.items()}

    def for_field(self, record_id: str, field_name: str) -> list[FieldSource]:
        return list(self._index.get(record_id, {}).get(field_name, []))

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    @classmethod
    def load(cls, path: Path) -> "FieldSourceLedger":
        """Load a ledger from a JSON array or JSONL file."""
        text = path.read_text(encoding="utf-8").strip()
        if not text:
            return cls()

        if text.startswith("["):
            items = json.loads(text)
        else:
            items = [json.loads(line) for line in text.splitlines() if line.strip()]

        return cls(FieldSource.from_dict(item) for item in items)

    def save(self, path: Path) -> None:
        """Write the ledger as JSONL (one entry per line)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            for entry in self._entries:
                json.dump(entry.to_dict(), f, ensure_ascii=False, sort_keys=True)
                f.write("\n")
