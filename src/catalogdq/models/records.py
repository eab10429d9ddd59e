"""Record data model.

A record is a single catalog entity (a movie or a person). Its field map
is validated against the entity's :class:`EntitySchema` on construction.
"""

import copy
from dataclasses import dataclass, field
from typing import Any

from catalogdq.models.fields import EntitySchema, SchemaValidationError, get_schema, is_empty

__all__ = ["Record", "RESERVED_ATTRIBUTES"]

# Non-field attributes a store update may change
RESERVED_ATTRIBUTES = frozenset({"is_active", "confidence"})


@dataclass
class Record:
    """A catalog entity record.

    Attributes
    ----------
    id : str
        Stable, immutable identifier.
    entity_type : str
        Partition key; selects the field schema.
    fields : dict[str, Any]
        Field values. Keys present with an empty value are
        "expected but missing"; absent keys are "not applicable".
    is_active : bool
        False once the record has been soft-deleted.
    confidence : dict[str, Any] | None
        Latest confidence annotation, if computed.
    """

    id: str
    entity_type: str
    fields: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    confidence: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        """Validate identifier and field map against the schema."""
        if not self.id:
            raise SchemaValidationError("record id must be a non-empty string")
        self.schema.validate(self.fields)

    @property
    def schema(self) -> EntitySchema:
        return get_schema(self.entity_type)

    @property
    def title(self) -> str | None:
        value = self.fields.get(self.schema.title_field)
        return None if is_empty(value) else str(value)

    @property
    def temporal(self) -> int | None:
        value = self.fields.get(self.schema.temporal_field)
        return None if is_empty(value) else int(value)

    @property
    def natural_key(self) -> str | None:
        return self.schema.natural_key(self.fields)

    def get(self, name: str) -> Any:
        """Return a field value, or None when absent."""
        return self.fields.get(name)

    def has_value(self, name: str) -> bool:
        return not is_empty(self.fields.get(name))

    def copy(self) -> "Record":
        """Deep copy, so stores can hand out records without aliasing."""
        return Record(
            id=self.id,
            entity_type=self.entity_type,
            fields=copy.deepcopy(self.fields),
            is_active=self.is_active,
            confidence=copy.deepcopy(self.confidence),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "fields": copy.deepcopy(self.fields),
            "is_active": self.is_active,
            "confidence": copy.deepcopy(self.confidence),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """Create a record from a dictionary.

        Raises
        ------
        SchemaValidationError
            If required keys are missing or the field map is invalid.
        """
        try:
            record_id = data["id"]
            entity_type = data["entity_type"]
        except KeyError as e:
            raise SchemaValidationError(f"record is missing required key {e.args[0]!r}") from None

        return cls(
            id=str(record_id),
            entity_type=entity_type,
            fields=dict(data.get("fields") or {}),
            is_active=bool(data.get("is_active", True)),
            confidence=data.get("confidence"),
        )
