"""Shared data types for catalogdq.

Domain-specific types live closer to their consumers:
- Candidate types → catalogdq.candidates.models
- Confidence types → catalogdq.scoring.models
- Merge types → catalogdq.merge.models
"""

from catalogdq.models.fields import (
    CELEBRITY_SCHEMA,
    ENTITY_SCHEMAS,
    MOVIE_SCHEMA,
    DependentTable,
    EntitySchema,
    FieldCategory,
    FieldDescriptor,
    FieldType,
    SchemaValidationError,
    get_schema,
    is_empty,
    slugify,
)
from catalogdq.models.records import RESERVED_ATTRIBUTES, Record
from catalogdq.models.sources import SOURCE_RELIABILITY, FieldSource, FieldSourceLedger

__all__ = [
    # Field registry
    "FieldType",
    "FieldCategory",
    "FieldDescriptor",
    "DependentTable",
    "EntitySchema",
    "SchemaValidationError",
    "MOVIE_SCHEMA",
    "CELEBRITY_SCHEMA",
    "ENTITY_SCHEMAS",
    "get_schema",
    "is_empty",
    "slugify",
    # Records
    "Record",
    "RESERVED_ATTRIBUTES",
    # Provenance
    "FieldSource",
    "FieldSourceLedger",
    "SOURCE_RELIABILITY",
]
