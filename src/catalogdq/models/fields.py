"""Closed field-descriptor registry for catalog entities.

Every field the engine knows about is declared exactly once here, together
with its value type, importance weight, category and merge behaviour.
Records are validated against these descriptors when they are loaded, so
downstream components (matcher, scorer, merge resolver) never encounter an
unrecognised field.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = [
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
]

MIN_IMPORTANCE = 0.2
MAX_IMPORTANCE = 1.0

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


class SchemaValidationError(ValueError):
    """Raised when a record or schema violates the field registry."""


class FieldType(StrEnum):
    """Value type of a field."""

    STRING = "string"
    NUMBER = "number"
    STRING_LIST = "string_list"


class FieldCategory(StrEnum):
    """Grouping used for per-category confidence scores."""

    CORE_IDENTITY = "core_identity"
    COLLABORATORS = "collaborators"
    DESCRIPTIVE = "descriptive"
    VISUAL = "visual"
    RATINGS = "ratings"


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Static description of a single record field.

    Attributes
    ----------
    name : str
        Field name as stored on the record.
    type : FieldType
        Expected value type.
    importance : float
        Weight in the overall confidence average, in [0.2, 1.0].
    category : FieldCategory
        Category for per-category confidence.
    mergeable : bool
        Whether the merge resolver may fill this field from a loser record.
    completeness_points : int
        Points awarded towards the survivor-selection completeness score.
    """

    name: str
    type: FieldType
    importance: float
    category: FieldCategory
    mergeable: bool = True
    completeness_points: int = 0

    def __post_init__(self) -> None:
        """Validate importance weight range."""
        if not MIN_IMPORTANCE <= self.importance <= MAX_IMPORTANCE:
            raise SchemaValidationError(
                f"importance for {self.name!r} must be in "
                f"[{MIN_IMPORTANCE}, {MAX_IMPORTANCE}], got {self.importance}"
            )

    def validate_value(self, value: Any) -> None:
        """Check that *value* matches the declared type.

        ``None`` is always accepted (an expected-but-missing value).

        Raises
        ------
        SchemaValidationError
            If the value has the wrong type.
        """
        if value is None:
            return

        if self.type is FieldType.STRING:
            ok = isinstance(value, str)
        elif self.type is FieldType.NUMBER:
            ok = isinstance(value, int | float) and not isinstance(value, bool)
        else:
            ok = isinstance(value, list) and all(isinstance(v, str) for v in value)

        if not ok:
            raise SchemaValidationError(
                f"field {self.name!r} expects {self.type.value}, got {type(value).__name__}"
            )


@dataclass(frozen=True, slots=True)
class DependentTable:
    """A table whose rows hold a foreign key to an entity record."""

    table: str
    column: str


@dataclass(frozen=True)
class EntitySchema:
    """Field registry and structural metadata for one entity type.

    Attributes
    ----------
    entity_type : str
        Partition key (e.g. ``"movie"``).
    title_field : str
        Field compared by the similarity matcher.
    temporal_field : str
        Field used for the year tolerance window.
    fields : tuple[FieldDescriptor, ...]
        All known fields, in declaration order.
    dependent_tables : tuple[DependentTable, ...]
        Tables holding foreign keys to records of this type.
    """

    entity_type: str
    title_field: str
    temporal_field: str
    fields: tuple[FieldDescriptor, ...]
    dependent_tables: tuple[DependentTable, ...] = ()
    _index: dict[str, FieldDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Index descriptors by name and check structural fields exist."""
        index: dict[str, FieldDescriptor] = {}
        for descriptor in self.fields:
            if descriptor.name in index:
                raise SchemaValidationError(
                    f"duplicate field {descriptor.name!r} in {self.entity_type} schema"
                )
            index[descriptor.name] = descriptor
        object.__setattr__(self, "_index", index)

        for required in (self.title_field, self.temporal_field):
            if required not in index:
                raise SchemaValidationError(
                    f"{self.entity_type} schema does not declare {required!r}"
                )

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def descriptor(self, name: str) -> FieldDescriptor:
        """Return the descriptor for *name*.

        Raises
        ------
        SchemaValidationError
            If the field is not declared for this entity type.
        """
        try:
            return self._index[name]
        except KeyError:
            raise SchemaValidationError(
                f"unknown field {name!r} for entity type {self.entity_type!r}"
            ) from None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.fields)

    def mergeable_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(d for d in self.fields if d.mergeable)

    def validate(self, values: dict[str, Any]) -> None:
        """Validate every key and value of a record field map."""
        for name, value in values.items():
            self.descriptor(name).validate_value(value)

    def natural_key(self, values: dict[str, Any]) -> str | None:
        """Build the stable natural key ``<slug>-<temporal>`` for a record.

        A stored ``slug`` field takes precedence over the derived one.
        Returns ``None`` when the record has no usable title.
        """
        stored = values.get("slug")
        if not is_empty(stored):
            return str(stored)

        title = values.get(self.title_field)
        if is_empty(title):
            return None

        base = slugify(str(title))
        if not base:
            return None

        temporal = values.get(self.temporal_field)
        suffix = "tba" if is_empty(temporal) else str(int(temporal))
        return f"{base}-{suffix}"


def is_empty(value: Any) -> bool:
    """Return True for None, blank strings and empty lists.

    Zero is a present number.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list | tuple):
        return len(value) == 0
    return False


def slugify(text: str) -> str:
    """Lowercase ASCII slug with hyphen separators."""
    ascii_text = (
        unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii").lower()
    )
    return _SLUG_STRIP_RE.sub("-", ascii_text).strip("-")


# ---------------------------------------------------------------------------
# Entity schemas
# ---------------------------------------------------------------------------

_S = FieldType.STRING
_N = FieldType.NUMBER
_L = FieldType.STRING_LIST

_CORE = FieldCategory.CORE_IDENTITY
_COLLAB = FieldCategory.COLLABORATORS
_DESC = FieldCategory.DESCRIPTIVE
_VISUAL = FieldCategory.VISUAL
_RATINGS = FieldCategory.RATINGS

MOVIE_SCHEMA = EntitySchema(
    entity_type="movie",
    title_field="title_en",
    temporal_field="release_year",
    fields=(
        FieldDescriptor("title_en", _S, 1.0, _CORE, completeness_points=20),
        FieldDescriptor("title_te", _S, 0.6, _CORE, completeness_points=10),
        FieldDescriptor("slug", _S, 0.4, _CORE, completeness_points=20),
        FieldDescriptor("release_year", _N, 0.9, _CORE, completeness_points=20),
        FieldDescriptor("language", _S, 0.5, _CORE),
        FieldDescriptor("tmdb_id", _N, 0.7, _CORE, completeness_points=15),
        FieldDescriptor("imdb_id", _S, 0.7, _CORE, completeness_points=10),
        FieldDescriptor("director", _S, 0.9, _COLLAB, completeness_points=10),
        FieldDescriptor("hero", _S, 0.9, _COLLAB),
        FieldDescriptor("heroine", _S, 0.7, _COLLAB),
        FieldDescriptor("music_director", _S, 0.5, _COLLAB, completeness_points=5),
        FieldDescriptor("producer", _S, 0.4, _COLLAB, completeness_points=5),
        FieldDescriptor("supporting_cast", _L, 0.3, _COLLAB),
        FieldDescriptor("synopsis", _S, 0.6, _DESC, completeness_points=5),
        FieldDescriptor("genres", _L, 0.5, _DESC),
        FieldDescriptor("runtime_minutes", _N, 0.3, _DESC),
        FieldDescriptor("poster_url", _S, 0.6, _VISUAL, completeness_points=10),
        FieldDescriptor("backdrop_url", _S, 0.2, _VISUAL),
        FieldDescriptor("avg_rating", _N, 0.4, _RATINGS),
        FieldDescriptor("total_reviews", _N, 0.2, _RATINGS),
    ),
    dependent_tables=(
        DependentTable("movie_reviews", "movie_id"),
        DependentTable("user_ratings", "movie_id"),
        DependentTable("movie_ratings", "movie_id"),
        DependentTable("career_milestones", "movie_id"),
    ),
)

CELEBRITY_SCHEMA = EntitySchema(
    entity_type="celebrity",
    title_field="name_en",
    temporal_field="birth_year",
    fields=(
        FieldDescriptor("name_en", _S, 1.0, _CORE, completeness_points=20),
        FieldDescriptor("name_te", _S, 0.6, _CORE, completeness_points=10),
        FieldDescriptor("slug", _S, 0.4, _CORE, completeness_points=20),
        FieldDescriptor("birth_year", _N, 0.7, _CORE, completeness_points=10),
        FieldDescriptor("gender", _S, 0.8, _CORE, completeness_points=10),
        FieldDescriptor("tmdb_id", _N, 0.7, _CORE, completeness_points=15),
        FieldDescriptor("imdb_id", _S, 0.7, _CORE, completeness_points=10),
        FieldDescriptor("wikidata_id", _S, 0.6, _CORE, completeness_points=10),
        FieldDescriptor("occupation", _L, 0.5, _COLLAB, completeness_points=5),
        FieldDescriptor("short_bio", _S, 0.6, _DESC, completeness_points=5),
        FieldDescriptor("profile_image", _S, 0.6, _VISUAL, completeness_points=10),
        FieldDescriptor("popularity_score", _N, 0.3, _RATINGS),
        FieldDescriptor("movie_count", _N, 0.2, _RATINGS),
    ),
    dependent_tables=(
        DependentTable("career_milestones", "celebrity_id"),
        DependentTable("celebrity_awards", "celebrity_id"),
        DependentTable("movie_cast", "celebrity_id"),
    ),
)

ENTITY_SCHEMAS: dict[str, EntitySchema] = {
    MOVIE_SCHEMA.entity_type: MOVIE_SCHEMA,
    CELEBRITY_SCHEMA.entity_type: CELEBRITY_SCHEMA,
}


def get_schema(entity_type: str) -> EntitySchema:
    """Look up the schema for *entity_type*.

    Raises
    ------
    SchemaValidationError
        If the entity type is unknown.
    """
    try:
        return ENTITY_SCHEMAS[entity_type]
    except KeyError:
        known = ", ".join(sorted(ENTITY_SCHEMAS))
        raise SchemaValidationError(
            f"unknown entity type {entity_type!r} (known: {known})"
        ) from None
