"""Data models for duplicate candidate pairs.

This module defines the schema for candidate pairs produced by the
similarity matcher.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class MatchType(StrEnum):
    """How a candidate pair matched."""

    EXACT_TITLE_YEAR = "exact_title_year"
    FUZZY_TITLE_YEAR = "fuzzy_title_year"
    ADJACENT_YEAR = "adjacent_year"


class MatchCategory(StrEnum):
    """Coarse category used in reports."""

    EXACT_DUPLICATE = "EXACT_DUPLICATE"
    TITLE_VARIANT = "TITLE_VARIANT"
    YEAR_VARIANT = "YEAR_VARIANT"


@dataclass(frozen=True, slots=True)
class MatchPass:
    """One comparison pass of the matcher.

    Attributes
    ----------
    name : str
        Pass identifier.
    year_delta : int
        Absolute temporal difference compared in this pass.
    threshold : int
        Minimum similarity score (0-100) to emit a candidate.
    """

    name: str
    year_delta: int
    threshold: int

    def __post_init__(self) -> None:
        """Validate pass parameters."""
        if self.year_delta < 0:
            raise ValueError(f"year_delta must be >= 0, got {self.year_delta}")
        if not 0 <= self.threshold <= 100:
            raise ValueError(f"threshold must be in [0, 100], got {self.threshold}")


EXACT_YEAR_PASS = MatchPass(name="exact_year", year_delta=0, threshold=80)
ADJACENT_YEAR_PASS = MatchPass(name="adjacent_year", year_delta=1, threshold=75)
DEFAULT_PASSES = (EXACT_YEAR_PASS, ADJACENT_YEAR_PASS)


@dataclass(frozen=True, slots=True)
class DuplicateCandidate:
    """A pair of records that may represent the same entity.

    Attributes
    ----------
    record_a_id : str
        First record ID (lexicographically smaller).
    record_b_id : str
        Second record ID (lexicographically larger).
    match_type : MatchType
        How the pair matched.
    similarity_score : int
        Title similarity in [0, 100].
    category : MatchCategory
        Report category.
    entity_type : str
        Partition the pair was found in.
    key_a : str | None
        Natural key of record A.
    key_b : str | None
        Natural key of record B.

    Notes
    -----
    record_a_id and record_b_id are always sorted lexicographically to
    ensure a deterministic pair_id.
    """

    record_a_id: str
    record_b_id: str
    match_type: MatchType
    similarity_score: int
    category: MatchCategory
    entity_type: str = ""
    key_a: str | None = None
    key_b: str | None = None

    @property
    def pair_id(self) -> str:
        return f"{self.record_a_id}|{self.record_b_id}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pair_id": self.pair_id,
            "record_a_id": self.record_a_id,
            "record_b_id": self.record_b_id,
            "match_type": self.match_type.value,
            "similarity_score": self.similarity_score,
            "category": self.category.value,
            "entity_type": self.entity_type,
            "key_a": self.key_a,
            "key_b": self.key_b,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DuplicateCandidate":
        """Create from dictionary."""
        return cls(
            record_a_id=data["record_a_id"],
            record_b_id=data["record_b_id"],
            match_type=MatchType(data["match_type"]),
            similarity_score=int(data["similarity_score"]),
            category=MatchCategory(data["category"]),
            entity_type=data.get("entity_type", ""),
            key_a=data.get("key_a"),
            key_b=data.get("key_b"),
        )
