"""Data models for record confidence scoring."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = ["VerificationStatus", "FieldScore", "ConfidenceScore"]


class VerificationStatus(StrEnum):
    """Coarse trust classification of a record's overall score."""

    UNVERIFIED = "unverified"
    PARTIAL = "partial"
    VERIFIED = "verified"
    EXPERT_VERIFIED = "expert_verified"

    @classmethod
    def from_score(cls, overall: float) -> "VerificationStatus":
        """Classify an overall score (>=0.95, >=0.85, >=0.60, else)."""
        if overall >= 0.95:
            return cls.EXPERT_VERIFIED
        if overall >= 0.85:
            return cls.VERIFIED
        if overall >= 0.60:
            return cls.PARTIAL
        return cls.UNVERIFIED


@dataclass(frozen=True, slots=True)
class FieldScore:
    """Per-field score with the adjustments that produced it.

    Attributes
    ----------
    field_name : str
        Scored field.
    score : float
        Final score in [0, 1].
    base : float
        Starting score before adjustments.
    adjustments : tuple[str, ...]
        Applied adjustments in evaluation order (e.g. ``"verified+0.15"``).
    """

    field_name: str
    score: float
    base: float
    adjustments: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_name": self.field_name,
            "score": self.score,
            "base": self.base,
            "adjustments": list(self.adjustments),
        }


@dataclass
class ConfidenceScore:
    """Confidence annotation of one record.

    Attributes
    ----------
    overall : float
        Importance-weighted mean of present field scores.
    by_field : dict[str, float]
        Score per present field.
    by_category : dict[str, float]
        Unweighted mean per category; categories with no present field
        are absent rather than zero.
    verification_status : VerificationStatus
        Classification of ``overall``.
    needs_review : bool
        True when overall < 0.70 or more than three fields score < 0.70.
    breakdown : dict[str, FieldScore]
        Adjustment trail per field.
    as_of : str | None
        Reference timestamp used for staleness checks.
    """

    overall: float
    by_field: dict[str, float]
    by_category: dict[str, float]
    verification_status: VerificationStatus
    needs_review: bool
    breakdown: dict[str, FieldScore] = field(default_factory=dict)
    as_of: str | None = None

    @property
    def weak_fields(self) -> list[str]:
        """Fields scoring below the review threshold, sorted."""
        return sorted(name for name, score in self.by_field.items() if score < 0.70)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary persisted as the record annotation."""
        return {
            "overall": self.overall,
            "by_field": dict(sorted(self.by_field.items())),
            "by_category": dict(sorted(self.by_category.items())),
            "verification_status": self.verification_status.value,
            "needs_review": self.needs_review,
            "as_of": self.as_of,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfidenceScore":
        """Create from a persisted annotation (breakdown is not stored)."""
        return cls(
            overall=float(data["overall"]),
            by_field={k: float(v) for k, v in data.get("by_field", {}).items()},
            by_category={k: float(v) for k, v in data.get("by_category", {}).items()},
            verification_status=VerificationStatus(data["verification_status"]),
            needs_review=bool(data["needs_review"]),
            as_of=data.get("as_of"),
        )
