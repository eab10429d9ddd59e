"""Data models for pairwise merges."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

__all__ = [
    "MergeStatus",
    "MergeProvenanceField",
    "MergeProvenance",
    "MergeOutcome",
    "SOFT_DELETE_ANNOTATION",
]

SOFT_DELETE_ANNOTATION = "soft-delete fallback used"


class MergeStatus(StrEnum):
    """Result of resolving one candidate pair."""

    MERGED = "merged"
    MERGED_SOFT_DELETED = "merged_soft_deleted"
    PLANNED = "planned"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class MergeProvenanceField:
    """Provenance for a single fused field.

    Attributes
    ----------
    from_record : str
        Record id that supplied the value.
    rule : str
        Rule used for selection.
    """

    from_record: str
    rule: str


@dataclass
class MergeProvenance:
    """Field-level provenance of a merge."""

    fields: dict[str, MergeProvenanceField] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            name: {"from_record": prov.from_record, "rule": prov.rule}
            for name, prov in sorted(self.fields.items())
        }


@dataclass
class MergeOutcome:
    """Outcome of resolving one :class:`DuplicateCandidate`.

    Attributes
    ----------
    pair_id : str
        ``"<a>|<b>"`` identifier of the candidate.
    status : MergeStatus
        Final status.
    survivor_id : str | None
        Record kept, once selected.
    loser_id : str | None
        Record removed or deactivated, once selected.
    reason : str | None
        Machine-readable reason for non-merged outcomes (e.g.
        ``"record_not_found"``, ``"soft_delete_failed"``).
    message : str | None
        Human-readable detail for failures.
    fields_filled : list[str]
        Fields copied from the loser.
    provenance : MergeProvenance
        Provenance for each filled field.
    reassigned : dict[str, int]
        Rows rewritten per ``table.column``.
    skipped_tables : list[str]
        Dependent tables skipped because the table or column is missing.
    reassignment_errors : list[str]
        Dependent tables whose reassignment failed.
    annotations : list[str]
        Notes attached to the outcome (e.g. soft-delete fallback).
    trace : list[str]
        Ordered decision steps; identical between dry run and execute.
    """

    pair_id: str
    status: MergeStatus
    survivor_id: str | None = None
    loser_id: str | None = None
    reason: str | None = None
    message: str | None = None
    fields_filled: list[str] = field(default_factory=list)
    provenance: MergeProvenance = field(default_factory=MergeProvenance)
    reassigned: dict[str, int] = field(default_factory=dict)
    skipped_tables: list[str] = field(default_factory=list)
    reassignment_errors: list[str] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status in (
            MergeStatus.MERGED,
            MergeStatus.MERGED_SOFT_DELETED,
            MergeStatus.PLANNED,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pair_id": self.pair_id,
            "status": self.status.value,
            "survivor_id": self.survivor_id,
            "loser_id": self.loser_id,
            "reason": self.reason,
            "message": self.message,
            "fields_filled": list(self.fields_filled),
            "provenance": self.provenance.to_dict(),
            "reassigned": dict(self.reassigned),
            "skipped_tables": list(self.skipped_tables),
            "reassignment_errors": list(self.reassignment_errors),
            "annotations": list(self.annotations),
            "trace": list(self.trace),
        }
