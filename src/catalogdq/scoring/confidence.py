"""Provenance-aware confidence scoring.

Each present field is scored from the sources that supplied it:

1. base: highest declared reliability among the field's sources
   (0.3 when no source is known, 0.0 when the value is empty)
2. +0.15 when any source carries a human verifier
3. +0.05 when at least two independent sources agree, +0.05 more at three
4. -0.15 (floor 0.4) when every source is machine-generated and unreviewed
5. -0.1 (floor 0.5) when the latest human verification is over 365 days old
6. clamp to [0, 1]

A penalty never pushes a score below its floor, and a floor never lifts
a score that was already below it. The record's overall score is the
importance-weighted mean of its present fields; keys absent from the
record are not applicable and do not count.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from catalogdq.models import FieldSource, FieldSourceLedger, Record, is_empty
from catalogdq.scoring.models import ConfidenceScore, FieldScore, VerificationStatus
from catalogdq.utils import ensure_utc

__all__ = ["ConfidenceScorer", "values_agree"]

UNKNOWN_PROVENANCE_SCORE = 0.3
VERIFIED_BONUS = 0.15
AGREEMENT_BONUS = 0.05
MACHINE_PENALTY = 0.15
MACHINE_FLOOR = 0.4
STALE_PENALTY = 0.1
STALE_FLOOR = 0.5
STALE_AFTER = timedelta(days=365)

REVIEW_THRESHOLD = 0.70
MAX_WEAK_FIELDS = 3

_PRECISION = 4


def _normalize_scalar(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.casefold().split())
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return float(value)
    return value


def values_agree(left: Any, right: Any) -> bool:
    """Compare two field values ignoring case, spacing and list order."""
    if is_empty(left) or is_empty(right):
        return False
    if isinstance(left, list | tuple) and isinstance(right, list | tuple):
        return sorted(map(str, map(_normalize_scalar, left))) == sorted(
            map(str, map(_normalize_scalar, right))
        )
    return _normalize_scalar(left) == _normalize_scalar(right)


def _apply_penalty(score: float, penalty: float, floor: float) -> float:
    return max(score - penalty, min(score, floor))


class ConfidenceScorer:
    """Deterministic record scorer.

    Parameters
    ----------
    as_of : datetime | None, optional
        Reference time for the staleness check. Fixed at construction so
        repeated calls on the same inputs return identical results.
        Defaults to the current UTC time.
    """

    def __init__(self, as_of: datetime | None = None) -> None:
        self.as_of = ensure_utc(as_of) if as_of is not None else datetime.now(UTC)

    def score_field(
        self, field_name: str, value: Any, sources: Sequence[FieldSource] = ()
    ) -> FieldScore:
        """Score one field value against its provenance."""
        if is_empty(value):
            return FieldScore(field_name, 0.0, 0.0, ("empty",))
        if not sources:
            return FieldScore(
                field_name, UNKNOWN_PROVENANCE_SCORE, UNKNOWN_PROVENANCE_SCORE, ("no_source",)
            )

        base = max(s.reliability for s in sources)
        score = base
        adjustments: list[str] = []

        verified = [s for s in sources if s.is_human_verified]
        if verified:
            score += VERIFIED_BONUS
            adjustments.append(f"verified+{VERIFIED_BONUS}")

        agreeing = {s.source_id for s in sources if s.value is None or values_agree(s.value, value)}
        if len(agreeing) >= 2:
            score += AGREEMENT_BONUS
            adjustments.append(f"agreement{len(agreeing)}+{AGREEMENT_BONUS}")
        if len(agreeing) >= 3:
            score += AGREEMENT_BONUS
            adjustments.append(f"agreement{len(agreeing)}+{AGREEMENT_BONUS}")

        if not verified and all(s.machine_generated for s in sources):
            score = _apply_penalty(score, MACHINE_PENALTY, MACHINE_FLOOR)
            adjustments.append(f"machine_generated-{MACHINE_PENALTY}")

        if self._is_stale(verified):
            score = _apply_penalty(score, STALE_PENALTY, STALE_FLOOR)
            adjustments.append(f"stale-{STALE_PENALTY}")

        score = round(min(1.0, max(0.0, score)), _PRECISION)
        return FieldScore(field_name, score, base, tuple(adjustments))

    def _is_stale(self, verified: Sequence[FieldSource]) -> bool:
        # A verification without a timestamp counts as current.
        if not verified or any(s.verified_at is None for s in verified):
            return False
        latest = max(ensure_utc(s.verified_at) for s in verified if s.verified_at is not None)
        return self.as_of - latest > STALE_AFTER

    def score(
        self,
        record: Record,
        sources_by_field: Mapping[str, Sequence[FieldSource]] | None = None,
    ) -> ConfidenceScore:
        """Compute the :class:`ConfidenceScore` of *record*.

        Parameters
        ----------
        record : Record
            Record to score; every key present in ``record.fields`` is
            scored.
        sources_by_field : Mapping[str, Sequence[FieldSource]] | None, optional
            Provenance per field name.

        Returns
        -------
        ConfidenceScore
            Overall, per-field and per-category scores.
        """
        sources_by_field = sources_by_field or {}
        schema = record.schema

        breakdown: dict[str, FieldScore] = {}
        weighted_total = 0.0
        weight_sum = 0.0
        per_category: dict[str, list[float]] = defaultdict(list)

        for name in sorted(record.fields):
            descriptor = schema.descriptor(name)
            field_score = self.score_field(
                name, record.fields[name], sources_by_field.get(name, ())
            )
            breakdown[name] = field_score
            weighted_total += field_score.score * descriptor.importance
            weight_sum += descriptor.importance
            per_category[descriptor.category.value].append(field_score.score)

        overall = round(weighted_total / weight_sum, _PRECISION) if weight_sum else 0.0
        by_field = {name: fs.score for name, fs in breakdown.items()}
        by_category = {
            category: round(sum(scores) / len(scores), _PRECISION)
            for category, scores in sorted(per_category.items())
        }

        weak = sum(1 for s in by_field.values() if s < REVIEW_THRESHOLD)
        return ConfidenceScore(
            overall=overall,
            by_field=by_field,
            by_category=by_category,
            verification_status=VerificationStatus.from_score(overall),
            needs_review=overall < REVIEW_THRESHOLD or weak > MAX_WEAK_FIELDS,
            breakdown=breakdown,
            as_of=self.as_of.isoformat().replace("+00:00", "Z"),
        )

    def score_from_ledger(self, record: Record, ledger: FieldSourceLedger) -> ConfidenceScore:
        """Score *record* using its entries in *ledger*."""
        return self.score(record, ledger.for_record(record.id))
