"""Public API for catalog data quality.

This module provides high-level convenience functions for:
- Finding duplicate candidate pairs in a record set
- Scoring records against their field provenance
- Merging a single pair of records in a store
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from catalogdq.candidates import (
    DEFAULT_PASSES,
    DuplicateCandidate,
    MatchCategory,
    MatchPass,
    MatchType,
    RejectionSet,
    SimilarityMatcher,
    normalize_title,
    title_similarity,
)
from catalogdq.merge import MergeOutcome, MergeResolver
from catalogdq.models import FieldSourceLedger, Record
from catalogdq.scoring import ConfidenceScore, ConfidenceScorer
from catalogdq.store import RecordNotFoundError, RecordStore

__all__ = [
    "find_duplicates",
    "score_records",
    "merge_pair",
]


def find_duplicates(
    records: Iterable[Record],
    *,
    rejections: RejectionSet | None = None,
    passes: Sequence[MatchPass] = DEFAULT_PASSES,
) -> list[DuplicateCandidate]:
    """Find duplicate candidate pairs.

    Parameters
    ----------
    records : Iterable[Record]
        Records of one or more entity types.
    rejections : RejectionSet | None, optional
        Pairs that must never be proposed.
    passes : Sequence[MatchPass], optional
        Comparison passes, by default exact-year then adjacent-year.

    Returns
    -------
    list[DuplicateCandidate]
        Candidate pairs, each unordered pair at most once.

    Examples
    --------
        >>> from catalogdq import Record, find_duplicates
        >>> records = [
        ...     Record("m1", "movie", {"title_en": "Baahubali", "release_year": 2015}),
        ...     Record("m2", "movie", {"title_en": "Bahubali", "release_year": 2015}),
        ... ]
        >>> [c.pair_id for c in find_duplicates(records)]
        ['m1|m2']
    """
    matcher = SimilarityMatcher(passes=passes, rejections=rejections)
    return list(matcher.find_candidates(records))


def score_records(
    records: Iterable[Record],
    ledger: FieldSourceLedger | None = None,
    *,
    as_of: datetime | None = None,
) -> dict[str, ConfidenceScore]:
    """Score records against their provenance.

    Parameters
    ----------
    records : Iterable[Record]
        Records to score.
    ledger : FieldSourceLedger | None, optional
        Field provenance; fields without entries get the unknown
        provenance score.
    as_of : datetime | None, optional
        Reference time for staleness, by default now (UTC).

    Returns
    -------
    dict[str, ConfidenceScore]
        Scores keyed by record id.
    """
    scorer = ConfidenceScorer(as_of=as_of)
    ledger = ledger or FieldSourceLedger()
    return {record.id: scorer.score_from_ledger(record, ledger) for record in records}


def _pair_candidate(store: RecordStore, record_a_id: str, record_b_id: str) -> DuplicateCandidate:
    """Describe an explicitly requested pair as a candidate."""
    first_id, second_id = sorted((record_a_id, record_b_id))
    try:
        first, second = store.get(first_id), store.get(second_id)
    except RecordNotFoundError:
        # The resolver reports the missing record
        return DuplicateCandidate(
            record_a_id=first_id,
            record_b_id=second_id,
            match_type=MatchType.FUZZY_TITLE_YEAR,
            similarity_score=0,
            category=MatchCategory.TITLE_VARIANT,
        )

    score = title_similarity(normalize_title(first.title), normalize_title(second.title))
    if first.temporal != second.temporal:
        match_type, category = MatchType.ADJACENT_YEAR, MatchCategory.YEAR_VARIANT
    elif score == 100:
        match_type, category = MatchType.EXACT_TITLE_YEAR, MatchCategory.EXACT_DUPLICATE
    else:
        match_type, category = MatchType.FUZZY_TITLE_YEAR, MatchCategory.TITLE_VARIANT

    return DuplicateCandidate(
        record_a_id=first_id,
        record_b_id=second_id,
        match_type=match_type,
        similarity_score=score,
        category=category,
        entity_type=first.entity_type,
        key_a=first.natural_key,
        key_b=second.natural_key,
    )


def merge_pair(
    store: RecordStore,
    record_a_id: str,
    record_b_id: str,
    *,
    execute: bool = False,
    rejections: RejectionSet | None = None,
) -> MergeOutcome:
    """Merge two records of *store* into one.

    Runs as a dry run unless ``execute=True``; the returned trace is the
    same in both modes.

    Parameters
    ----------
    store : RecordStore
        Store holding both records.
    record_a_id : str
        First record id.
    record_b_id : str
        Second record id.
    execute : bool, optional
        Apply the merge, by default False.
    rejections : RejectionSet | None, optional
        Pairs that must never be merged.

    Returns
    -------
    MergeOutcome
        Outcome with survivor, filled fields, reassignment counts and trace.

    Raises
    ------
    ValueError
        If both ids are the same.
    """
    if record_a_id == record_b_id:
        raise ValueError(f"cannot merge record {record_a_id!r} with itself")

    candidate = _pair_candidate(store, record_a_id, record_b_id)
    resolver = MergeResolver(store, rejections=rejections)
    return resolver.resolve(candidate, execute=execute)
