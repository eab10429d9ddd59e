"""Duplicate candidate generation.

This module proposes pairs of records that may describe the same
real-world entity, using normalised title edit distance within a
temporal tolerance window, and filters them against a human-curated
rejection list.
"""

from catalogdq.candidates.matcher import SimilarityMatcher, normalize_title, title_similarity
from catalogdq.candidates.models import (
    ADJACENT_YEAR_PASS,
    DEFAULT_PASSES,
    EXACT_YEAR_PASS,
    DuplicateCandidate,
    MatchCategory,
    MatchPass,
    MatchType,
)
from catalogdq.candidates.rejection import REJECTION_LIST_SCHEMA, RejectionSet

__all__ = [
    # Models
    "DuplicateCandidate",
    "MatchCategory",
    "MatchPass",
    "MatchType",
    "EXACT_YEAR_PASS",
    "ADJACENT_YEAR_PASS",
    "DEFAULT_PASSES",
    # Matching
    "SimilarityMatcher",
    "normalize_title",
    "title_similarity",
    # Rejection list
    "RejectionSet",
    "REJECTION_LIST_SCHEMA",
]
