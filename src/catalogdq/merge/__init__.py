"""Pairwise merge of confirmed duplicates.

Selects a survivor, fills its gaps from the loser, reassigns dependent
rows and removes (or deactivates) the loser.
"""

from catalogdq.merge.field_merge import fuse_fields
from catalogdq.merge.models import (
    SOFT_DELETE_ANNOTATION,
    MergeOutcome,
    MergeProvenance,
    MergeProvenanceField,
    MergeStatus,
)
from catalogdq.merge.resolver import MergeResolver
from catalogdq.merge.survivor import compute_completeness_score, select_survivor

__all__ = [
    "MergeOutcome",
    "MergeProvenance",
    "MergeProvenanceField",
    "MergeResolver",
    "MergeStatus",
    "SOFT_DELETE_ANNOTATION",
    "compute_completeness_score",
    "fuse_fields",
    "select_survivor",
]
