"""Confidence scoring module.

Computes per-field, per-category and overall confidence for a record from
its Field Source Ledger entries, plus a verification-status label and a
needs-review flag.
"""

from catalogdq.scoring.confidence import ConfidenceScorer, values_agree
from catalogdq.scoring.models import ConfidenceScore, FieldScore, VerificationStatus

__all__ = [
    "ConfidenceScorer",
    "ConfidenceScore",
    "FieldScore",
    "VerificationStatus",
    "values_agree",
]
