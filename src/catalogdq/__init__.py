"""Data-quality batch tooling for entertainment catalog records.

This package provides:
- Data models (catalogdq.models): field registry, records, provenance ledger
- Candidates (catalogdq.candidates): similarity matching and rejection list
- Scoring (catalogdq.scoring): provenance-aware confidence scores
- Merge (catalogdq.merge): survivor selection, field fusion, safe merging
- Store (catalogdq.store): record store interface and in-memory backend
- Sources (catalogdq.sources): external metadata corroboration
- Engine (catalogdq.engine): resumable batch jobs and reports
- Audit (catalogdq.audit): JSONL event logging
- CLI (catalogdq.cli): command-line interface
- Public API (catalogdq.api): high-level convenience functions
"""

__version__ = "0.4.0"
__author__ = "Catalog Data Team"
__license__ = "MIT"

from catalogdq.api import find_duplicates, merge_pair, score_records
from catalogdq.candidates import DuplicateCandidate, RejectionSet
from catalogdq.merge import MergeOutcome
from catalogdq.models import FieldSource, FieldSourceLedger, Record
from catalogdq.scoring import ConfidenceScore
from catalogdq.store import InMemoryRecordStore

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "Record",
    "FieldSource",
    "FieldSourceLedger",
    "DuplicateCandidate",
    "RejectionSet",
    "ConfidenceScore",
    "MergeOutcome",
    "InMemoryRecordStore",
    "find_duplicates",
    "score_records",
    "merge_pair",
]
