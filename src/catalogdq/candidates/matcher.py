"""Similarity matcher: proposes duplicate candidate pairs.

Titles are normalised, compared with Levenshtein edit distance and
converted to a 0-100 score. Comparisons only happen between records of the
same entity type whose temporal attribute (e.g. release year) falls within
the tolerance of a configured pass:

* ``exact_year`` - same year, score >= 80
* ``adjacent_year`` - years differ by exactly one, score >= 75

Pairwise comparison is O(n²) per year bucket, which is acceptable for the
low-thousands catalog sizes this runs against as a batch job.
"""

from __future__ import annotations

import re
import unicodedata
from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from itertools import combinations, product

from rapidfuzz.distance import Levenshtein

from catalogdq.candidates.models import (
    DEFAULT_PASSES,
    DuplicateCandidate,
    MatchCategory,
    MatchPass,
    MatchType,
)
from catalogdq.candidates.rejection import RejectionSet
from catalogdq.models import Record

__all__ = ["SimilarityMatcher", "normalize_title", "title_similarity"]

_PUNCT_RE = re.compile(r"[^\w\s]+")
_WS_RE = re.compile(r"\s+")


def normalize_title(text: str | None) -> str:
    """Lowercase, strip punctuation and collapse whitespace.

    Underscores count as punctuation; Unicode letters are kept.
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text).casefold()
    stripped = _PUNCT_RE.sub(" ", folded).replace("_", " ")
    return _WS_RE.sub(" ", stripped).strip()


def title_similarity(norm_a: str, norm_b: str) -> int:
    """Edit-distance similarity of two normalised strings, in [0, 100].

    ``round(100 * (max_len - distance) / max_len)``; identical strings
    score 100 and two empty strings score 0.
    """
    if not norm_a or not norm_b:
        return 0
    if norm_a == norm_b:
        return 100
    max_len = max(len(norm_a), len(norm_b))
    distance = Levenshtein.distance(norm_a, norm_b)
    return round(100 * (max_len - distance) / max_len)


@dataclass(frozen=True, slots=True)
class _Entry:
    """Pre-normalised view of a record used during comparison."""

    record_id: str
    norm_title: str
    year: int
    natural_key: str | None


class SimilarityMatcher:
    """Produces :class:`DuplicateCandidate` pairs from a record set.

    The matcher never mutates anything; it is a pure producer of
    suggestions.

    Parameters
    ----------
    passes : Sequence[MatchPass], optional
        Comparison passes, by default exact-year then adjacent-year.
    rejections : RejectionSet | None, optional
        Known false positives to suppress at emission time.
    """

    def __init__(
        self,
        passes: Sequence[MatchPass] = DEFAULT_PASSES,
        rejections: RejectionSet | None = None,
    ) -> None:
        if not passes:
            raise ValueError("at least one match pass is required")
        self.passes = tuple(passes)
        self.rejections = rejections
        self.rejected_count = 0

    def find_candidates(self, records: Iterable[Record]) -> Iterator[DuplicateCandidate]:
        """Lazily yield candidate pairs for *records*.

        Records are partitioned by entity type; inactive records and
        records with a blank normalised title or no temporal value are
        skipped. Each unordered pair is emitted at most once.
        """
        partitions: dict[str, list[Record]] = defaultdict(list)
        for record in records:
            if record.is_active:
                partitions[record.entity_type].append(record)

        for entity_type in sorted(partitions):
            yield from self._match_partition(entity_type, partitions[entity_type])

    def _match_partition(
        self, entity_type: str, records: list[Record]
    ) -> Iterator[DuplicateCandidate]:
        buckets = _bucket_by_year(records)
        seen: set[tuple[str, str]] = set()

        for match_pass in self.passes:
            for year in sorted(buckets):
                if match_pass.year_delta == 0:
                    pairs: Iterable[tuple[_Entry, _Entry]] = combinations(buckets[year], 2)
                else:
                    other = buckets.get(year + match_pass.year_delta)
                    if not other:
                        continue
                    pairs = product(buckets[year], other)

                for entry_a, entry_b in pairs:
                    candidate = self._compare(entity_type, match_pass, entry_a, entry_b)
                    if candidate is None:
                        continue
                    key = (candidate.record_a_id, candidate.record_b_id)
                    if key in seen:
                        continue
                    seen.add(key)

                    if self.rejections is not None and self.rejections.blocks(candidate):
                        self.rejected_count += 1
                        continue
                    yield candidate

    def _compare(
        self,
        entity_type: str,
        match_pass: MatchPass,
        entry_a: _Entry,
        entry_b: _Entry,
    ) -> DuplicateCandidate | None:
        if entry_a.record_id == entry_b.record_id:
            return None

        score = title_similarity(entry_a.norm_title, entry_b.norm_title)
        if score < match_pass.threshold:
            return None

        if match_pass.year_delta == 0:
            if score == 100:
                match_type, category = MatchType.EXACT_TITLE_YEAR, MatchCategory.EXACT_DUPLICATE
            else:
                match_type, category = MatchType.FUZZY_TITLE_YEAR, MatchCategory.TITLE_VARIANT
        else:
            match_type, category = MatchType.ADJACENT_YEAR, MatchCategory.YEAR_VARIANT

        first, second = sorted((entry_a, entry_b), key=lambda e: e.record_id)
        return DuplicateCandidate(
            record_a_id=first.record_id,
            record_b_id=second.record_id,
            match_type=match_type,
            similarity_score=score,
            category=category,
            entity_type=entity_type,
            key_a=first.natural_key,
            key_b=second.natural_key,
        )


def _bucket_by_year(records: list[Record]) -> dict[int, list[_Entry]]:
    """Index comparable records by temporal value, sorted by id."""
    buckets: dict[int, list[_Entry]] = defaultdict(list)
    for record in sorted(records, key=lambda r: r.id):
        year = record.temporal
        norm = normalize_title(record.title)
        if year is None or not norm:
            continue
        buckets[year].append(
            _Entry(
                record_id=record.id,
                norm_title=norm,
                year=year,
                natural_key=record.natural_key,
            )
        )
    return buckets
