"""Human-curated rejection list of known false-positive pairs.

Pairs are stored as unordered two-element sets, so ``(A, B)`` and
``(B, A)`` are the same entry. Keys are natural keys (``<slug>-<year>``)
because raw ids are only known after a store lookup; raw ids are
accepted too.
"""

import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import jsonschema

from catalogdq.candidates.models import DuplicateCandidate

__all__ = ["RejectionSet", "REJECTION_LIST_SCHEMA"]

REJECTION_LIST_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["pairs"],
    "properties": {
        "pairs": {
            "type": "array",
            "items": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 2,
                "maxItems": 2,
            },
        },
    },
}


class RejectionSet:
    """Symmetric set of record pairs that must never be merged."""

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._pairs: set[frozenset[str]] = set()
        for key_a, key_b in pairs:
            self.add(key_a, key_b)

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for pair in sorted(self._pairs, key=sorted):
            a, b = sorted(pair)
            yield a, b

    def __contains__(self, pair: object) -> bool:
        if not isinstance(pair, tuple) or len(pair) != 2:
            return False
        return frozenset(pair) in self._pairs

    def add(self, key_a: str, key_b: str) -> None:
        """Add a pair; self-pairs are ignored."""
        key_a, key_b = key_a.strip(), key_b.strip()
        if key_a and key_b and key_a != key_b:
            self._pairs.add(frozenset((key_a, key_b)))

    def is_rejected(self, key_a: str | None, key_b: str | None) -> bool:
        """Symmetric lookup of a single key pair."""
        if not key_a or not key_b:
            return False
        return frozenset((key_a, key_b)) in self._pairs

    def blocks(self, candidate: DuplicateCandidate) -> bool:
        """Return True when the candidate is rejected by natural key or id."""
        return self.is_rejected(candidate.key_a, candidate.key_b) or self.is_rejected(
            candidate.record_a_id, candidate.record_b_id
        )

    @classmethod
    def load(cls, path: Path) -> "RejectionSet":
        """Load a rejection list from JSON or ``key_a|key_b`` text lines.

        Raises
        ------
        ValueError
            If the file content is malformed.
        """
        text = path.read_text(encoding="utf-8")

        if path.suffix.lower() == ".json":
            try:
                document = json.loads(text)
                jsonschema.validate(instance=document, schema=REJECTION_LIST_SCHEMA)
            except (json.JSONDecodeError, jsonschema.ValidationError) as e:
                raise ValueError(f"invalid rejection list {path.name}: {e}") from e
            return cls((a, b) for a, b in document["pairs"])

        pairs: list[tuple[str, str]] = []
        for line_no, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue
            parts = [p.strip() for p in line.split("|")]
            if len(parts) != 2 or not all(parts):
                raise ValueError(f"invalid rejection entry at {path.name}:{line_no}: {raw_line!r}")
            pairs.append((parts[0], parts[1]))
        return cls(pairs)

    def to_dict(self) -> dict[str, Any]:
        return {"pairs": [list(pair) for pair in self]}
