"""Progress checkpoint for resumable batch jobs.

Every unit moves through ``pending -> in_progress -> {succeeded, failed,
skipped}``; the checkpoint file is rewritten atomically after each
transition so a killed run can resume without reprocessing finished
units.
"""

import json
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

import jsonschema

from catalogdq.utils import get_iso_timestamp, write_json_atomic

__all__ = ["UnitState", "UnitResult", "Checkpoint", "CHECKPOINT_SCHEMA"]


class UnitState(StrEnum):
    """Lifecycle state of one unit of work."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitState.SUCCEEDED, UnitState.FAILED, UnitState.SKIPPED)


_ALLOWED_TRANSITIONS: dict[UnitState, frozenset[UnitState]] = {
    UnitState.PENDING: frozenset({UnitState.IN_PROGRESS}),
    UnitState.IN_PROGRESS: frozenset({UnitState.SUCCEEDED, UnitState.FAILED, UnitState.SKIPPED}),
    UnitState.SUCCEEDED: frozenset(),
    UnitState.FAILED: frozenset(),
    UnitState.SKIPPED: frozenset(),
}

_UNIT_RESULT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["unit_id", "state", "success", "duration_ms", "error"],
    "properties": {
        "unit_id": {"type": "string", "minLength": 1},
        "state": {"enum": [s.value for s in UnitState]},
        "success": {"type": "boolean"},
        "duration_ms": {"type": "integer", "minimum": 0},
        "error": {"type": ["string", "null"]},
        "outcome": {"type": ["string", "null"]},
        "reason": {"type": ["string", "null"]},
        "entity": {"type": ["string", "null"]},
    },
}

CHECKPOINT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": [
        "job",
        "run_id",
        "total",
        "processed",
        "succeeded",
        "failed",
        "skipped",
        "started_at",
        "updated_at",
        "results",
    ],
    "properties": {
        "job": {"type": "string"},
        "run_id": {"type": "string"},
        "total": {"type": "integer", "minimum": 0},
        "processed": {"type": "integer", "minimum": 0},
        "succeeded": {"type": "integer", "minimum": 0},
        "failed": {"type": "integer", "minimum": 0},
        "skipped": {"type": "integer", "minimum": 0},
        "started_at": {"type": "string"},
        "updated_at": {"type": "string"},
        "results": {"type": "array", "items": _UNIT_RESULT_SCHEMA},
    },
}


@dataclass
class UnitResult:
    """Result of one unit.

    Attributes
    ----------
    unit_id : str
        Pair id (``"<a>|<b>"``) or record id.
    state : UnitState
        Current lifecycle state.
    duration_ms : int
        Processing time in milliseconds.
    error : str | None
        Error message for failed or not-found units.
    outcome : str | None
        Component outcome (e.g. ``"merged"``, ``"partial"``).
    reason : str | None
        Machine-readable reason used for report grouping.
    entity : str | None
        Human-readable label (natural key) for reports.
    """

    unit_id: str
    state: UnitState = UnitState.PENDING
    duration_ms: int = 0
    error: str | None = None
    outcome: str | None = None
    reason: str | None = None
    entity: str | None = None

    @property
    def success(self) -> bool:
        return self.state is UnitState.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "state": self.state.value,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "outcome": self.outcome,
            "reason": self.reason,
            "entity": self.entity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnitResult":
        return cls(
            unit_id=data["unit_id"],
            state=UnitState(data["state"]),
            duration_ms=int(data.get("duration_ms", 0)),
            error=data.get("error"),
            outcome=data.get("outcome"),
            reason=data.get("reason"),
            entity=data.get("entity"),
        )


@dataclass
class Checkpoint:
    """Persistent progress of one job.

    Attributes
    ----------
    job : str
        Job type.
    run_id : str
        Run identifier of the run that created the checkpoint.
    total : int
        Units in scope.
    started_at : str
        ISO8601 creation time.
    updated_at : str
        ISO8601 time of the last transition.
    results : dict[str, UnitResult]
        Results for every unit that has left ``pending``, in
        processing order.
    """

    job: str
    run_id: str
    total: int
    started_at: str = field(default_factory=get_iso_timestamp)
    updated_at: str = field(default_factory=get_iso_timestamp)
    results: dict[str, UnitResult] = field(default_factory=dict)

    def _count(self, state: UnitState) -> int:
        return sum(1 for r in self.results.values() if r.state is state)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results.values() if r.state.is_terminal)

    @property
    def succeeded(self) -> int:
        return self._count(UnitState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(UnitState.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(UnitState.SKIPPED)

    def state_of(self, unit_id: str) -> UnitState:
        result = self.results.get(unit_id)
        return result.state if result is not None else UnitState.PENDING

    def is_done(self, unit_id: str) -> bool:
        return self.state_of(unit_id).is_terminal

    def _transition(self, unit_id: str, new_state: UnitState) -> UnitResult:
        current = self.state_of(unit_id)
        if new_state not in _ALLOWED_TRANSITIONS[current]:
            raise ValueError(
                f"invalid transition for {unit_id}: {current.value} -> {new_state.value}"
            )
        result = self.results.setdefault(unit_id, UnitResult(unit_id=unit_id))
        result.state = new_state
        self.updated_at = get_iso_timestamp()
        return result

    def start(self, unit_id: str, entity: str | None = None) -> UnitResult:
        """Move a pending unit to ``in_progress``."""
        result = self._transition(unit_id, UnitState.IN_PROGRESS)
        result.entity = entity
        return result

    def finish(
        self,
        unit_id: str,
        state: UnitState,
        *,
        duration_ms: int,
        outcome: str | None = None,
        reason: str | None = None,
        error: str | None = None,
    ) -> UnitResult:
        """Move an ``in_progress`` unit to a terminal state."""
        if not state.is_terminal:
            raise ValueError(f"finish() requires a terminal state, got {state.value}")
        result = self._transition(unit_id, state)
        result.duration_ms = duration_ms
        result.outcome = outcome
        result.reason = reason
        result.error = error
        return result

    def reset_interrupted(self) -> list[str]:
        """Return units left ``in_progress`` by a killed run to ``pending``."""
        interrupted = [uid for uid, r in self.results.items() if r.state is UnitState.IN_PROGRESS]
        for unit_id in interrupted:
            del self.results[unit_id]
        return interrupted

    def to_dict(self) -> dict[str, Any]:
        """Convert to the checkpoint file layout."""
        return {
            "job": self.job,
            "run_id": self.run_id,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
            "results": [r.to_dict() for r in self.results.values()],
        }

    def save(self, path: Path) -> None:
        """Atomically write the checkpoint (temp file, fsync, rename)."""
        write_json_atomic(path, self.to_dict())

    @classmethod
    def load(cls, path: Path) -> "Checkpoint":
        """Load and validate a checkpoint file.

        Raises
        ------
        ValueError
            If the file is not valid JSON or does not match the schema.
        """
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            jsonschema.validate(instance=data, schema=CHECKPOINT_SCHEMA)
        except (json.JSONDecodeError, jsonschema.ValidationError) as e:
            raise ValueError(f"corrupt checkpoint {path}: {e}") from e

        results = [UnitResult.from_dict(item) for item in data["results"]]
        return cls(
            job=data["job"],
            run_id=data["run_id"],
            total=data["total"],
            started_at=data["started_at"],
            updated_at=data["updated_at"],
            results={r.unit_id: r for r in results},
        )
