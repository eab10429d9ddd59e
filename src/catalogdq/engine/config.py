"""Batch job configuration."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from catalogdq.models import get_schema

__all__ = ["JobConfig", "FatalConfigurationError", "JOB_TYPES"]

JOB_TYPES = ("dedupe", "score")


class FatalConfigurationError(Exception):
    """Raised before any unit runs when the job cannot be set up."""


@dataclass
class JobConfig:
    """Configuration for a dedupe or scoring batch job.

    Attributes
    ----------
    job : str
        ``"dedupe"`` or ``"score"``.
    entity_type : str
        Record partition to process.
    execute : bool
        Apply store mutations; dry run when False.
    min_count : int | None
        Keep only records with at least this many dependent rows.
    ids : list[str] | None
        Explicit record id allowlist.
    resume : bool
        Skip units already in a terminal state in the checkpoint.
    resume_from : str | None
        Continue the checkpoint like ``resume``, starting at the first unit
        whose id (or one of whose record ids) matches.
    batch_size : int
        Units per batch.
    batch_delay_ms : int
        Blocking delay between batches and between external source calls.
    output_dir : Path
        Directory for checkpoint, events and reports.
    store_path : Path | None
        Record store snapshot.
    rejection_path : Path | None
        Rejection list (JSON or ``key_a|key_b`` lines).
    ledger_path : Path | None
        Field Source Ledger (JSON array or JSONL).
    sources_path : Path | None
        JSON list of HTTP source definitions used to corroborate fields.
    as_of : datetime | None
        Reference time for confidence staleness; defaults to now.
    top_failures : int
        Number of failure reasons listed in the summary.
    """

    job: str = "dedupe"
    entity_type: str = "movie"
    execute: bool = False
    min_count: int | None = None
    ids: list[str] | None = None
    resume: bool = False
    resume_from: str | None = None
    batch_size: int = 50
    batch_delay_ms: int = 0
    output_dir: Path = Path("out")
    store_path: Path | None = None
    rejection_path: Path | None = None
    ledger_path: Path | None = None
    sources_path: Path | None = None
    as_of: datetime | None = None
    top_failures: int = 10

    def __post_init__(self) -> None:
        """Normalise paths and validate."""
        if self.job not in JOB_TYPES:
            raise ValueError(f"job must be one of {JOB_TYPES}, got {self.job!r}")

        # Raises SchemaValidationError (a ValueError) for unknown types
        get_schema(self.entity_type)

        if self.min_count is not None and self.min_count < 0:
            raise ValueError(f"min_count must be >= 0, got {self.min_count}")

        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

        if self.batch_delay_ms < 0:
            raise ValueError(f"batch_delay_ms must be >= 0, got {self.batch_delay_ms}")

        if self.top_failures < 0:
            raise ValueError(f"top_failures must be >= 0, got {self.top_failures}")

        if self.ids is not None:
            self.ids = [i.strip() for i in self.ids if i and i.strip()]

        self.output_dir = Path(self.output_dir)
        for name in ("store_path", "rejection_path", "ledger_path", "sources_path"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, Path(value))

    @property
    def dry_run(self) -> bool:
        return not self.execute

    @property
    def checkpoint_path(self) -> Path:
        return self.output_dir / "checkpoint.json"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "job": self.job,
            "entity_type": self.entity_type,
            "execute": self.execute,
            "min_count": self.min_count,
            "ids": self.ids,
            "resume": self.resume,
            "resume_from": self.resume_from,
            "batch_size": self.batch_size,
            "batch_delay_ms": self.batch_delay_ms,
            "output_dir": str(self.output_dir),
            "store_path": str(self.store_path) if self.store_path else None,
            "rejection_path": str(self.rejection_path) if self.rejection_path else None,
            "ledger_path": str(self.ledger_path) if self.ledger_path else None,
            "sources_path": str(self.sources_path) if self.sources_path else None,
            "as_of": self.as_of.isoformat() if self.as_of else None,
            "top_failures": self.top_failures,
        }
