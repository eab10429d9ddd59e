"""Job reports: JSON summary and flattened CSV.

``summary.json`` holds the counts, outcome and reason groupings and the
most frequent failure reasons. ``results.csv`` holds one row per
processed unit.
"""

import csv
import json
from collections import Counter
from pathlib import Path
from typing import Any

from catalogdq.engine.checkpoint import Checkpoint, UnitState

__all__ = ["build_summary", "write_summary", "write_results_csv", "RESULTS_CSV_COLUMNS"]

RESULTS_CSV_COLUMNS = ("unit_id", "entity", "outcome", "duration_ms", "error")


def build_summary(
    checkpoint: Checkpoint,
    *,
    entity_type: str,
    dry_run: bool,
    cancelled: bool = False,
    top_n: int = 10,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Aggregate a checkpoint into the summary report.

    Parameters
    ----------
    checkpoint : Checkpoint
        Progress of the job.
    entity_type : str
        Processed partition.
    dry_run : bool
        Whether mutations were suppressed.
    cancelled : bool, optional
        Whether the run stopped early on request.
    top_n : int, optional
        Number of failure reasons to list.
    extra : dict[str, Any] | None, optional
        Job-specific counters merged into the summary.

    Returns
    -------
    dict[str, Any]
        JSON-serializable summary.
    """
    finished = [r for r in checkpoint.results.values() if r.state.is_terminal]

    by_outcome = Counter(r.outcome or r.state.value for r in finished)
    by_reason = Counter(r.reason for r in finished if r.reason)
    failure_reasons = Counter(
        r.error or r.reason or "unknown" for r in finished if r.state is UnitState.FAILED
    )

    summary: dict[str, Any] = {
        "job": checkpoint.job,
        "run_id": checkpoint.run_id,
        "entity_type": entity_type,
        "mode": "dry-run" if dry_run else "execute",
        "cancelled": cancelled,
        "total": checkpoint.total,
        "processed": checkpoint.processed,
        "succeeded": checkpoint.succeeded,
        "failed": checkpoint.failed,
        "skipped": checkpoint.skipped,
        "pending": max(checkpoint.total - checkpoint.processed, 0),
        "by_outcome": dict(sorted(by_outcome.items())),
        "by_reason": dict(sorted(by_reason.items())),
        "top_failures": [
            {"reason": reason, "count": count}
            for reason, count in failure_reasons.most_common(top_n)
        ],
        "started_at": checkpoint.started_at,
        "updated_at": checkpoint.updated_at,
    }
    if extra:
        summary.update(extra)
    return summary


def write_summary(summary: dict[str, Any], path: Path) -> None:
    """Write the summary as pretty-printed JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, ensure_ascii=False, sort_keys=True)
        f.write("\n")


def write_results_csv(checkpoint: Checkpoint, path: Path) -> int:
    """Write one CSV row per processed unit.

    Returns
    -------
    int
        Number of rows written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = 0
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(RESULTS_CSV_COLUMNS)
        for result in checkpoint.results.values():
            if not result.state.is_terminal:
                continue
            writer.writerow(
                [
                    result.unit_id,
                    result.entity or "",
                    result.outcome or result.state.value,
                    result.duration_ms,
                    result.error or "",
                ]
            )
            rows += 1
    return rows
