"""Batch job engine.

This package provides the entry points for running dedupe and scoring
jobs, including configuration, checkpointing and reporting.
"""

from catalogdq.engine.checkpoint import Checkpoint, UnitResult, UnitState
from catalogdq.engine.config import FatalConfigurationError, JobConfig
from catalogdq.engine.report import build_summary, write_results_csv, write_summary
from catalogdq.engine.runner import JobResult, run_dedupe_job, run_scoring_job

__all__ = [
    "JobConfig",
    "JobResult",
    "FatalConfigurationError",
    "Checkpoint",
    "UnitResult",
    "UnitState",
    "build_summary",
    "write_summary",
    "write_results_csv",
    "run_dedupe_job",
    "run_scoring_job",
]
