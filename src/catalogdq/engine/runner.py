"""Batch job runner.

Drives the similarity matcher and merge resolver (``dedupe`` job) or the
confidence scorer (``score`` job) over a filtered record set:

1. Setup: load the store, rejection list, ledger and sources; select
   records; build the unit list; open or resume the checkpoint. Any
   failure here raises :class:`FatalConfigurationError` before a unit runs.
2. Units: processed sequentially in batches, with a blocking delay between
   batches. Each unit is checkpointed on start and on finish. Per-unit
   errors are captured in the unit result and never abort the batch.
3. Reports: ``summary.json`` and ``results.csv`` next to
   ``checkpoint.json`` and ``events.jsonl`` in the output directory.

Cancellation is cooperative: ``should_stop`` is polled between units, so a
unit that has started always completes.
"""

import json
import sys
import time
import traceback
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from catalogdq.audit.helpers import generate_run_id, get_package_version
from catalogdq.audit.logger import AuditLogger
from catalogdq.candidates.matcher import SimilarityMatcher
from catalogdq.candidates.models import DuplicateCandidate
from catalogdq.candidates.rejection import RejectionSet
from catalogdq.engine.checkpoint import Checkpoint, UnitResult, UnitState
from catalogdq.engine.config import FatalConfigurationError, JobConfig
from catalogdq.engine.report import build_summary, write_results_csv, write_summary
from catalogdq.merge.models import MergeStatus
from catalogdq.merge.resolver import MergeResolver
from catalogdq.models import FieldSourceLedger, Record, SchemaValidationError
from catalogdq.scoring.confidence import ConfidenceScorer
from catalogdq.sources.external import CorroborationClient, HttpMetadataSource
from catalogdq.store.base import RecordStore
from catalogdq.store.errors import RecordNotFoundError, StoreError
from catalogdq.store.memory import InMemoryRecordStore
from catalogdq.utils import calculate_file_sha256

__all__ = ["JobResult", "run_dedupe_job", "run_scoring_job"]

ShouldStop = Callable[[], bool]
UnitCallback = Callable[[UnitResult, dict[str, Any] | None], None]

_MERGE_STATES: dict[MergeStatus, UnitState] = {
    MergeStatus.MERGED: UnitState.SUCCEEDED,
    MergeStatus.MERGED_SOFT_DELETED: UnitState.SUCCEEDED,
    MergeStatus.PLANNED: UnitState.SUCCEEDED,
    MergeStatus.REJECTED: UnitState.SKIPPED,
    MergeStatus.NOT_FOUND: UnitState.SKIPPED,
    MergeStatus.FAILED: UnitState.FAILED,
}


@dataclass
class JobResult:
    """Results from one job invocation.

    Attributes
    ----------
    job : str
        Job type.
    run_id : str
        Run identifier recorded in the checkpoint.
    status : str
        ``"success"``, ``"partial"`` (some units failed) or ``"cancelled"``.
    dry_run : bool
        Whether mutations were suppressed.
    total : int
        Units in scope.
    processed : int
        Units in a terminal state, including earlier resumed runs.
    succeeded : int
        Units that succeeded.
    failed : int
        Units that failed.
    skipped : int
        Units skipped (rejected or not found).
    processed_this_run : int
        Units processed by this invocation.
    summary : dict[str, Any]
        Content of ``summary.json``.
    output_files : dict[str, str]
        Map of artifact name to file path.
    """

    job: str
    run_id: str
    status: str
    dry_run: bool
    total: int
    processed: int
    succeeded: int
    failed: int
    skipped: int
    processed_this_run: int
    summary: dict[str, Any] = field(default_factory=dict)
    output_files: dict[str, str] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class _Unit:
    unit_id: str
    entity: str | None
    record_ids: tuple[str, ...]
    payload: Any


@dataclass
class _UnitOutcome:
    state: UnitState
    outcome: str | None
    reason: str | None = None
    error: str | None = None
    detail: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------


def _load_store(config: JobConfig, store: RecordStore | None) -> tuple[RecordStore, Path | None]:
    """Return the store and, for file-backed stores, the path to persist to."""
    if store is not None:
        return store, None
    if config.store_path is None:
        raise FatalConfigurationError(
            "no record store configured (pass --store or set CATALOGDQ_STORE)"
        )
    try:
        return InMemoryRecordStore.load(config.store_path), config.store_path
    except StoreError as e:
        raise FatalConfigurationError(str(e)) from e


def _load_rejections(config: JobConfig) -> RejectionSet:
    if config.rejection_path is None:
        return RejectionSet()
    try:
        return RejectionSet.load(config.rejection_path)
    except (OSError, ValueError) as e:
        raise FatalConfigurationError(f"cannot load rejection list: {e}") from e


def _load_ledger(config: JobConfig) -> FieldSourceLedger:
    if config.ledger_path is None:
        return FieldSourceLedger()
    if not config.ledger_path.exists():
        raise FatalConfigurationError(f"ledger not found: {config.ledger_path}")
    try:
        return FieldSourceLedger.load(config.ledger_path)
    except (OSError, ValueError, KeyError) as e:
        raise FatalConfigurationError(f"cannot load ledger {config.ledger_path}: {e}") from e


def _load_sources(config: JobConfig, logger: AuditLogger) -> CorroborationClient | None:
    """Build HTTP sources from a JSON list of definitions.

    Each entry needs ``source_id`` and ``url_template`` and may set
    ``reliability``, ``field_map``, ``timeout`` and ``machine_generated``.
    """
    if config.sources_path is None:
        return None
    try:
        with config.sources_path.open("r", encoding="utf-8") as f:
            definitions = json.load(f)
        sources = [
            HttpMetadataSource(
                item["source_id"],
                item["url_template"],
                reliability=item.get("reliability"),
                field_map=item.get("field_map"),
                timeout=float(item.get("timeout", 10.0)),
                machine_generated=bool(item.get("machine_generated", False)),
            )
            for item in definitions
        ]
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise FatalConfigurationError(f"cannot load sources {config.sources_path}: {e}") from e
    return CorroborationClient(sources, delay_ms=config.batch_delay_ms, logger=logger)


def _select_records(config: JobConfig, store: RecordStore) -> list[Record]:
    try:
        return store.query(config.entity_type, ids=config.ids, min_related=config.min_count)
    except StoreError as e:
        raise FatalConfigurationError(f"cannot query store: {e}") from e


def _open_checkpoint(
    config: JobConfig, run_id: str, units: list[_Unit], logger: AuditLogger
) -> Checkpoint:
    """Start a checkpoint, or load the existing one for ``--resume``/``--resume-from``.

    An interrupted unit that the current selection no longer produces (its
    merge was saved but not checkpointed) is closed as ``not_found``.
    """
    path = config.checkpoint_path
    resuming = config.resume or config.resume_from is not None
    if not (resuming and path.exists()):
        return Checkpoint(job=config.job, run_id=run_id, total=len(units))

    try:
        checkpoint = Checkpoint.load(path)
    except (OSError, ValueError) as e:
        raise FatalConfigurationError(str(e)) from e
    if checkpoint.job != config.job:
        raise FatalConfigurationError(
            f"checkpoint {path} belongs to a {checkpoint.job!r} job, not {config.job!r}"
        )
    entities = {unit_id: r.entity for unit_id, r in checkpoint.results.items()}
    current = {unit.unit_id for unit in units}
    orphans = [uid for uid in checkpoint.reset_interrupted() if uid not in current]
    for unit_id in orphans:
        error = "unit is no longer produced by the current selection"
        checkpoint.start(unit_id, entities.get(unit_id))
        checkpoint.finish(
            unit_id,
            UnitState.SKIPPED,
            duration_ms=0,
            outcome="not_found",
            reason="record_not_found",
            error=error,
        )
        logger.unit_finished(unit_id, UnitState.SKIPPED.value, 0, outcome="not_found", error=error)

    checkpoint.total = len(current | set(checkpoint.results))
    return checkpoint


def _start_index(config: JobConfig, units: list[_Unit]) -> int:
    if config.resume_from is None:
        return 0
    for index, unit in enumerate(units):
        if config.resume_from == unit.unit_id or config.resume_from in unit.record_ids:
            return index
    raise FatalConfigurationError(f"--resume-from id not found among units: {config.resume_from}")


# ---------------------------------------------------------------------------
# Unit loop
# ---------------------------------------------------------------------------


def _execute(
    config: JobConfig,
    units: list[_Unit],
    process: Callable[[_Unit], _UnitOutcome],
    checkpoint: Checkpoint,
    logger: AuditLogger,
    *,
    persist: Callable[[], None] | None,
    should_stop: ShouldStop | None,
    on_unit: UnitCallback | None,
    sleep: Callable[[float], None],
) -> tuple[int, bool]:
    """Process units in batches; returns (units processed, cancelled)."""
    start = _start_index(config, units)
    selected = units[start:]
    batches = [
        selected[i : i + config.batch_size] for i in range(0, len(selected), config.batch_size)
    ]

    processed_now = 0
    cancelled = False
    previous_batch_active = False

    for batch in batches:
        if previous_batch_active and config.batch_delay_ms:
            sleep(config.batch_delay_ms / 1000)
        previous_batch_active = False

        for unit in batch:
            if should_stop is not None and should_stop():
                cancelled = True
                break
            if checkpoint.is_done(unit.unit_id):
                continue

            checkpoint.start(unit.unit_id, unit.entity)
            checkpoint.save(config.checkpoint_path)

            t0 = time.perf_counter()
            try:
                result = process(unit)
            except Exception as e:
                logger.error(
                    type(e).__name__, str(e), rid=unit.unit_id, traceback=traceback.format_exc()
                )
                result = _UnitOutcome(
                    UnitState.FAILED,
                    outcome="error",
                    reason="unexpected_error",
                    error=f"{type(e).__name__}: {e}",
                )
            duration_ms = int((time.perf_counter() - t0) * 1000)

            # Store is saved before the checkpoint marks the unit finished
            if persist is not None:
                persist()

            unit_result = checkpoint.finish(
                unit.unit_id,
                result.state,
                duration_ms=duration_ms,
                outcome=result.outcome,
                reason=result.reason,
                error=result.error,
            )
            checkpoint.save(config.checkpoint_path)
            logger.unit_finished(
                unit.unit_id,
                unit_result.state.value,
                duration_ms,
                outcome=result.outcome,
                error=result.error,
            )
            if on_unit is not None:
                on_unit(unit_result, result.detail)

            processed_now += 1
            previous_batch_active = True

        if cancelled:
            break

    return processed_now, cancelled


def _finish(
    config: JobConfig,
    checkpoint: Checkpoint,
    logger: AuditLogger,
    *,
    started: float,
    processed_now: int,
    cancelled: bool,
    extra: dict[str, Any],
) -> JobResult:
    if cancelled:
        status = "cancelled"
    elif checkpoint.failed:
        status = "partial"
    else:
        status = "success"

    duration = time.perf_counter() - started
    logger.stage_finished(
        config.job,
        duration,
        counters={
            "processed": checkpoint.processed,
            "succeeded": checkpoint.succeeded,
            "failed": checkpoint.failed,
            "skipped": checkpoint.skipped,
        },
    )

    summary = build_summary(
        checkpoint,
        entity_type=config.entity_type,
        dry_run=config.dry_run,
        cancelled=cancelled,
        top_n=config.top_failures,
        extra=extra,
    )
    summary_path = config.output_dir / "summary.json"
    csv_path = config.output_dir / "results.csv"
    write_summary(summary, summary_path)
    rows = write_results_csv(checkpoint, csv_path)

    for path, count in ((summary_path, None), (csv_path, rows), (config.checkpoint_path, None)):
        if path.exists():
            logger.artifact_written(
                path.name,
                calculate_file_sha256(path),
                bytes_written=path.stat().st_size,
                record_count=count,
            )

    logger.run_finished(status, duration, units_processed=processed_now)

    return JobResult(
        job=config.job,
        run_id=checkpoint.run_id,
        status=status,
        dry_run=config.dry_run,
        total=checkpoint.total,
        processed=checkpoint.processed,
        succeeded=checkpoint.succeeded,
        failed=checkpoint.failed,
        skipped=checkpoint.skipped,
        processed_this_run=processed_now,
        summary=summary,
        output_files={
            "summary": str(summary_path),
            "results_csv": str(csv_path),
            "checkpoint": str(config.checkpoint_path),
            "events": str(logger.log_path),
        },
    )


def _run(
    config: JobConfig,
    setup: Callable[[AuditLogger], tuple[list[_Unit], Callable[[_Unit], _UnitOutcome]]],
    *,
    logger: AuditLogger | None,
    should_stop: ShouldStop | None,
    on_unit: UnitCallback | None,
    sleep: Callable[[float], None],
    persist: Callable[[], None] | None,
    extra: Callable[[], dict[str, Any]],
) -> JobResult:
    run_id = generate_run_id()
    owns_logger = logger is None
    if logger is None:
        logger = AuditLogger(run_id, config.output_dir / "events.jsonl")

    started = time.perf_counter()
    try:
        logger.run_started(sys.argv, {**config.to_dict(), "version": get_package_version()})
        try:
            units, process = setup(logger)
            checkpoint = _open_checkpoint(config, run_id, units, logger)
            # Validate --resume-from before any unit runs
            _start_index(config, units)
        except FatalConfigurationError as e:
            logger.error(type(e).__name__, str(e), stage="setup")
            logger.run_finished("failed", time.perf_counter() - started)
            raise

        logger.stage_started(config.job, expected_units=checkpoint.total - checkpoint.processed)
        checkpoint.save(config.checkpoint_path)

        processed_now, cancelled = _execute(
            config,
            units,
            process,
            checkpoint,
            logger,
            persist=persist if config.execute else None,
            should_stop=should_stop,
            on_unit=on_unit,
            sleep=sleep,
        )
        return _finish(
            config,
            checkpoint,
            logger,
            started=started,
            processed_now=processed_now,
            cancelled=cancelled,
            extra=extra(),
        )
    finally:
        if owns_logger:
            logger.close()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def run_dedupe_job(
    config: JobConfig,
    store: RecordStore | None = None,
    *,
    logger: AuditLogger | None = None,
    should_stop: ShouldStop | None = None,
    on_unit: UnitCallback | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> JobResult:
    """Find duplicate pairs and resolve each one.

    Parameters
    ----------
    config : JobConfig
        Job configuration (``execute`` gates every store mutation).
    store : RecordStore | None, optional
        Store handle; loaded from ``config.store_path`` when omitted.
    logger : AuditLogger | None, optional
        Audit logger; by default ``events.jsonl`` in the output directory.
    should_stop : ShouldStop | None, optional
        Polled between units; returning True stops the run.
    on_unit : UnitCallback | None, optional
        Called after every unit with its result and the merge outcome.
    sleep : Callable[[float], None], optional
        Sleep used for the inter-batch delay.

    Returns
    -------
    JobResult
        Counts, summary and artifact paths.

    Raises
    ------
    FatalConfigurationError
        If the store, rejection list or checkpoint cannot be used.

    Examples
    --------
    Plan merges without touching the store:

        >>> from pathlib import Path
        >>> from catalogdq.engine import JobConfig, run_dedupe_job
        >>> config = JobConfig(entity_type="movie", store_path=Path("catalog.json"))
        >>> result = run_dedupe_job(config)
        >>> print(result.summary["by_outcome"])
    """
    loaded: dict[str, Any] = {}

    def setup(job_logger: AuditLogger) -> tuple[list[_Unit], Callable[[_Unit], _UnitOutcome]]:
        job_store, store_path = _load_store(config, store)
        rejections = _load_rejections(config)
        records = _select_records(config, job_store)

        matcher = SimilarityMatcher(rejections=rejections)
        candidates = list(matcher.find_candidates(records))
        resolver = MergeResolver(job_store, rejections, job_logger)

        loaded.update(
            store=job_store,
            store_path=store_path,
            records=len(records),
            candidates=len(candidates),
            matcher=matcher,
        )

        units = [
            _Unit(
                unit_id=c.pair_id,
                entity=f"{c.key_a or c.record_a_id} ~ {c.key_b or c.record_b_id}",
                record_ids=(c.record_a_id, c.record_b_id),
                payload=c,
            )
            for c in candidates
        ]

        def process(unit: _Unit) -> _UnitOutcome:
            candidate: DuplicateCandidate = unit.payload
            outcome = resolver.resolve(candidate, execute=config.execute)
            job_logger.event("merge_resolved", data=outcome.to_dict(), rid=unit.unit_id)

            state = _MERGE_STATES[outcome.status]
            reason = outcome.reason
            if reason is None and outcome.status is MergeStatus.MERGED_SOFT_DELETED:
                reason = "soft_delete_fallback"

            detail = outcome.to_dict()
            detail["candidate"] = candidate.to_dict()
            return _UnitOutcome(
                state=state,
                outcome=outcome.status.value,
                reason=reason,
                error=outcome.message if state is not UnitState.SUCCEEDED else None,
                detail=detail,
            )

        return units, process

    def persist() -> None:
        if loaded.get("store_path") is not None:
            loaded["store"].save(loaded["store_path"])

    def extra() -> dict[str, Any]:
        return {
            "records_considered": loaded.get("records", 0),
            "candidates": loaded.get("candidates", 0),
            "rejected_at_match": loaded["matcher"].rejected_count if "matcher" in loaded else 0,
        }

    return _run(
        config,
        setup,
        logger=logger,
        should_stop=should_stop,
        on_unit=on_unit,
        sleep=sleep,
        persist=persist,
        extra=extra,
    )


def run_scoring_job(
    config: JobConfig,
    store: RecordStore | None = None,
    ledger: FieldSourceLedger | None = None,
    *,
    logger: AuditLogger | None = None,
    sources: CorroborationClient | None = None,
    should_stop: ShouldStop | None = None,
    on_unit: UnitCallback | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> JobResult:
    """Score every selected record and, in execute mode, annotate it.

    Parameters
    ----------
    config : JobConfig
        Job configuration.
    store : RecordStore | None, optional
        Store handle; loaded from ``config.store_path`` when omitted.
    ledger : FieldSourceLedger | None, optional
        Provenance; loaded from ``config.ledger_path`` when omitted.
    logger : AuditLogger | None, optional
        Audit logger; by default ``events.jsonl`` in the output directory.
    sources : CorroborationClient | None, optional
        External corroboration; built from ``config.sources_path`` when
        omitted.
    should_stop : ShouldStop | None, optional
        Polled between units.
    on_unit : UnitCallback | None, optional
        Called after every unit with its result and the score.
    sleep : Callable[[float], None], optional
        Sleep used for the inter-batch delay.

    Returns
    -------
    JobResult
        Counts, summary and artifact paths.

    Raises
    ------
    FatalConfigurationError
        If the store, ledger, sources or checkpoint cannot be used.
    """
    loaded: dict[str, Any] = {"added": 0, "unsaved": 0}

    def setup(job_logger: AuditLogger) -> tuple[list[_Unit], Callable[[_Unit], _UnitOutcome]]:
        job_store, store_path = _load_store(config, store)
        job_ledger = ledger if ledger is not None else _load_ledger(config)
        client = sources if sources is not None else _load_sources(config, job_logger)
        records = _select_records(config, job_store)
        scorer = ConfidenceScorer(as_of=config.as_of)

        loaded.update(
            store=job_store,
            store_path=store_path,
            ledger=job_ledger,
            records=len(records),
            owned_client=client if sources is None else None,
        )

        units = [
            _Unit(unit_id=r.id, entity=r.natural_key, record_ids=(r.id,), payload=r.id)
            for r in records
        ]

        def process(unit: _Unit) -> _UnitOutcome:
            try:
                record = job_store.get(unit.payload)
            except RecordNotFoundError as e:
                return _UnitOutcome(
                    UnitState.SKIPPED, outcome="not_found", reason="record_not_found", error=str(e)
                )

            if client is not None:
                added = client.enrich_ledger(record, job_ledger)
                loaded["added"] += added
                loaded["unsaved"] += added

            try:
                score = scorer.score_from_ledger(record, job_ledger)
            except SchemaValidationError as e:
                return _UnitOutcome(
                    UnitState.FAILED, outcome="error", reason="schema_error", error=str(e)
                )

            if config.execute:
                try:
                    job_store.update(record.id, {"confidence": score.to_dict()})
                except StoreError as e:
                    return _UnitOutcome(
                        UnitState.FAILED, outcome="failed", reason="update_failed", error=str(e)
                    )

            return _UnitOutcome(
                state=UnitState.SUCCEEDED,
                outcome=score.verification_status.value,
                reason="needs_review" if score.needs_review else None,
                detail=score.to_dict(),
            )

        return units, process

    def persist() -> None:
        # Ledger goes first: a saved score only cites provenance already on disk
        if loaded["unsaved"] and config.ledger_path is not None:
            loaded["ledger"].save(config.ledger_path)
            loaded["unsaved"] = 0
        if loaded.get("store_path") is not None:
            loaded["store"].save(loaded["store_path"])

    def extra() -> dict[str, Any]:
        return {
            "records_considered": loaded.get("records", 0),
            "ledger_entries_added": loaded["added"],
        }

    try:
        return _run(
            config,
            setup,
            logger=logger,
            should_stop=should_stop,
            on_unit=on_unit,
            sleep=sleep,
            persist=persist,
            extra=extra,
        )
    finally:
        if loaded.get("owned_client") is not None:
            loaded["owned_client"].close()
