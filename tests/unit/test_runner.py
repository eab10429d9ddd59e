"""Unit tests for the batch job runner."""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from catalogdq.engine import (
    Checkpoint,
    FatalConfigurationError,
    JobConfig,
    UnitResult,
    UnitState,
    run_dedupe_job,
    run_scoring_job,
)
from catalogdq.merge import SOFT_DELETE_ANNOTATION
from catalogdq.models import FieldSourceLedger, Record
from catalogdq.sources import CorroborationClient
from catalogdq.store import InMemoryRecordStore

AS_OF = datetime(2025, 6, 1, tzinfo=UTC)


@pytest.fixture
def catalog(make_record: Callable[..., Record]) -> InMemoryRecordStore:
    """Three duplicate pairs in distinct years plus one unique record."""
    return InMemoryRecordStore(
        [
            make_record("m1", "Devi", 1999, poster_url="https://img.example/devi.jpg"),
            make_record("m2", "Devi", 1999, director="Kodi Ramakrishna"),
            make_record("m3", "Sita", 2005, music_director="Keeravani"),
            make_record("m4", "Sita", 2005, language="Telugu"),
            make_record("m5", "Magadheera", 2009, hero="Ram Charan"),
            make_record("m6", "Magadheera", 2009, runtime_minutes=166),
            make_record("m7", "Inti Dongalu", 1972),
        ]
    )


def _config(tmp_path: Path, **kwargs: Any) -> JobConfig:
    return JobConfig(output_dir=tmp_path / "out", **kwargs)


def _read_events(path: Path) -> list[dict]:
    with path.open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


class _Collector:
    """on_unit callback recording every unit."""

    def __init__(self) -> None:
        self.results: list[UnitResult] = []
        self.details: list[dict[str, Any] | None] = []

    def __call__(self, result: UnitResult, detail: dict[str, Any] | None) -> None:
        self.results.append(result)
        self.details.append(detail)

    @property
    def unit_ids(self) -> list[str]:
        return [r.unit_id for r in self.results]


class _ExplodingStore(InMemoryRecordStore):
    """Store that crashes when one record is read."""

    def get(self, record_id: str) -> Record:
        if record_id == "m3":
            raise RuntimeError("connection reset")
        return super().get(record_id)


# ---------------------------------------------------------------------------
# JobConfig
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_job_config_defaults() -> None:
    """Jobs default to a dry-run dedupe of movies."""
    config = JobConfig()

    assert config.job == "dedupe"
    assert config.entity_type == "movie"
    assert config.dry_run is True
    assert config.batch_size == 50
    assert config.checkpoint_path == Path("out") / "checkpoint.json"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"job": "purge"}, "job must be one of"),
        ({"entity_type": "song"}, "song"),
        ({"min_count": -1}, "min_count must be >= 0"),
        ({"batch_size": 0}, "batch_size must be >= 1"),
        ({"batch_delay_ms": -5}, "batch_delay_ms must be >= 0"),
    ],
)
def test_job_config_validation(kwargs: dict[str, Any], match: str) -> None:
    """Invalid settings are rejected at construction."""
    with pytest.raises(ValueError, match=match):
        JobConfig(**kwargs)


@pytest.mark.unit
def test_job_config_normalises_ids_and_paths() -> None:
    """Blank ids are dropped and path strings become Paths."""
    config = JobConfig(ids=[" m1 ", "", "m2"], store_path="catalog.json")  # type: ignore[arg-type]

    assert config.ids == ["m1", "m2"]
    assert config.store_path == Path("catalog.json")
    assert config.to_dict()["store_path"] == "catalog.json"


# ---------------------------------------------------------------------------
# Dedupe job
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_dedupe_dry_run_changes_nothing(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """A dry run plans every pair and writes reports, but no store changes."""
    snapshot = catalog.to_dict()
    collector = _Collector()

    result = run_dedupe_job(_config(tmp_path), catalog, on_unit=collector)

    assert catalog.to_dict() == snapshot
    assert result.status == "success"
    assert result.dry_run is True
    assert (result.total, result.processed, result.succeeded) == (3, 3, 3)
    assert collector.unit_ids == ["m1|m2", "m3|m4", "m5|m6"]
    assert result.summary["by_outcome"] == {"planned": 3}
    assert result.summary["candidates"] == 3
    assert result.summary["records_considered"] == 7
    for path in result.output_files.values():
        assert Path(path).exists()


@pytest.mark.unit
def test_dedupe_detail_includes_candidate(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """The per-unit detail is the merge outcome plus the candidate pair."""
    collector = _Collector()

    run_dedupe_job(_config(tmp_path, ids=["m1", "m2"]), catalog, on_unit=collector)

    (detail,) = collector.details
    assert detail is not None
    assert detail["status"] == "planned"
    assert detail["survivor_id"] == "m1"
    assert detail["fields_filled"] == ["director"]
    assert detail["candidate"]["match_type"] == "exact_title_year"


@pytest.mark.unit
def test_dedupe_execute_persists_store_file(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """Execute mode merges every pair and saves the snapshot it loaded."""
    store_path = tmp_path / "catalog.json"
    catalog.save(store_path)

    result = run_dedupe_job(_config(tmp_path, store_path=store_path, execute=True))

    assert result.summary["by_outcome"] == {"merged": 3}
    reloaded = InMemoryRecordStore.load(store_path)
    assert [r.id for r in reloaded.query("movie")] == ["m1", "m3", "m5", "m7"]
    assert reloaded.get("m1").get("director") == "Kodi Ramakrishna"
    assert reloaded.get("m3").get("language") == "Telugu"
    assert reloaded.get("m5").get("runtime_minutes") == 166


@pytest.mark.unit
def test_dedupe_soft_delete_is_a_success(
    tmp_path: Path, devi_store: InMemoryRecordStore
) -> None:
    """A loser held by an untracked foreign key is deactivated and the unit succeeds."""
    devi_store.add_table(
        "watchlist_items",
        ["id", "film_ref"],
        [{"id": "w1", "film_ref": "m2"}],
        foreign_key="film_ref",
    )
    collector = _Collector()

    result = run_dedupe_job(_config(tmp_path, execute=True), devi_store, on_unit=collector)

    assert result.status == "success"
    assert collector.results[0].state is UnitState.SUCCEEDED
    assert collector.results[0].outcome == "merged_soft_deleted"
    assert collector.details[0]["annotations"] == [SOFT_DELETE_ANNOTATION]
    assert devi_store.get("m2").is_active is False


@pytest.mark.unit
def test_dedupe_rejections_are_applied(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """Rejected pairs never become units."""
    rejections = tmp_path / "rejections.txt"
    rejections.write_text("m3|m4\nm2|m1\n", encoding="utf-8")

    result = run_dedupe_job(_config(tmp_path, rejection_path=rejections), catalog)

    assert result.total == 1
    assert result.summary["rejected_at_match"] == 2


@pytest.mark.unit
def test_unexpected_unit_error_fails_only_that_unit(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """A crashing unit is recorded as failed and the batch continues."""
    store = _ExplodingStore([catalog.get(rid) for rid in ("m1", "m2", "m3", "m4")])
    collector = _Collector()

    result = run_dedupe_job(_config(tmp_path), store, on_unit=collector)

    assert result.status == "partial"
    assert [r.state for r in collector.results] == [UnitState.SUCCEEDED, UnitState.FAILED]
    assert collector.results[1].error == "RuntimeError: connection reset"
    assert result.summary["top_failures"] == [
        {"reason": "RuntimeError: connection reset", "count": 1}
    ]
    errors = [e for e in _read_events(tmp_path / "out" / "events.jsonl") if e["event"] == "error"]
    assert errors[0]["rid"] == "m3|m4"


# ---------------------------------------------------------------------------
# Fatal setup errors
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_missing_store_is_fatal(tmp_path: Path) -> None:
    """Without a store handle or path the job cannot start."""
    with pytest.raises(FatalConfigurationError, match="no record store configured"):
        run_dedupe_job(_config(tmp_path))


@pytest.mark.unit
def test_unknown_resume_from_is_fatal(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """An unknown --resume-from id fails before any unit runs."""
    collector = _Collector()

    with pytest.raises(FatalConfigurationError, match="not found among units: m99"):
        run_dedupe_job(_config(tmp_path, resume_from="m99"), catalog, on_unit=collector)

    assert collector.results == []
    assert not (tmp_path / "out" / "checkpoint.json").exists()
    events = _read_events(tmp_path / "out" / "events.jsonl")
    assert events[-1]["event"] == "run_finished"
    assert events[-1]["data"]["status"] == "failed"


@pytest.mark.unit
def test_checkpoint_of_another_job_is_fatal(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """A dedupe run cannot resume a scoring checkpoint."""
    run_scoring_job(_config(tmp_path, job="score", as_of=AS_OF), catalog)

    with pytest.raises(FatalConfigurationError, match="belongs to a 'score' job"):
        run_dedupe_job(_config(tmp_path, resume=True), catalog)


# ---------------------------------------------------------------------------
# Resume, cancellation and batching
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_cancel_then_resume(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """A stopped run resumes where it left off under the original run id."""
    collector = _Collector()

    first = run_dedupe_job(
        _config(tmp_path),
        catalog,
        on_unit=collector,
        should_stop=lambda: len(collector.results) >= 1,
    )

    assert first.status == "cancelled"
    assert first.cancelled
    assert first.processed == 1
    assert first.summary["cancelled"] is True

    resumed_units = _Collector()
    second = run_dedupe_job(_config(tmp_path, resume=True), catalog, on_unit=resumed_units)

    assert second.status == "success"
    assert second.run_id == first.run_id
    assert second.processed == 3
    assert second.processed_this_run == 2
    assert resumed_units.unit_ids == ["m3|m4", "m5|m6"]


@pytest.mark.unit
def test_interrupted_unit_runs_again_on_resume(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """A unit left in progress by a killed run is processed on resume."""
    config = _config(tmp_path, resume=True)
    checkpoint = Checkpoint(job="dedupe", run_id="run-0", total=3)
    checkpoint.start("m1|m2")
    checkpoint.finish("m1|m2", UnitState.SUCCEEDED, duration_ms=1, outcome="planned")
    checkpoint.start("m3|m4")
    checkpoint.save(config.checkpoint_path)
    collector = _Collector()

    result = run_dedupe_job(config, catalog, on_unit=collector)

    assert collector.unit_ids == ["m3|m4", "m5|m6"]
    assert result.run_id == "run-0"


@pytest.mark.unit
def test_resume_from_continues_the_checkpoint(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """--resume-from alone keeps the earlier results and the run id."""
    collector = _Collector()
    first = run_dedupe_job(
        _config(tmp_path),
        catalog,
        on_unit=collector,
        should_stop=lambda: len(collector.results) >= 1,
    )

    resumed_units = _Collector()
    second = run_dedupe_job(
        _config(tmp_path, resume_from="m5|m6"), catalog, on_unit=resumed_units
    )

    assert resumed_units.unit_ids == ["m5|m6"]
    assert second.run_id == first.run_id
    assert second.processed == 2
    saved = Checkpoint.load(tmp_path / "out" / "checkpoint.json")
    assert list(saved.results) == ["m1|m2", "m5|m6"]


@pytest.mark.unit
def test_interrupted_unit_no_longer_generated_is_not_found(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """A pair merged before the checkpoint was written is reported as not found."""
    config = _config(tmp_path, resume=True)
    checkpoint = Checkpoint(job="dedupe", run_id="run-0", total=4)
    checkpoint.start("m1|m2")
    checkpoint.finish("m1|m2", UnitState.SUCCEEDED, duration_ms=1, outcome="planned")
    checkpoint.start("m8|m9", "tholi-prema-1998 ~ tholi-prema-1998")
    checkpoint.save(config.checkpoint_path)
    collector = _Collector()

    result = run_dedupe_job(config, catalog, on_unit=collector)

    assert collector.unit_ids == ["m3|m4", "m5|m6"]
    assert result.status == "success"
    assert result.total == 4
    assert result.skipped == 1
    assert result.summary["by_outcome"]["not_found"] == 1
    orphan = Checkpoint.load(config.checkpoint_path).results["m8|m9"]
    assert orphan.state is UnitState.SKIPPED
    assert orphan.reason == "record_not_found"
    assert orphan.entity == "tholi-prema-1998 ~ tholi-prema-1998"


@pytest.mark.unit
@pytest.mark.parametrize("resume_from", ["m3|m4", "m4"])
def test_resume_from_unit_or_record_id(
    tmp_path: Path, catalog: InMemoryRecordStore, resume_from: str
) -> None:
    """--resume-from accepts a unit id or one of its record ids."""
    collector = _Collector()

    run_dedupe_job(_config(tmp_path, resume_from=resume_from), catalog, on_unit=collector)

    assert collector.unit_ids == ["m3|m4", "m5|m6"]


@pytest.mark.unit
@pytest.mark.parametrize(("batch_size", "expected"), [(1, [0.2, 0.2]), (2, [0.2]), (5, [])])
def test_delay_between_batches(
    tmp_path: Path, catalog: InMemoryRecordStore, batch_size: int, expected: list[float]
) -> None:
    """The batch delay is applied between batches, never before the first."""
    sleeps: list[float] = []
    config = _config(tmp_path, batch_size=batch_size, batch_delay_ms=200)

    run_dedupe_job(config, catalog, sleep=sleeps.append)

    assert sleeps == expected


# ---------------------------------------------------------------------------
# Scoring job
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_scoring_dry_run_persists_nothing(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """Scores are reported but not written to the records."""
    snapshot = catalog.to_dict()
    collector = _Collector()

    result = run_scoring_job(
        _config(tmp_path, job="score", as_of=AS_OF), catalog, on_unit=collector
    )

    assert catalog.to_dict() == snapshot
    assert result.total == 7
    assert collector.unit_ids == ["m1", "m2", "m3", "m4", "m5", "m6", "m7"]
    assert all(d is not None and "overall" in d for d in collector.details)


@pytest.mark.unit
def test_scoring_execute_annotates_records(
    tmp_path: Path, catalog: InMemoryRecordStore, make_source: Callable[..., Any]
) -> None:
    """Execute mode stores the score on each record."""
    ledger = FieldSourceLedger(
        [
            make_source("title_en", "tmdb", 0.95, record_id="m2"),
            make_source("release_year", "tmdb", 0.95, record_id="m2"),
            make_source("director", "tmdb", 0.95, record_id="m2"),
        ]
    )

    result = run_scoring_job(
        _config(tmp_path, job="score", execute=True, ids=["m1", "m2"], as_of=AS_OF),
        catalog,
        ledger,
    )

    assert result.succeeded == 2
    confidence = catalog.get("m2").confidence
    assert confidence is not None
    assert confidence["overall"] > catalog.get("m1").confidence["overall"]
    assert confidence["as_of"] == "2025-06-01T00:00:00Z"


class _StaticSource:
    source_id = "imdb"
    reliability = 0.9
    machine_generated = False

    def fetch(self, record: Record) -> dict[str, Any]:
        return {"director": "Kodi Ramakrishna"}


@pytest.mark.unit
def test_scoring_saves_enriched_ledger(tmp_path: Path, catalog: InMemoryRecordStore) -> None:
    """Corroborated values are appended to the ledger file in execute mode."""
    ledger_path = tmp_path / "ledger.jsonl"
    config = _config(
        tmp_path, job="score", execute=True, ledger_path=ledger_path, as_of=AS_OF
    )

    result = run_scoring_job(
        config,
        catalog,
        FieldSourceLedger(),
        sources=CorroborationClient([_StaticSource()]),
    )

    assert result.summary["ledger_entries_added"] == 1
    saved = FieldSourceLedger.load(ledger_path)
    assert [(e.record_id, e.field_name, e.source_id) for e in saved] == [
        ("m2", "director", "imdb")
    ]


@pytest.mark.unit
def test_scoring_rerun_does_not_grow_ledger(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """Re-corroborating the same value leaves the ledger file unchanged."""
    ledger_path = tmp_path / "ledger.jsonl"
    ledger_path.write_text("", encoding="utf-8")
    config = _config(
        tmp_path, job="score", execute=True, ledger_path=ledger_path, as_of=AS_OF
    )

    sizes, added = [], []
    for _ in range(3):
        result = run_scoring_job(config, catalog, sources=CorroborationClient([_StaticSource()]))
        sizes.append(len(FieldSourceLedger.load(ledger_path)))
        added.append(result.summary["ledger_entries_added"])

    assert sizes == [1, 1, 1]
    assert added == [1, 0, 0]


@pytest.mark.unit
def test_scoring_saves_ledger_with_each_unit(
    tmp_path: Path, catalog: InMemoryRecordStore
) -> None:
    """A run killed after one unit has that unit's provenance on disk."""
    ledger_path = tmp_path / "ledger.jsonl"
    config = _config(
        tmp_path,
        job="score",
        execute=True,
        ids=["m2", "m3"],
        ledger_path=ledger_path,
        as_of=AS_OF,
    )

    def kill(result: UnitResult, detail: dict[str, Any] | None) -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        run_scoring_job(
            config,
            catalog,
            FieldSourceLedger(),
            sources=CorroborationClient([_StaticSource()]),
            on_unit=kill,
        )

    assert catalog.get("m2").confidence is not None
    saved = FieldSourceLedger.load(ledger_path)
    assert [(e.record_id, e.field_name, e.source_id) for e in saved] == [
        ("m2", "director", "imdb")
    ]
    checkpoint = Checkpoint.load(tmp_path / "out" / "checkpoint.json")
    assert checkpoint.state_of("m2") is UnitState.SUCCEEDED
    assert checkpoint.state_of("m3") is UnitState.PENDING
