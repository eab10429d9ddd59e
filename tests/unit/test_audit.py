"""Tests for the audit logger, run ids and file utilities."""

import hashlib
import json
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from catalogdq.audit import AuditLogger, generate_run_id
from catalogdq.utils import (
    calculate_file_sha256,
    ensure_utc,
    format_sha256,
    parse_iso_timestamp,
    write_json_atomic,
)


@pytest.fixture
def logger(tmp_path: Path) -> Iterator[AuditLogger]:
    """Create a logger that auto-closes after test."""
    lg = AuditLogger(run_id="test_run", log_path=tmp_path / "out" / "events.jsonl")
    yield lg
    lg.close()


def _read_events(path: Path) -> list[dict]:
    """Read all JSONL events from file."""
    with path.open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_logger_creates_parent_directory(logger: AuditLogger) -> None:
    """The log file and its directory exist as soon as the logger opens."""
    assert logger.log_path.exists()
    assert logger.current_stage is None


@pytest.mark.unit
def test_event_envelope(logger: AuditLogger) -> None:
    """Each event is one JSON line with the standard envelope."""
    logger.event("custom", data={"key": "value"}, rid="m1|m2")

    (evt,) = _read_events(logger.log_path)

    assert set(evt) == {"ts", "run_id", "level", "event", "data", "stage", "rid"}
    assert evt["run_id"] == "test_run"
    assert evt["level"] == "INFO"
    assert evt["data"] == {"key": "value"}
    assert evt["rid"] == "m1|m2"
    assert evt["ts"].endswith("Z")


@pytest.mark.unit
def test_stage_context(logger: AuditLogger) -> None:
    """stage_started sets the stage inherited by later events."""
    logger.stage_started("dedupe", expected_units=3)
    logger.event("ev1")
    logger.stage_finished("dedupe", 0.5, counters={"succeeded": 3})

    events = _read_events(logger.log_path)

    assert [e["stage"] for e in events] == ["dedupe", "dedupe", "dedupe"]
    assert events[0]["data"] == {"expected_units": 3}
    assert events[2]["data"] == {"duration_seconds": 0.5, "counters": {"succeeded": 3}}


@pytest.mark.unit
@pytest.mark.parametrize(
    ("state", "level"),
    [("succeeded", "INFO"), ("skipped", "INFO"), ("failed", "WARN")],
)
def test_unit_finished_levels(logger: AuditLogger, state: str, level: str) -> None:
    """Failed units are logged as warnings."""
    logger.unit_finished("m1|m2", state, 7, outcome="merged")

    (evt,) = _read_events(logger.log_path)

    assert evt["event"] == "unit_finished"
    assert evt["level"] == level
    assert evt["data"] == {"state": state, "duration_ms": 7, "outcome": "merged"}


@pytest.mark.unit
def test_run_lifecycle_and_errors(logger: AuditLogger) -> None:
    """Run, artifact and error events carry their payloads."""
    logger.run_started(["catalogdq", "dedupe"], {"execute": False})
    logger.artifact_written("summary.json", "sha256:abc", bytes_written=10)
    logger.error("StoreWriteError", "write refused", rid="m1|m2")
    logger.run_finished("partial", 1.25, units_processed=2)

    events = _read_events(logger.log_path)

    assert [e["event"] for e in events] == [
        "run_started",
        "artifact_written",
        "error",
        "run_finished",
    ]
    assert events[1]["data"] == {"path": "summary.json", "sha256": "sha256:abc", "bytes": 10}
    assert events[2]["level"] == "ERROR"
    assert events[3]["data"]["units_processed"] == 2


@pytest.mark.unit
def test_logger_appends_across_instances(tmp_path: Path) -> None:
    """A resumed run appends to the existing log."""
    path = tmp_path / "events.jsonl"
    with AuditLogger("run-a", path) as first:
        first.event("one")
    with AuditLogger("run-b", path) as second:
        second.event("two")

    assert [e["run_id"] for e in _read_events(path)] == ["run-a", "run-b"]


@pytest.mark.unit
def test_generate_run_id_format_and_uniqueness() -> None:
    """Run ids are an ISO timestamp plus a random hex suffix."""
    rid1 = generate_run_id()
    rid2 = generate_run_id()

    timestamp, suffix = rid1.split("__")
    assert timestamp.endswith("Z")
    assert len(suffix) == 8
    assert rid1 != rid2


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_write_json_atomic(tmp_path: Path) -> None:
    """Atomic writes leave only the target file, with sorted keys."""
    path = tmp_path / "nested" / "data.json"

    write_json_atomic(path, {"b": 1, "a": [1, 2]})
    write_json_atomic(path, {"b": 2})

    assert json.loads(path.read_text(encoding="utf-8")) == {"b": 2}
    assert [p.name for p in path.parent.iterdir()] == ["data.json"]


@pytest.mark.unit
def test_sha256_helpers(tmp_path: Path) -> None:
    """File digests match hashlib and carry the sha256 prefix."""
    path = tmp_path / "x.txt"
    path.write_bytes(b"devi")

    assert calculate_file_sha256(path) == format_sha256(hashlib.sha256(b"devi").hexdigest())
    assert calculate_file_sha256(path).startswith("sha256:")
    with pytest.raises(FileNotFoundError):
        calculate_file_sha256(tmp_path / "missing.txt")


@pytest.mark.unit
@pytest.mark.parametrize(
    "iso_str",
    ["2025-06-01T12:00:00Z", "2025-06-01T12:00:00+00:00", "2025-06-01T12:00:00"],
)
def test_parse_iso_timestamp(iso_str: str) -> None:
    """Z, offset and naive forms all parse to the same UTC instant."""
    assert parse_iso_timestamp(iso_str) == datetime(2025, 6, 1, 12, tzinfo=UTC)


@pytest.mark.unit
def test_ensure_utc_converts_offsets() -> None:
    """Aware datetimes are converted to UTC."""
    ist = timezone(timedelta(hours=5, minutes=30))

    assert ensure_utc(datetime(2025, 6, 1, 17, 30, tzinfo=ist)) == datetime(
        2025, 6, 1, 12, tzinfo=UTC
    )
    assert ensure_utc(datetime(2025, 6, 1, 17, 30, tzinfo=ist)).tzinfo is UTC
