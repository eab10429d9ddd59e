"""Command-line interface for catalogdq.

Provides the ``match``, ``dedupe`` and ``score`` commands. Exit codes:
0 when the run completed (even with failed units), 1 on an unexpected
crash, 2 on a configuration error detected before any unit ran.
"""

import importlib.metadata
import json
import signal
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import click

__all__ = ["cli"]

try:
    __version__ = importlib.metadata.version("catalogdq")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.4.0"  # Fallback for development

EXIT_CRASH = 1
EXIT_CONFIG = 2

_STATE_COLORS = {"succeeded": "green", "failed": "red", "skipped": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="catalogdq")
def cli() -> None:
    """Catalog data quality: duplicate detection, merging and confidence scoring.

    Use 'catalogdq COMMAND --help' for command-specific help.
    """


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------


def _split_ids(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _selection_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options selecting the store and the record partition."""
    options = [
        click.option(
            "--store",
            "store_path",
            type=click.Path(dir_okay=False, path_type=Path),
            envvar="CATALOGDQ_STORE",
            help="Record store snapshot (JSON). Defaults to $CATALOGDQ_STORE.",
        ),
        click.option(
            "--entity-type",
            default="movie",
            show_default=True,
            help="Record partition to process.",
        ),
        click.option(
            "--min-count",
            type=click.IntRange(min=0),
            default=None,
            help="Only records with at least this many dependent rows.",
        ),
        click.option("--ids", default=None, help="Comma-separated record id allowlist."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _job_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by batch jobs."""
    options = [
        click.option(
            "--dry-run/--execute",
            "dry_run",
            default=True,
            show_default=True,
            help="Dry run plans every action without touching the store.",
        ),
        click.option("--resume", is_flag=True, help="Skip units finished in the checkpoint."),
        click.option(
            "--resume-from",
            default=None,
            help="Continue the checkpoint from the unit with this id (pair or record id).",
        ),
        click.option(
            "--batch-size", type=click.IntRange(min=1), default=50, show_default=True
        ),
        click.option(
            "--batch-delay-ms",
            type=click.IntRange(min=0),
            default=0,
            show_default=True,
            help="Blocking delay between batches and between external calls.",
        ),
        click.option(
            "--output-dir",
            "-o",
            type=click.Path(file_okay=False, path_type=Path),
            default=Path("out"),
            show_default=True,
            help="Directory for checkpoint, events and reports.",
        ),
        click.option("--verbose", "-v", is_flag=True, help="Enable verbose output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@contextmanager
def _stop_on_sigint() -> Iterator[Callable[[], bool]]:
    """Turn the first Ctrl-C into a cooperative stop request."""
    requested = {"stop": False}

    def handler(signum: int, frame: Any) -> None:
        if requested["stop"]:
            raise KeyboardInterrupt
        requested["stop"] = True
        click.secho("Stop requested; finishing the current unit...", fg="yellow", err=True)

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not in the main thread; no signal handling
        yield lambda: requested["stop"]
        return

    try:
        yield lambda: requested["stop"]
    finally:
        signal.signal(signal.SIGINT, previous)


def _unit_printer(dry_run: bool, job: str) -> Callable[..., None]:
    prefix = "[dry-run] " if dry_run else ""

    def print_unit(result: Any, detail: dict[str, Any] | None) -> None:
        state = result.state.value
        line = f"{prefix}{result.unit_id} {result.outcome}"
        if job == "dedupe" and detail and detail.get("survivor_id"):
            verb = "would keep" if dry_run else "kept"
            line += f" ({verb} {detail['survivor_id']}, remove {detail['loser_id']}"
            if detail.get("fields_filled"):
                line += f", fill {','.join(detail['fields_filled'])}"
            line += ")"
        elif job == "score" and detail:
            line += f" overall={detail['overall']:.4f}"
            if dry_run:
                line += " (not saved)"
        if result.error:
            line += f": {result.error}"
        click.secho(line, fg=_STATE_COLORS.get(state))

    return print_unit


def _print_summary(result: Any) -> None:
    """Print the final tabulated summary."""
    mode = "dry-run" if result.dry_run else "execute"
    click.echo("")
    click.secho(f"{result.job} summary ({mode}, {result.status})", bold=True)
    rows = [
        ("Total units", result.total),
        ("Processed", result.processed),
        ("Succeeded", result.succeeded),
        ("Failed", result.failed),
        ("Skipped", result.skipped),
    ]
    for label, value in rows:
        click.echo(f"  {label:<14}{value:>8}")

    by_outcome = result.summary.get("by_outcome", {})
    if by_outcome:
        click.echo("  Outcomes:")
        for outcome, count in by_outcome.items():
            click.echo(f"    {outcome:<22}{count:>6}")

    failures = result.summary.get("top_failures", [])
    if failures:
        click.echo("  Top failures:")
        for item in failures:
            click.echo(f"    {item['count']:>4}  {item['reason']}")

    if result.dry_run:
        click.secho("[dry-run] no changes were written; rerun with --execute", fg="yellow")


def _run_job(runner: Callable[..., Any], config_kwargs: dict[str, Any], verbose: bool) -> None:
    from catalogdq.engine import FatalConfigurationError, JobConfig

    try:
        config = JobConfig(**config_kwargs)
    except ValueError as e:
        click.secho(f"✗ Configuration error: {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG)

    if verbose:
        for key, value in config.to_dict().items():
            click.echo(f"  {key}: {value}", err=True)

    try:
        with _stop_on_sigint() as should_stop:
            result = runner(
                config,
                should_stop=should_stop,
                on_unit=_unit_printer(config.dry_run, config.job),
            )
    except FatalConfigurationError as e:
        click.secho(f"✗ Configuration error: {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG)
    except Exception as e:
        click.secho(f"✗ Error: {e}", fg="red", err=True)
        if verbose:
            import traceback

            click.echo(traceback.format_exc(), err=True)
        sys.exit(EXIT_CRASH)

    _print_summary(result)
    if result.cancelled:
        click.secho("Run stopped early; continue with --resume", fg="yellow")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@cli.command()
@_selection_options
@click.option(
    "--rejections",
    "rejection_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Rejection list (JSON or 'key_a|key_b' lines).",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write candidates as JSONL to this file.",
)
def match(
    store_path: Path | None,
    entity_type: str,
    min_count: int | None,
    ids: str | None,
    rejection_path: Path | None,
    output: Path | None,
) -> None:
    """List duplicate candidate pairs without changing anything.

    Examples
    --------
        catalogdq match --store catalog.json
        catalogdq match --store catalog.json --entity-type celebrity --output pairs.jsonl
    """
    from catalogdq.candidates import RejectionSet, SimilarityMatcher
    from catalogdq.store import InMemoryRecordStore, StoreError

    if store_path is None:
        click.secho("✗ No record store: pass --store or set CATALOGDQ_STORE", fg="red", err=True)
        sys.exit(EXIT_CONFIG)

    try:
        store = InMemoryRecordStore.load(store_path)
        rejections = RejectionSet.load(rejection_path) if rejection_path else RejectionSet()
        records = store.query(entity_type, ids=_split_ids(ids), min_related=min_count)
    except (StoreError, OSError, ValueError) as e:
        click.secho(f"✗ Configuration error: {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG)

    matcher = SimilarityMatcher(rejections=rejections)
    candidates = list(matcher.find_candidates(records))

    for candidate in candidates:
        click.echo(
            f"{candidate.similarity_score:>3}  {candidate.category.value:<16}"
            f"{candidate.record_a_id} | {candidate.record_b_id}"
            f"  ({candidate.key_a} ~ {candidate.key_b})"
        )

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as f:
            for candidate in candidates:
                json.dump(candidate.to_dict(), f, ensure_ascii=False, sort_keys=True)
                f.write("\n")

    click.secho(
        f"✓ {len(candidates)} candidate pair(s) among {len(records)} record(s)"
        f" ({matcher.rejected_count} rejected)",
        fg="green",
    )


@cli.command()
@_selection_options
@_job_options
@click.option(
    "--rejections",
    "rejection_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Rejection list (JSON or 'key_a|key_b' lines).",
)
def dedupe(
    store_path: Path | None,
    entity_type: str,
    min_count: int | None,
    ids: str | None,
    dry_run: bool,
    resume: bool,
    resume_from: str | None,
    batch_size: int,
    batch_delay_ms: int,
    output_dir: Path,
    verbose: bool,
    rejection_path: Path | None,
) -> None:
    """Find duplicates and merge them (dry run unless --execute).

    Examples
    --------
        catalogdq dedupe --store catalog.json
        catalogdq dedupe --store catalog.json --execute --rejections rejected.txt
        catalogdq dedupe --store catalog.json --execute --resume
    """
    from catalogdq.engine import run_dedupe_job

    _run_job(
        run_dedupe_job,
        {
            "job": "dedupe",
            "entity_type": entity_type,
            "execute": not dry_run,
            "min_count": min_count,
            "ids": _split_ids(ids),
            "resume": resume,
            "resume_from": resume_from,
            "batch_size": batch_size,
            "batch_delay_ms": batch_delay_ms,
            "output_dir": output_dir,
            "store_path": store_path,
            "rejection_path": rejection_path,
        },
        verbose,
    )


@cli.command()
@_selection_options
@_job_options
@click.option(
    "--ledger",
    "ledger_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Field Source Ledger (JSON array or JSONL).",
)
@click.option(
    "--sources",
    "sources_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON list of HTTP metadata sources used for corroboration.",
)
@click.option(
    "--as-of",
    type=click.DateTime(),
    default=None,
    help="Reference time (UTC) for the staleness penalty; defaults to now.",
)
def score(
    store_path: Path | None,
    entity_type: str,
    min_count: int | None,
    ids: str | None,
    dry_run: bool,
    resume: bool,
    resume_from: str | None,
    batch_size: int,
    batch_delay_ms: int,
    output_dir: Path,
    verbose: bool,
    ledger_path: Path | None,
    sources_path: Path | None,
    as_of: datetime | None,
) -> None:
    """Compute confidence scores (saved onto records only with --execute).

    Examples
    --------
        catalogdq score --store catalog.json --ledger sources.jsonl
        catalogdq score --store catalog.json --ledger sources.jsonl --execute
    """
    from catalogdq.engine import run_scoring_job

    _run_job(
        run_scoring_job,
        {
            "job": "score",
            "entity_type": entity_type,
            "execute": not dry_run,
            "min_count": min_count,
            "ids": _split_ids(ids),
            "resume": resume,
            "resume_from": resume_from,
            "batch_size": batch_size,
            "batch_delay_ms": batch_delay_ms,
            "output_dir": output_dir,
            "store_path": store_path,
            "ledger_path": ledger_path,
            "sources_path": sources_path,
            "as_of": as_of,
        },
        verbose,
    )


if __name__ == "__main__":
    cli()
