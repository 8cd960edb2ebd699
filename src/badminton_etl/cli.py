"""badminton_etl.cli

Command-line entrypoint for migrating one legacy batch into one organizer.

Usage:
    badminton-etl \\
        --db-dsn "$DB_DSN" \\
        --organizer-id 5b0c6a3e-8f47-4c1b-9d3e-2f1a7c9e4b10 \\
        --batch-path exports/2024_sessions.yml \\
        --config config/migration.yml \\
        --rejects-path artifacts/rejects/2024_sessions_rejects.csv

    # Check a batch without touching the database
    badminton-etl --organizer-id ... --batch-path exports/2024_sessions.yml --validate-only

Batch files are JSON or YAML.  In YAML, quote times ("18:30") and phone
numbers: unquoted they load as numbers.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from badminton_etl.config import ConfigValidationError, MigrationConfig, load_config
from badminton_etl.models import BatchFormatError, load_batch
from badminton_etl.orchestrator import result_summary, run_migration
from badminton_etl.result import MigrationResult, RejectWriter, write_run_report
from badminton_etl.store import UnknownOrganizerError
from badminton_etl.validation import validate_batch

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.command()
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (not needed with --validate-only)")
@click.option("--organizer-id", required=True, help="UUID of the organizer that owns the data")
@click.option("--batch-path", required=True, type=click.Path(), help="Batch file (.json, .yml, .yaml)")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML engine config")
@click.option(
    "--strict-matching/--fuzzy-matching",
    default=None,
    help="Disable case-insensitive and substring player matching (overrides config)",
)
@click.option("--dry-run", is_flag=True, default=False, help="Run every write, then roll back")
@click.option("--validate-only", is_flag=True, default=False, help="Validate the batch and exit")
@click.option(
    "--rejects-path",
    default=None,
    type=click.Path(),
    help="CSV for rejected records [default: artifacts/rejects/<run_id>.csv]",
)
@click.option("--run-id", default=None, help="Run identifier [default: random UUID]")
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
)
def main(
    db_dsn: str | None,
    organizer_id: str,
    batch_path: str,
    config_path: str | None,
    strict_matching: bool | None,
    dry_run: bool,
    validate_only: bool,
    rejects_path: str | None,
    run_id: str | None,
    log_level: str,
) -> None:
    """Migrate a legacy badminton batch (players, sessions, payments)."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    click.echo(f"[{run_id}] Starting migration run (dry_run={dry_run}, validate_only={validate_only})")

    try:
        organizer_id = str(uuid.UUID(organizer_id))
    except ValueError:
        click.echo(f"[{run_id}] FATAL: --organizer-id {organizer_id!r} is not a UUID", err=True)
        sys.exit(1)

    try:
        config = load_config(Path(config_path)) if config_path else MigrationConfig()
    except (ConfigValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: config error: {exc}", err=True)
        sys.exit(1)
    config = config.with_overrides(strict_matching=strict_matching)

    try:
        data = load_batch(Path(batch_path))
    except (BatchFormatError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: batch error: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"[{run_id}] Loaded batch: {len(data.players)} players, "
        f"{len(data.sessions)} sessions, {len(data.all_payments())} payments"
    )

    if validate_only:
        violations = validate_batch(data)
        for violation in violations:
            click.echo(f"[{run_id}]   {violation}", err=True)
        if violations:
            click.echo(f"[{run_id}] Validation failed: {len(violations)} violation(s)", err=True)
            sys.exit(1)
        click.echo(f"[{run_id}] Validation passed.")
        return

    if not db_dsn:
        click.echo(f"[{run_id}] FATAL: --db-dsn is required unless --validate-only", err=True)
        sys.exit(1)

    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        result = run_migration(conn, organizer_id, data, config=config, dry_run=dry_run)
    except UnknownOrganizerError as exc:
        conn.rollback()
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)
    except Exception:
        if not conn.closed:
            conn.rollback()
        raise
    finally:
        if not conn.closed:
            conn.close()

    reject_file = Path(rejects_path or f"artifacts/rejects/{run_id}.csv")
    rejects = _write_rejects(result, reject_file)
    if rejects.rows_written:
        click.echo(f"[{run_id}] {rejects.rows_written} rejected record(s) written to {reject_file}")

    report_path = write_run_report(
        run_id, started_at, organizer_id, dry_run, batch_path, result,
        max_errors=config.max_report_errors,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    _echo_result(run_id, result, config.max_report_errors)
    if dry_run:
        click.echo(f"[{run_id}] DRY RUN: all changes rolled back.")
    if not result.success:
        sys.exit(1)


def _write_rejects(result: MigrationResult, path: Path) -> RejectWriter:
    rejects = RejectWriter(path)
    try:
        for row in result.rejects:
            rejects.write(row)
    finally:
        rejects.close()
    return rejects


def _echo_result(run_id: str, result: MigrationResult, max_errors: int) -> None:
    stream_err = not result.success
    click.echo(f"[{run_id}] {result.message}", err=stream_err)
    for key, value in result_summary(result).items():
        click.echo(f"[{run_id}]   {key}: {value}")
    for warning in result.warnings[:max_errors]:
        click.echo(f"[{run_id}]   WARNING {warning}")
    for error in result.errors[:max_errors]:
        click.echo(f"[{run_id}]   ERROR {error}", err=True)
    if len(result.errors) > max_errors:
        click.echo(f"[{run_id}]   ... {len(result.errors) - max_errors} more error(s) in the run report", err=True)


if __name__ == "__main__":
    main()
