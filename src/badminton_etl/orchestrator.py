"""badminton_etl.orchestrator

Runs one batch for one organizer:

  validate → (a) standalone players → (b) referenced players
           → (c)+(d) sessions and their participants → (e) payments

Every record runs inside its own SAVEPOINT.  A failing record is rolled back
to that savepoint and reported; the rest of the phase carries on.  Each
finished phase is committed, so a run that dies halfway keeps the phases it
completed.  In dry-run nothing is committed and the whole run is rolled back
at the end.

Connection-level failures (psycopg.OperationalError / InterfaceError) are
not per-record problems and propagate to the caller.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Sequence, TypeVar

import psycopg

from badminton_etl.config import MigrationConfig
from badminton_etl.models import MigrationData, MigrationPayment, MigrationPlayer, MigrationSession
from badminton_etl.result import MigrationResult, PhaseResult
from badminton_etl.store import UnknownOrganizerError, organizer_exists
from badminton_etl.upsert import (
    CREATED,
    PlayerRef,
    create_payment,
    create_session,
    extract_unique_players,
    upsert_player,
    upsert_referenced_player,
)
from badminton_etl.validation import validate_batch

log = logging.getLogger(__name__)

T = TypeVar("T")

_INFRA_ERRORS = (psycopg.OperationalError, psycopg.InterfaceError)


def run_migration(
    conn: psycopg.Connection,
    organizer_id: str,
    data: MigrationData,
    *,
    config: MigrationConfig | None = None,
    dry_run: bool = False,
    cancel_event: threading.Event | None = None,
) -> MigrationResult:
    """Validate and write one batch.  Returns the merged MigrationResult.

    Raises:
        UnknownOrganizerError: organizer_id names no organizer account.
        psycopg.OperationalError, psycopg.InterfaceError: the connection failed.
    """
    config = config or MigrationConfig()

    violations = validate_batch(data)
    if violations:
        log.warning("Validation failed with %d violation(s)", len(violations))
        return MigrationResult.validation_failed(violations)

    if not organizer_exists(conn, organizer_id):
        raise UnknownOrganizerError(f"organizer {organizer_id} not found")

    result = MigrationResult()
    payments = data.all_payments()
    log.info(
        "Starting migration for organizer %s: %d players, %d sessions, %d payments "
        "(dry_run=%s, strict_matching=%s)",
        organizer_id, len(data.players), len(data.sessions), len(payments),
        dry_run, config.strict_matching,
    )

    try:
        phases: list[tuple[str, Callable[[], PhaseResult]]] = [
            ("standalone players",
             lambda: _standalone_players_phase(conn, organizer_id, data.players, config, cancel_event)),
            ("referenced players",
             lambda: _referenced_players_phase(
                 conn, organizer_id, extract_unique_players(data.sessions, data.payments),
                 config, cancel_event)),
            ("sessions",
             lambda: _sessions_phase(conn, organizer_id, data.sessions, config, cancel_event)),
            ("payments",
             lambda: _payments_phase(conn, organizer_id, payments, config, cancel_event)),
        ]
        for label, phase in phases:
            phase_result = phase()
            result.absorb(phase_result)
            if not dry_run:
                conn.commit()
            log.info(
                "Phase %s done: %d error(s), %d warning(s)",
                label, len(phase_result.errors), len(phase_result.warnings),
            )
            if result.cancelled:
                log.warning("Migration cancelled during phase %s", label)
                break
    finally:
        if dry_run and not conn.closed:
            conn.rollback()
            log.info("Dry run: all changes rolled back")

    result.summarize()
    log.info(result.message)
    return result


# ---------------------------------------------------------------------------
# Per-record loop
# ---------------------------------------------------------------------------

def _run_records(
    conn: psycopg.Connection,
    records: Sequence[T],
    sp_prefix: str,
    handle: Callable[[T], PhaseResult],
    on_error: Callable[[PhaseResult, T, Exception], None],
    cancel_event: threading.Event | None,
) -> PhaseResult:
    phase = PhaseResult()
    for idx, record in enumerate(records):
        if cancel_event is not None and cancel_event.is_set():
            phase.cancelled = True
            break
        sp_name = f"{sp_prefix}_{idx}"
        conn.execute(f"SAVEPOINT {sp_name}")
        try:
            phase.merge(handle(record))
            conn.execute(f"RELEASE SAVEPOINT {sp_name}")
        except _INFRA_ERRORS:
            raise
        except Exception as exc:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            on_error(phase, record, exc)
    return phase


def _counted(field: str) -> Callable[[str], PhaseResult]:
    """PhaseResult with one `<field>_created` or `<field>_updated` increment."""
    def build(action: str) -> PhaseResult:
        one = PhaseResult()
        name = f"{field}_{'created' if action == CREATED else 'updated'}"
        setattr(one.stats, name, getattr(one.stats, name) + 1)
        return one
    return build


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def _standalone_players_phase(
    conn: psycopg.Connection,
    organizer_id: str,
    players: Sequence[MigrationPlayer],
    config: MigrationConfig,
    cancel_event: threading.Event | None,
) -> PhaseResult:
    log.info("Phase: %d standalone players", len(players))
    count = _counted("standalone_players")

    def handle(player: MigrationPlayer) -> PhaseResult:
        return count(upsert_player(conn, organizer_id, player, config).action)

    def on_error(phase: PhaseResult, player: MigrationPlayer, exc: Exception) -> None:
        msg = f"Failed to migrate player {player.name} ({player.phone_number}): {exc}"
        log.warning(msg)
        phase.reject("player", msg, player_name=player.name, phone_number=player.phone_number)

    return _run_records(conn, players, "player", handle, on_error, cancel_event)


def _referenced_players_phase(
    conn: psycopg.Connection,
    organizer_id: str,
    refs: Sequence[PlayerRef],
    config: MigrationConfig,
    cancel_event: threading.Event | None,
) -> PhaseResult:
    log.info("Phase: %d referenced players", len(refs))
    count = _counted("session_players")

    def handle(ref: PlayerRef) -> PhaseResult:
        return count(upsert_referenced_player(conn, organizer_id, ref, config).action)

    def on_error(phase: PhaseResult, ref: PlayerRef, exc: Exception) -> None:
        msg = f"Failed to create session player {ref.name} ({ref.phone_number}): {exc}"
        log.warning(msg)
        phase.reject("session_player", msg, player_name=ref.name, phone_number=ref.phone_number)

    return _run_records(conn, refs, "ref_player", handle, on_error, cancel_event)


def _sessions_phase(
    conn: psycopg.Connection,
    organizer_id: str,
    sessions: Sequence[MigrationSession],
    config: MigrationConfig,
    cancel_event: threading.Event | None,
) -> PhaseResult:
    log.info("Phase: %d sessions", len(sessions))
    def handle(session: MigrationSession) -> PhaseResult:
        _, session_result = create_session(conn, organizer_id, session, config)
        return session_result

    def on_error(phase: PhaseResult, session: MigrationSession, exc: Exception) -> None:
        msg = f"Failed to create session {session.date} at {session.location_name}: {exc}"
        log.warning(msg)
        phase.reject("session", msg, session_date=session.date, amount=session.total_cost)

    return _run_records(conn, sessions, "session", handle, on_error, cancel_event)


def _payments_phase(
    conn: psycopg.Connection,
    organizer_id: str,
    payments: Sequence[MigrationPayment],
    config: MigrationConfig,
    cancel_event: threading.Event | None,
) -> PhaseResult:
    log.info("Phase: %d payments", len(payments))

    def handle(payment: MigrationPayment) -> PhaseResult:
        create_payment(conn, organizer_id, payment, config)
        one = PhaseResult()
        one.stats.payments_created += 1
        return one

    def on_error(phase: PhaseResult, payment: MigrationPayment, exc: Exception) -> None:
        msg = (
            f"Failed to create payment for {payment.player_name} "
            f"({payment.phone_number}) on {payment.payment_date}: {exc}"
        )
        log.warning(msg)
        phase.reject(
            "payment",
            msg,
            player_name=payment.player_name,
            phone_number=payment.phone_number,
            session_date=payment.payment_date,
            amount=payment.amount,
        )

    return _run_records(conn, payments, "payment", handle, on_error, cancel_event)


def result_summary(result: MigrationResult) -> dict[str, Any]:
    """Counters plus error/warning totals, for progress output."""
    return {
        **result.stats.to_dict(),
        "errors": len(result.errors),
        "warnings": len(result.warnings),
    }
