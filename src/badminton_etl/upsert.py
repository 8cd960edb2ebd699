"""badminton_etl.upsert

Single-entity writes used by the migration phases.

Players are upserted (matched by exact name, then phone, and updated on a
hit).  Sessions, participant links and payments are create-only: running
the same batch twice creates them twice.

Callers own transaction control.  create_session() sets one SAVEPOINT per
participant so that a bad participant never takes its session down with it.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

import psycopg

from badminton_etl.config import MigrationConfig
from badminton_etl.models import MigrationParticipant, MigrationPayment, MigrationPlayer, MigrationSession
from badminton_etl.normalize import (
    make_placeholder_phone,
    name_key,
    parse_iso_date,
    to_cents,
    to_decimal,
    usable_phone,
)
from badminton_etl.resolver import PlayerNotFoundError, known_player_names, resolve_player
from badminton_etl.result import PhaseResult
from badminton_etl.store import (
    insert_payment,
    insert_player,
    insert_session,
    insert_session_participant,
    phone_in_use,
    touch_player,
    update_player,
)

log = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"


class PlaceholderExhaustedError(RuntimeError):
    """Raised when no free placeholder phone was found in the allowed attempts."""


@dataclass(frozen=True)
class PlayerUpsert:
    action: str
    player_id: str


@dataclass(frozen=True)
class PlayerRef:
    """A player identity referenced by a participant or payment row."""

    name: str
    phone_number: str | None


# ---------------------------------------------------------------------------
# Placeholder phones
# ---------------------------------------------------------------------------

def allocate_placeholder_phone(
    conn: psycopg.Connection,
    organizer_id: str,
    config: MigrationConfig,
    rng: random.Random | None = None,
) -> str:
    for _ in range(config.placeholder_max_attempts):
        candidate = make_placeholder_phone(config.placeholder_suffix_length, rng)
        if not phone_in_use(conn, organizer_id, candidate):
            return candidate
    raise PlaceholderExhaustedError(
        f"no free placeholder phone after {config.placeholder_max_attempts} attempts"
    )


# ---------------------------------------------------------------------------
# Player upsert
# ---------------------------------------------------------------------------

def upsert_player(
    conn: psycopg.Connection,
    organizer_id: str,
    player: MigrationPlayer,
    config: MigrationConfig,
) -> PlayerUpsert:
    """Create or update one roster player.  Safe to repeat with the same input."""
    match = resolve_player(conn, organizer_id, player.name, player.phone_number, fuzzy=False)
    if match:
        update_player(conn, match.player_id, player.name, player.is_active, player.notes)
        log.info("Updated player %r (%s, matched by %s)", player.name, match.player_id, match.strategy)
        return PlayerUpsert(UPDATED, match.player_id)

    phone = usable_phone(player.phone_number)
    is_temporary = player.is_temporary or phone is None
    if phone is None:
        phone = allocate_placeholder_phone(conn, organizer_id, config)
    player_id = insert_player(
        conn,
        organizer_id,
        name=player.name,
        phone_number=phone,
        is_temporary=is_temporary,
        is_active=player.is_active,
        notes=player.notes,
        joined_at=parse_iso_date(player.joined_at),
    )
    log.info("Created player %r (%s, temporary=%s)", player.name, player_id, is_temporary)
    return PlayerUpsert(CREATED, player_id)


# ---------------------------------------------------------------------------
# Unique-player extraction
# ---------------------------------------------------------------------------

def player_ref_key(name: str | None, phone: str | None) -> str:
    """Dedup key: the usable phone when there is one, else the case-folded name."""
    phone_norm = usable_phone(phone)
    if phone_norm:
        return f"phone:{phone_norm}"
    return f"name:{name_key(name) or ''}"


def extract_unique_players(
    sessions: Iterable[MigrationSession],
    payments: Iterable[MigrationPayment] = (),
) -> list[PlayerRef]:
    """Every distinct identity referenced by attendance and payment rows.

    Covers each session's participants and nested payments plus the flat
    batch-level payments, so a player who only ever appears in a payment
    (a refund, a credit transfer) still exists before payments are written.
    First occurrence wins; order is preserved.
    """
    seen: dict[str, PlayerRef] = {}

    def add(name: str | None, phone: str | None) -> None:
        if not name:
            return
        key = player_ref_key(name, phone)
        if key not in seen:
            seen[key] = PlayerRef(name=name, phone_number=phone)

    for session in sessions:
        for participant in session.participants:
            add(participant.player_name, participant.phone_number)
        for payment in session.payments:
            add(payment.player_name, payment.phone_number)
    for payment in payments:
        add(payment.player_name, payment.phone_number)

    log.info("Extracted %d unique referenced players", len(seen))
    return list(seen.values())


def upsert_referenced_player(
    conn: psycopg.Connection,
    organizer_id: str,
    ref: PlayerRef,
    config: MigrationConfig,
) -> PlayerUpsert:
    """Make sure a referenced identity exists.

    An existing player is only touched: standalone roster rows own the name,
    attendance and payment rows do not rename anybody.  Unless matching is
    strict, a differently-cased name ("sarah" for "Sarah") finds the existing
    player; substring matches never do.
    """
    match = resolve_player(
        conn,
        organizer_id,
        ref.name,
        ref.phone_number,
        fuzzy=not config.strict_matching,
        substring=False,
    )
    if match:
        touch_player(conn, match.player_id)
        return PlayerUpsert(UPDATED, match.player_id)

    phone = usable_phone(ref.phone_number)
    is_temporary = phone is None
    if phone is None:
        phone = allocate_placeholder_phone(conn, organizer_id, config)
    player_id = insert_player(
        conn,
        organizer_id,
        name=ref.name,
        phone_number=phone,
        is_temporary=is_temporary,
        is_active=True,
        notes=None,
        joined_at=None,
    )
    log.info("Created referenced player %r (%s, temporary=%s)", ref.name, player_id, is_temporary)
    return PlayerUpsert(CREATED, player_id)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def session_costs(session: MigrationSession) -> tuple[Decimal, Decimal, Decimal]:
    """(court_cost, shuttlecock_cost, other_costs).

    court_rate already is the session's total court cost; it is not
    multiplied by hours.  Values are rounded to cents as the columns hold them.
    """
    court_cost = to_cents(session.court_rate)
    shuttlecock_cost = to_cents(to_decimal(session.shuttle_rate) * to_decimal(session.total_shuttles))
    return court_cost, shuttlecock_cost, Decimal("0")


def cost_mismatch(session: MigrationSession, config: MigrationConfig) -> str | None:
    """Warning text when the declared total disagrees with the components."""
    calculated = sum(session_costs(session), Decimal("0"))
    declared = to_decimal(session.total_cost)
    difference = abs(calculated - declared)
    if difference > config.cost_tolerance:
        return (
            f"Session {session.date} at {session.location_name}: cost mismatch, "
            f"calculated {calculated} vs declared {declared} (difference: {difference})"
        )
    return None


def create_session(
    conn: psycopg.Connection,
    organizer_id: str,
    session: MigrationSession,
    config: MigrationConfig,
    savepoint_prefix: str = "participant",
) -> tuple[str, PhaseResult]:
    """Insert the session row, then link each participant.

    Returns (session_id, result).  A participant whose player cannot be
    resolved is rolled back to its own savepoint and reported; the session
    and the other participants stay.
    """
    result = PhaseResult()
    court_cost, shuttlecock_cost, other_costs = session_costs(session)

    warning = cost_mismatch(session, config)
    if warning:
        log.warning(warning)
        result.warnings.append(warning)

    values = {
        "title": session.session_name or config.session_title(session.date),
        "session_date": parse_iso_date(session.date),
        "location": session.location_name,
        "court_cost": court_cost,
        "shuttlecock_cost": shuttlecock_cost,
        "other_costs": other_costs,
        "player_count": session.player_count,
        "status": config.session_status,
        "notes": session.notes,
    }
    if session.start_time:
        values["start_time"] = session.start_time
    if session.end_time:
        values["end_time"] = session.end_time

    session_id = insert_session(conn, organizer_id, values)
    result.stats.sessions_created += 1
    log.info(
        "Created session %s on %s (court_cost=%s, shuttlecock_cost=%s)",
        session_id, session.date, court_cost, shuttlecock_cost,
    )

    for idx, participant in enumerate(session.participants):
        sp_name = f"{savepoint_prefix}_{idx}"
        conn.execute(f"SAVEPOINT {sp_name}")
        try:
            create_participant(conn, organizer_id, session_id, participant, config)
            conn.execute(f"RELEASE SAVEPOINT {sp_name}")
            result.stats.participant_records_created += 1
        except (psycopg.OperationalError, psycopg.InterfaceError):
            raise
        except psycopg.errors.UniqueViolation:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            msg = (
                f"Participant {participant.player_name} already linked to session "
                f"{session.date}; skipped duplicate"
            )
            log.warning(msg)
            result.warnings.append(msg)
        except Exception as exc:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            msg = (
                f"Failed to create participant {participant.player_name} "
                f"({participant.phone_number}) for session {session.date}: {exc}"
            )
            log.warning(msg)
            result.reject(
                "participant",
                msg,
                player_name=participant.player_name,
                phone_number=participant.phone_number,
                session_date=session.date,
                amount=participant.amount_owed,
            )

    return session_id, result


def create_participant(
    conn: psycopg.Connection,
    organizer_id: str,
    session_id: str,
    participant: MigrationParticipant,
    config: MigrationConfig,
) -> str:
    player_id = _require_player(
        conn, organizer_id, participant.player_name, participant.phone_number, config
    )
    return insert_session_participant(
        conn,
        session_id,
        player_id,
        to_cents(participant.amount_owed),
        participant.notes,
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def create_payment(
    conn: psycopg.Connection,
    organizer_id: str,
    payment: MigrationPayment,
    config: MigrationConfig,
) -> str:
    """Write one payment verbatim.  Look-alike payments are not deduplicated."""
    player_id = _require_player(
        conn, organizer_id, payment.player_name, payment.phone_number, config
    )
    payment_id = insert_payment(
        conn,
        organizer_id,
        player_id,
        amount=to_cents(payment.amount),
        payment_method=payment.payment_method,
        payment_date=parse_iso_date(payment.payment_date),
        reference_number=payment.reference_number,
        notes=payment.notes,
    )
    log.info(
        "Created payment %s: %s %s via %s on %s",
        payment_id, payment.player_name, payment.amount,
        payment.payment_method, payment.payment_date,
    )
    return payment_id


def _require_player(
    conn: psycopg.Connection,
    organizer_id: str,
    name: str | None,
    phone: str | None,
    config: MigrationConfig,
) -> str:
    match = resolve_player(conn, organizer_id, name, phone, fuzzy=not config.strict_matching)
    if match is None:
        names = known_player_names(conn, organizer_id)
        raise PlayerNotFoundError(
            f"Player not found: {name} ({phone}). It should have been created in the "
            f"player phases; check data consistency. Known players: "
            f"{', '.join(names) or 'none'}"
        )
    return match.player_id
