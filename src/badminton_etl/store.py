"""badminton_etl.store

psycopg helpers for the organizer-owned store: players, sessions, session
participants and payments.  Every helper takes an open connection and leaves
transaction control (commits, savepoints) to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

import psycopg

# Computed by the store from the cost components; never written.
GENERATED_SESSION_COLUMNS = frozenset({"total_cost", "cost_per_player"})

_SESSION_COLUMNS = (
    "title",
    "session_date",
    "start_time",
    "end_time",
    "location",
    "court_cost",
    "shuttlecock_cost",
    "other_costs",
    "player_count",
    "status",
    "notes",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class GeneratedColumnError(ValueError):
    """Raised when a caller supplies a value for a store-generated column."""


class UnknownOrganizerError(LookupError):
    """Raised when the organizer id does not name an organizer account."""


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlayerRow:
    id: str
    name: str
    phone_number: str


def _player_rows(rows: list[tuple[Any, ...]]) -> list[PlayerRow]:
    return [PlayerRow(str(r[0]), r[1], r[2]) for r in rows]


# ---------------------------------------------------------------------------
# Organizer
# ---------------------------------------------------------------------------

def organizer_exists(conn: psycopg.Connection, organizer_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM users WHERE id = %s AND role = 'organizer'",
        (organizer_id,),
    ).fetchone()
    return row is not None


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

def find_players_by_name(
    conn: psycopg.Connection,
    organizer_id: str,
    name: str,
) -> list[PlayerRow]:
    rows = conn.execute(
        """
        SELECT id, name, phone_number FROM players
        WHERE organizer_id = %s AND name = %s
        ORDER BY created_at ASC, id ASC
        """,
        (organizer_id, name),
    ).fetchall()
    return _player_rows(rows)


def find_player_by_phone(
    conn: psycopg.Connection,
    organizer_id: str,
    phone_number: str,
) -> PlayerRow | None:
    row = conn.execute(
        """
        SELECT id, name, phone_number FROM players
        WHERE organizer_id = %s AND phone_number = %s
        """,
        (organizer_id, phone_number),
    ).fetchone()
    return PlayerRow(str(row[0]), row[1], row[2]) if row else None


def list_players(conn: psycopg.Connection, organizer_id: str) -> list[PlayerRow]:
    rows = conn.execute(
        """
        SELECT id, name, phone_number FROM players
        WHERE organizer_id = %s
        ORDER BY created_at ASC, id ASC
        """,
        (organizer_id,),
    ).fetchall()
    return _player_rows(rows)


def phone_in_use(conn: psycopg.Connection, organizer_id: str, phone_number: str) -> bool:
    return find_player_by_phone(conn, organizer_id, phone_number) is not None


def insert_player(
    conn: psycopg.Connection,
    organizer_id: str,
    name: str,
    phone_number: str,
    is_temporary: bool,
    is_active: bool,
    notes: str | None,
    joined_at: date | None,
) -> str:
    """Insert a player with no linked user account; joined_at becomes created_at."""
    row = conn.execute(
        """
        INSERT INTO players
          (organizer_id, user_id, name, phone_number, is_temporary,
           is_active, notes, created_at)
        VALUES (%s, NULL, %s, %s, %s, %s, %s, COALESCE(%s::timestamptz, now()))
        RETURNING id
        """,
        (organizer_id, name, phone_number, is_temporary, is_active, notes, joined_at),
    ).fetchone()
    return str(row[0])


def update_player(
    conn: psycopg.Connection,
    player_id: str,
    name: str,
    is_active: bool,
    notes: str | None,
) -> None:
    """Update mutable roster fields.  phone_number is identity and stays put."""
    conn.execute(
        """
        UPDATE players
        SET name = %s, is_active = %s, notes = %s, updated_at = now()
        WHERE id = %s
        """,
        (name, is_active, notes, player_id),
    )


def touch_player(conn: psycopg.Connection, player_id: str) -> None:
    conn.execute("UPDATE players SET updated_at = now() WHERE id = %s", (player_id,))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def insert_session(
    conn: psycopg.Connection,
    organizer_id: str,
    values: dict[str, Any],
) -> str:
    """Insert a session row from a column → value mapping.

    Raises:
        GeneratedColumnError: values names total_cost or cost_per_player.
        ValueError: values names a column this helper does not write.
    """
    generated = GENERATED_SESSION_COLUMNS & set(values)
    if generated:
        raise GeneratedColumnError(
            f"refusing to write generated session column(s): {sorted(generated)}"
        )
    unknown = set(values) - set(_SESSION_COLUMNS)
    if unknown:
        raise ValueError(f"unknown session column(s): {sorted(unknown)}")

    columns = ["organizer_id"] + [c for c in _SESSION_COLUMNS if c in values]
    params = [organizer_id] + [values[c] for c in columns[1:]]
    placeholders = ", ".join(["%s"] * len(columns))
    row = conn.execute(
        f"INSERT INTO sessions ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",
        params,
    ).fetchone()
    return str(row[0])


def insert_session_participant(
    conn: psycopg.Connection,
    session_id: str,
    player_id: str,
    amount_owed: Decimal,
    notes: str | None,
) -> str:
    row = conn.execute(
        """
        INSERT INTO session_participants (session_id, player_id, amount_owed, notes)
        VALUES (%s, %s, %s, %s)
        RETURNING id
        """,
        (session_id, player_id, amount_owed, notes),
    ).fetchone()
    return str(row[0])


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

def insert_payment(
    conn: psycopg.Connection,
    organizer_id: str,
    player_id: str,
    amount: Decimal,
    payment_method: str,
    payment_date: date,
    reference_number: str | None,
    notes: str | None,
) -> str:
    row = conn.execute(
        """
        INSERT INTO payments
          (organizer_id, player_id, amount, payment_method, payment_date,
           reference_number, notes)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (organizer_id, player_id, amount, payment_method, payment_date,
         reference_number, notes),
    ).fetchone()
    return str(row[0])
