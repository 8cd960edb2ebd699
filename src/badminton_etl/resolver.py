"""badminton_etl.resolver

Maps a loose (name, phone) pair from legacy data onto one persisted player of
an organizer.  Strategies run in order and the first hit wins:

  1. exact_name     case-sensitive name equality
  2. phone          exact phone equality (usable phones only)
  3. casefold_name  case-insensitive, whitespace-normalized name equality
  4. substring      case-insensitive containment in either direction

Strategies 3 and 4 scan every player of the organizer and only run when
fuzzy=True; substring=False stops after strategy 3.  Substring hits can be wrong ("Sam" inside "Samantha"), so they
are logged at WARNING under their own message for auditing.

Lookups go to the store on every call so that players written earlier in the
same run are always visible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import psycopg

from badminton_etl.normalize import name_key, usable_phone
from badminton_etl.store import (
    PlayerRow,
    find_player_by_phone,
    find_players_by_name,
    list_players,
)

log = logging.getLogger(__name__)

EXACT_NAME = "exact_name"
PHONE = "phone"
CASEFOLD_NAME = "casefold_name"
SUBSTRING = "substring"
FUZZY_STRATEGIES = frozenset({CASEFOLD_NAME, SUBSTRING})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AmbiguousMatchError(Exception):
    """Raised when an exact-name lookup returns several players and the phone
    does not single one out."""


class PlayerNotFoundError(LookupError):
    """Raised when a participant or payment identity matches no player."""


# ---------------------------------------------------------------------------
# Match result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlayerMatch:
    player_id: str
    name: str
    phone_number: str
    strategy: str

    @property
    def is_fuzzy(self) -> bool:
        return self.strategy in FUZZY_STRATEGIES


def _match(row: PlayerRow, strategy: str) -> PlayerMatch:
    return PlayerMatch(row.id, row.name, row.phone_number, strategy)


# ---------------------------------------------------------------------------
# Pure fallback scan
# ---------------------------------------------------------------------------

def match_casefold(name: str, players: Sequence[PlayerRow]) -> PlayerMatch | None:
    """Run strategy 3 over an in-memory player list."""
    key = name_key(name)
    if not key:
        return None
    for row in players:
        if name_key(row.name) == key:
            return _match(row, CASEFOLD_NAME)
    return None


def match_fallback(name: str, players: Sequence[PlayerRow]) -> PlayerMatch | None:
    """Run strategies 3 and 4 over an in-memory player list.

    The whole list is checked for a case-insensitive match before any
    substring test, so an exact-but-differently-cased name always beats a
    partial one.
    """
    found = match_casefold(name, players)
    if found is not None:
        return found
    key = name_key(name)
    if not key:
        return None
    for row in players:
        other = name_key(row.name)
        if other and (key in other or other in key):
            return _match(row, SUBSTRING)
    return None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def resolve_player(
    conn: psycopg.Connection,
    organizer_id: str,
    name: str | None,
    phone: str | None,
    *,
    fuzzy: bool = True,
    substring: bool = True,
) -> PlayerMatch | None:
    """Return the matching player, or None when no strategy hits.

    Raises:
        AmbiguousMatchError: several players share the exact name and the
            phone does not pick one of them.
    """
    phone_norm = usable_phone(phone)

    if name:
        rows = find_players_by_name(conn, organizer_id, name)
        if len(rows) == 1:
            log.debug("Resolved %r by exact name -> %s", name, rows[0].id)
            return _match(rows[0], EXACT_NAME)
        if len(rows) > 1:
            for row in rows:
                if phone_norm and row.phone_number == phone_norm:
                    log.debug("Resolved %r by exact name + phone -> %s", name, row.id)
                    return _match(row, EXACT_NAME)
            raise AmbiguousMatchError(
                f"ambiguous_player_match: name={name!r} phone={phone!r} "
                f"({len(rows)} players share this name)"
            )

    if phone_norm:
        row = find_player_by_phone(conn, organizer_id, phone_norm)
        if row:
            log.info("Resolved %r by phone %s -> %r (%s)", name, phone_norm, row.name, row.id)
            return _match(row, PHONE)

    if not fuzzy or not name:
        return None

    players = list_players(conn, organizer_id)
    found = match_fallback(name, players) if substring else match_casefold(name, players)
    if found is None:
        return None
    if found.strategy == SUBSTRING:
        log.warning(
            "SUBSTRING MATCH (audit): %r resolved to existing player %r (%s)",
            name, found.name, found.player_id,
        )
    else:
        log.info(
            "Case-insensitive match: %r resolved to existing player %r (%s)",
            name, found.name, found.player_id,
        )
    return found


def known_player_names(conn: psycopg.Connection, organizer_id: str) -> list[str]:
    """Every player name of the organizer, for unresolved-identity diagnostics."""
    return [row.name for row in list_players(conn, organizer_id)]
