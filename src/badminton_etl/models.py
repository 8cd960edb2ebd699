"""badminton_etl.models

Input records for one migration batch, keyed the way legacy exports key them.

Values are carried as supplied (a number may still be a string, a date may be
malformed) so that validation can report every problem at once; only names
are whitespace-normalized on load.  Phones are kept verbatim because the
single-space "no phone" marker is meaningful.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from badminton_etl.normalize import normalize_space

PAYMENT_METHODS = ("paynow", "cash", "bank_transfer", "other", "credit_transfer")
SKILL_LEVELS = ("beginner", "intermediate", "advanced", "expert")


class BatchFormatError(ValueError):
    """Raised when a batch document does not have the expected structure."""


def _name(value: Any) -> Any:
    return normalize_space(value) if isinstance(value, str) else value


def _iso(value: Any) -> Any:
    # YAML loads an unquoted 2025-07-15 as a date object.
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return value


def _phone(value: Any) -> Any:
    # An unquoted YAML phone arrives as int; quote phones that need a '+'.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _flag(value: Any, default: bool) -> Any:
    # Only a missing value takes the default; "false" or 0 stay as given.
    return default if value is None else value


def _require_mapping(raw: Any, what: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise BatchFormatError(f"{what} must be a mapping, got {type(raw).__name__}")
    return raw


def _require_list(raw: Any, what: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BatchFormatError(f"{what} must be a list, got {type(raw).__name__}")
    return raw


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class MigrationPlayer:
    name: str | None
    phone_number: str | None = None
    is_active: Any = True
    is_temporary: Any = False
    joined_at: str | None = None
    notes: str | None = None
    skill_level: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> MigrationPlayer:
        d = _require_mapping(raw, "player")
        return cls(
            name=_name(d.get("name")),
            phone_number=_phone(d.get("phone_number")),
            is_active=_flag(d.get("is_active"), True),
            is_temporary=_flag(d.get("is_temporary"), False),
            joined_at=_iso(d.get("joined_at")),
            notes=d.get("notes"),
            skill_level=d.get("skill_level"),
        )


@dataclass
class MigrationParticipant:
    player_name: str | None
    phone_number: str | None
    amount_owed: Any
    is_active: Any = True
    notes: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> MigrationParticipant:
        d = _require_mapping(raw, "participant")
        return cls(
            player_name=_name(d.get("player_name")),
            phone_number=_phone(d.get("phone_number")),
            amount_owed=d.get("amount_owed"),
            is_active=_flag(d.get("is_active"), True),
            notes=d.get("notes"),
        )


@dataclass
class MigrationPayment:
    player_name: str | None
    phone_number: str | None
    amount: Any
    payment_date: str | None
    payment_method: str | None
    reference_number: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> MigrationPayment:
        d = _require_mapping(raw, "payment")
        return cls(
            player_name=_name(d.get("player_name")),
            phone_number=_phone(d.get("phone_number")),
            amount=d.get("amount"),
            payment_date=_iso(d.get("payment_date")),
            payment_method=d.get("payment_method"),
            reference_number=d.get("reference_number"),
            notes=d.get("notes"),
        )


@dataclass
class MigrationSession:
    date: str | None
    location_name: str | None
    court_rate: Any  # total court cost for the session, not hourly
    shuttle_rate: Any
    total_hours: Any
    total_shuttles: Any
    total_cost: Any
    player_count: Any
    cost_per_player: Any
    session_name: str | None = None
    notes: str | None = None
    is_recurring: Any = False
    start_time: str | None = None
    end_time: str | None = None
    participants: list[MigrationParticipant] = field(default_factory=list)
    payments: list[MigrationPayment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> MigrationSession:
        d = _require_mapping(raw, "session")
        return cls(
            date=_iso(d.get("date")),
            location_name=_name(d.get("location_name")),
            court_rate=d.get("court_rate"),
            shuttle_rate=d.get("shuttle_rate"),
            total_hours=d.get("total_hours"),
            total_shuttles=d.get("total_shuttles"),
            total_cost=d.get("total_cost"),
            player_count=d.get("player_count"),
            cost_per_player=d.get("cost_per_player"),
            session_name=_name(d.get("session_name")),
            notes=d.get("notes"),
            is_recurring=_flag(d.get("is_recurring"), False),
            start_time=d.get("start_time"),
            end_time=d.get("end_time"),
            participants=[
                MigrationParticipant.from_dict(p)
                for p in _require_list(d.get("participants"), "session.participants")
            ],
            payments=[
                MigrationPayment.from_dict(p)
                for p in _require_list(d.get("payments"), "session.payments")
            ],
        )


@dataclass
class MigrationData:
    players: list[MigrationPlayer] = field(default_factory=list)
    sessions: list[MigrationSession] = field(default_factory=list)
    payments: list[MigrationPayment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> MigrationData:
        d = _require_mapping(raw, "migration batch")
        return cls(
            players=[MigrationPlayer.from_dict(p) for p in _require_list(d.get("players"), "players")],
            sessions=[MigrationSession.from_dict(s) for s in _require_list(d.get("sessions"), "sessions")],
            payments=[MigrationPayment.from_dict(p) for p in _require_list(d.get("payments"), "payments")],
        )

    def all_payments(self) -> list[MigrationPayment]:
        """Flat batch-level payments first, then nested payments in session order."""
        out = list(self.payments)
        for session in self.sessions:
            out.extend(session.payments)
        return out


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_batch(path: Path) -> MigrationData:
    """Load a batch from a .json, .yml or .yaml file.

    Raises:
        BatchFormatError: unparseable document or unexpected structure.
        FileNotFoundError: if the file does not exist.
    """
    raw = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise BatchFormatError(f"could not parse {path.name}: {exc}") from exc
    return MigrationData.from_dict(data)
