"""badminton_etl.validation

Pre-flight checks over a whole migration batch.  No I/O.

validate_batch() returns every violation it finds; a non-empty list means the
run must not write anything.  The payment sign rules mirror the store's
CHECK constraint so operators get a readable message instead of a constraint
name.
"""

from __future__ import annotations

from badminton_etl.models import (
    PAYMENT_METHODS,
    SKILL_LEVELS,
    MigrationData,
    MigrationParticipant,
    MigrationPayment,
    MigrationPlayer,
    MigrationSession,
)
from badminton_etl.normalize import (
    MONEY_LIMIT,
    PLACEHOLDER_PHONE,
    fits_money_column,
    is_clock_time,
    is_iso_date,
    is_number,
    to_cents,
    to_decimal,
    trim,
)

SESSION_NUMERIC_FIELDS = (
    "court_rate",
    "shuttle_rate",
    "total_hours",
    "total_shuttles",
    "total_cost",
    "player_count",
    "cost_per_player",
)

# Must be >= 0 when numeric; the store rejects negative cost components.
_NON_NEGATIVE_SESSION_FIELDS = ("court_rate", "shuttle_rate", "total_shuttles", "player_count")


def _missing(value: object) -> bool:
    return not isinstance(value, str) or value == ""


def validate_batch(data: MigrationData) -> list[str]:
    """Return every structural violation in the batch.

    Side effect: a player without a phone gets the single-space placeholder
    so that later phases always see a non-null value.
    """
    errors: list[str] = []

    if not data.players and not data.sessions:
        errors.append("No players or sessions provided for migration")

    for idx, player in enumerate(data.players):
        errors.extend(validate_player(player, f"Player {idx + 1}: "))

    for idx, session in enumerate(data.sessions):
        errors.extend(validate_session(session, f"Session {idx + 1}: "))

    for idx, payment in enumerate(data.payments):
        errors.extend(validate_payment(payment, f"Payment {idx + 1}: "))

    return errors


def validate_player(player: MigrationPlayer, prefix: str = "") -> list[str]:
    errors: list[str] = []
    if not player.name:
        errors.append(f"{prefix}Missing name")

    if not isinstance(player.phone_number, str) or trim(player.phone_number) is None:
        if player.is_temporary is not True:
            errors.append(
                f"{prefix}Missing phone_number - phone numbers are required for regular "
                "players (set is_temporary: true for drop-in players)"
            )
        player.phone_number = PLACEHOLDER_PHONE

    if player.joined_at is not None and not is_iso_date(player.joined_at):
        errors.append(f"{prefix}Invalid joined_at format (use YYYY-MM-DD)")

    if player.skill_level is not None and player.skill_level not in SKILL_LEVELS:
        errors.append(
            f"{prefix}Invalid skill_level (must be: {', '.join(SKILL_LEVELS)})"
        )
    errors.extend(check_flag(player.is_active, "is_active", prefix))
    errors.extend(check_flag(player.is_temporary, "is_temporary", prefix))
    return errors


def validate_session(session: MigrationSession, prefix: str = "") -> list[str]:
    errors: list[str] = []
    if _missing(session.date):
        errors.append(f"{prefix}Missing date")
    elif not is_iso_date(session.date):
        errors.append(f"{prefix}Invalid date format (use YYYY-MM-DD)")
    if not session.location_name:
        errors.append(f"{prefix}Missing location_name")
    errors.extend(check_flag(session.is_recurring, "is_recurring", prefix))

    for fname in SESSION_NUMERIC_FIELDS:
        value = getattr(session, fname)
        if not is_number(value):
            errors.append(f"{prefix}Invalid {fname}")
        elif fname == "court_rate":
            errors.extend(check_money(value, fname, prefix))
        elif fname in _NON_NEGATIVE_SESSION_FIELDS and value < 0:
            errors.append(f"{prefix}{fname} cannot be negative ({value})")
    errors.extend(_check_stored_costs(session, prefix))

    for fname in ("start_time", "end_time"):
        value = getattr(session, fname)
        if value is not None and not is_clock_time(value):
            errors.append(f"{prefix}Invalid {fname} format (use HH:MM or HH:MM:SS)")

    if not session.participants:
        errors.append(f"{prefix}No participants provided")
    for p_idx, participant in enumerate(session.participants):
        errors.extend(
            validate_participant(participant, f"{prefix}Participant {p_idx + 1}: ")
        )

    for p_idx, payment in enumerate(session.payments):
        errors.extend(validate_payment(payment, f"{prefix}Payment {p_idx + 1}: "))
    return errors


def validate_participant(participant: MigrationParticipant, prefix: str = "") -> list[str]:
    errors: list[str] = []
    if not participant.player_name:
        errors.append(f"{prefix}Missing player_name")
    # " " is the legacy "no phone" marker and counts as present.
    if _missing(participant.phone_number):
        errors.append(f"{prefix}Missing phone_number")
    if not is_number(participant.amount_owed):
        errors.append(f"{prefix}Invalid amount_owed")
    else:
        errors.extend(check_money(participant.amount_owed, "amount_owed", prefix))
    errors.extend(check_flag(participant.is_active, "is_active", prefix))
    return errors


def validate_payment(payment: MigrationPayment, prefix: str = "") -> list[str]:
    errors: list[str] = []
    if not payment.player_name:
        errors.append(f"{prefix}Missing player_name")
    if _missing(payment.phone_number):
        errors.append(f"{prefix}Missing phone_number")

    if _missing(payment.payment_date):
        errors.append(f"{prefix}Missing payment_date")
    elif not is_iso_date(payment.payment_date):
        errors.append(f"{prefix}Invalid payment_date format (use YYYY-MM-DD)")

    method_ok = payment.payment_method in PAYMENT_METHODS
    if not method_ok:
        errors.append(f"{prefix}Invalid payment_method ({payment.payment_method!r})")

    if not is_number(payment.amount):
        errors.append(f"{prefix}Invalid amount")
    elif method_ok:
        errors.extend(check_payment_sign(payment, prefix))
    return errors


def check_payment_sign(payment: MigrationPayment, prefix: str = "") -> list[str]:
    """Zero is never valid; credit transfers are negative, everything else positive.

    The amount is judged as the store will hold it, rounded to cents, so
    0.004 counts as zero.
    """
    amount = to_cents(payment.amount)
    if amount is None or not fits_money_column(amount):
        return [_out_of_range("amount", payment.amount, prefix)]
    method = payment.payment_method
    if amount == to_decimal(payment.amount):
        detail = f"(amount: {payment.amount}, method: {method})"
    else:
        detail = f"(amount: {payment.amount}, stored as {amount}, method: {method})"
    if amount == 0:
        return [f"{prefix}Payment amount cannot be zero {detail}"]
    if method == "credit_transfer" and amount > 0:
        return [f"{prefix}Credit transfer should have negative amount {detail}"]
    if method != "credit_transfer" and amount < 0:
        return [f"{prefix}Negative amounts require credit_transfer method {detail}"]
    return []


# ---------------------------------------------------------------------------
# Money columns (NUMERIC(10,2))
# ---------------------------------------------------------------------------

def _out_of_range(fname: str, value: object, prefix: str) -> str:
    return f"{prefix}{fname} {value} is out of range (must be below {MONEY_LIMIT})"


def check_money(value: object, fname: str, prefix: str = "") -> list[str]:
    """A non-negative amount that fits its column once rounded to cents."""
    cents = to_cents(value)
    if cents is None or not fits_money_column(cents):
        return [_out_of_range(fname, value, prefix)]
    if cents < 0:
        return [f"{prefix}{fname} cannot be negative ({value})"]
    return []


def _check_stored_costs(session: MigrationSession, prefix: str) -> list[str]:
    parts = (session.court_rate, session.shuttle_rate, session.total_shuttles)
    if not all(is_number(v) and v >= 0 for v in parts):
        return []
    court = to_cents(session.court_rate)
    if court is None or not fits_money_column(court):
        return []
    shuttles = to_cents(to_decimal(session.shuttle_rate) * to_decimal(session.total_shuttles))
    if shuttles is None or not fits_money_column(shuttles):
        return [_out_of_range("shuttlecock cost (shuttle_rate x total_shuttles)", shuttles, prefix)]
    if not fits_money_column(court + shuttles):
        return [_out_of_range("total cost (court_rate + shuttlecock cost)", court + shuttles, prefix)]
    return []


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------

def check_flag(value: object, fname: str, prefix: str = "") -> list[str]:
    if not isinstance(value, bool):
        return [f"{prefix}Invalid {fname} ({value!r}, must be true or false)"]
    return []
