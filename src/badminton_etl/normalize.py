"""Normalization functions for legacy badminton-roster ingestion.

All functions accept loosely-typed legacy values and return the appropriate
type or None.
"""

from __future__ import annotations

import random
import re
import string
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

PLACEHOLDER_PHONE = " "

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")
_BASE36 = string.digits + string.ascii_lowercase
# A generated placeholder: one space, then 3-6 base-36 characters.
_PLACEHOLDER_RE = re.compile(r"^ [0-9a-z]{3,6}$")
PLACEHOLDER_SUFFIX_RANGE = (3, 6)


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: name_key  (case-insensitive identity key)
# ---------------------------------------------------------------------------

def name_key(value: str | None) -> str | None:
    """Casefold + whitespace-normalize a player name for loose comparison."""
    v = normalize_space(value)
    if v is None:
        return None
    return v.casefold()


# ---------------------------------------------------------------------------
# Rule 4: phones
# ---------------------------------------------------------------------------

def usable_phone(value: str | None) -> str | None:
    """Return the trimmed phone, or None for missing/blank/placeholder values.

    Legacy exports mark "no phone" with a single space, and previously
    migrated temporary players carry a space-prefixed random placeholder;
    neither identifies anybody.
    """
    if value is None or _PLACEHOLDER_RE.match(value):
        return None
    return trim(value)


def is_placeholder_phone(value: str | None) -> bool:
    return usable_phone(value) is None


def make_placeholder_phone(suffix_length: int = 5, rng: random.Random | None = None) -> str:
    """Single space + random base-36 suffix, e.g. ' k3f9a'.

    The leading space keeps the value recognisable as a placeholder while the
    suffix keeps it unique under the per-organizer phone constraint.
    """
    r = rng or random
    return PLACEHOLDER_PHONE + "".join(r.choice(_BASE36) for _ in range(suffix_length))


# ---------------------------------------------------------------------------
# Rule 5: dates and times
# ---------------------------------------------------------------------------

def parse_iso_date(value: Any) -> date | None:
    """Parse 'YYYY-MM-DD' strictly.  Anything else → None."""
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def is_iso_date(value: Any) -> bool:
    return parse_iso_date(value) is not None


def is_clock_time(value: Any) -> bool:
    """True for 'HH:MM' or 'HH:MM:SS' with in-range components."""
    if not isinstance(value, str) or not _TIME_RE.match(value):
        return False
    parts = [int(p) for p in value.split(":")]
    if parts[0] > 23 or parts[1] > 59:
        return False
    return len(parts) == 2 or parts[2] <= 59


# ---------------------------------------------------------------------------
# Rule 6: numbers
# ---------------------------------------------------------------------------

def is_number(value: Any) -> bool:
    """True for int/float/Decimal values.  bool is not a number here."""
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value == value and value not in (float("inf"), float("-inf"))
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, int)


def to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric legacy value to Decimal, going through str for floats."""
    if not is_number(value):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


# ---------------------------------------------------------------------------
# Rule 7: money
# ---------------------------------------------------------------------------

CENT = Decimal("0.01")
# NUMERIC(10,2): at most eight integer digits.
MONEY_LIMIT = Decimal("100000000")


def to_cents(value: Any) -> Decimal | None:
    """Round a numeric value to cents the way the NUMERIC(10,2) columns do.

    PostgreSQL rounds numeric ties away from zero, which is ROUND_HALF_UP
    for Decimal: 10.005 → 10.01, -0.005 → -0.01, 0.004 → 0.00.
    """
    d = to_decimal(value)
    if d is None:
        return None
    try:
        return d.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def fits_money_column(value: Decimal) -> bool:
    return abs(value) < MONEY_LIMIT
