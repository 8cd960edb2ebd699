"""badminton_etl.config

YAML engine settings for migration runs.

Usage:
    from pathlib import Path
    from badminton_etl.config import load_config

    config = load_config(Path("config/migration.yml"))

Every key is optional; anything left out keeps the MigrationConfig default.
Unknown keys are rejected so a typo cannot silently fall back to a default.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from badminton_etl.normalize import PLACEHOLDER_SUFFIX_RANGE, is_number, to_decimal

VALID_SESSION_STATUSES = frozenset({"planned", "completed", "cancelled"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigValidationError(ValueError):
    """Raised when a YAML config file fails schema validation."""


# ---------------------------------------------------------------------------
# MigrationConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MigrationConfig:
    strict_matching: bool = False
    cost_tolerance: Decimal = Decimal("0.01")
    placeholder_suffix_length: int = 5
    placeholder_max_attempts: int = 20
    default_session_title: str = "Badminton Session - {date}"
    session_status: str = "completed"
    max_report_errors: int = 50
    yaml_hash: str | None = None

    def session_title(self, session_date: str) -> str:
        return self.default_session_title.format(date=session_date)

    def with_overrides(self, **overrides: Any) -> MigrationConfig:
        """Return a copy with the non-None overrides applied (CLI flags)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_KNOWN_KEYS = frozenset(f.name for f in fields(MigrationConfig)) - {"yaml_hash"}


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_config(yaml_path: Path) -> MigrationConfig:
    """Load, validate, and return a MigrationConfig from a YAML file.

    Raises:
        ConfigValidationError: If any key is unknown or has an invalid value.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        data = {}
    validate_config(data)
    kwargs: dict[str, Any] = dict(data)
    if "cost_tolerance" in kwargs:
        kwargs["cost_tolerance"] = to_decimal(kwargs["cost_tolerance"])
    return MigrationConfig(
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        **kwargs,
    )


def validate_config(data: Any) -> None:
    """Raise ConfigValidationError if data does not match the config schema."""
    if not isinstance(data, dict):
        raise ConfigValidationError("YAML root must be a mapping.")

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigValidationError(f"Unknown config keys: {sorted(unknown)}")

    if "strict_matching" in data and not isinstance(data["strict_matching"], bool):
        raise ConfigValidationError("'strict_matching' must be true or false.")

    if "cost_tolerance" in data:
        tol = data["cost_tolerance"]
        if not is_number(tol) or tol < 0:
            raise ConfigValidationError(
                f"'cost_tolerance' value {tol!r} must be a number >= 0."
            )

    lo, hi = PLACEHOLDER_SUFFIX_RANGE
    _check_int(data, "placeholder_suffix_length", lo, hi)
    _check_int(data, "placeholder_max_attempts", 1)
    _check_int(data, "max_report_errors", 1)

    if "default_session_title" in data:
        title = data["default_session_title"]
        if not isinstance(title, str) or "{date}" not in title:
            raise ConfigValidationError(
                "'default_session_title' must be a string containing '{date}'."
            )
        try:
            title.format(date="2025-01-01")
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigValidationError(
                f"'default_session_title' has an unusable placeholder: {exc}"
            ) from exc

    if "session_status" in data and data["session_status"] not in VALID_SESSION_STATUSES:
        raise ConfigValidationError(
            f"Invalid session_status {data['session_status']!r}. "
            f"Must be one of {sorted(VALID_SESSION_STATUSES)}."
        )


def _check_int(data: dict[str, Any], key: str, lo: int, hi: int | None = None) -> None:
    if key not in data:
        return
    val = data[key]
    if isinstance(val, bool) or not isinstance(val, int):
        raise ConfigValidationError(f"'{key}' value {val!r} is not an integer.")
    if val < lo or (hi is not None and val > hi):
        bound = f"in [{lo}, {hi}]" if hi is not None else f">= {lo}"
        raise ConfigValidationError(f"'{key}' value {val} must be {bound}.")
