"""badminton_etl.result

Run accounting: per-entity counters, per-phase partial results, the final
MigrationResult, the rejects CSV writer and the JSON run report.

Each phase builds and returns its own PhaseResult; only the orchestrator
merges them into the MigrationResult.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

REJECT_FIELDS = ("entity_type", "player_name", "phone_number", "session_date", "amount")


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class MigrationStats:
    sessions_created: int = 0
    standalone_players_created: int = 0
    standalone_players_updated: int = 0
    session_players_created: int = 0
    session_players_updated: int = 0
    payments_created: int = 0
    participant_records_created: int = 0

    def add(self, other: MigrationStats) -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    @property
    def players_created(self) -> int:
        return self.standalone_players_created + self.session_players_created

    @property
    def players_updated(self) -> int:
        return self.standalone_players_updated + self.session_players_updated

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Phase result
# ---------------------------------------------------------------------------

@dataclass
class PhaseResult:
    """What one phase (or one record inside a phase) produced."""

    stats: MigrationStats = field(default_factory=MigrationStats)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejects: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    def reject(self, entity_type: str, message: str, **context: Any) -> None:
        """Record a per-record failure as an error line plus a reject row."""
        self.errors.append(message)
        row = {k: context.get(k) for k in REJECT_FIELDS}
        row["entity_type"] = entity_type
        row["_reject_reason"] = message
        self.rejects.append(row)

    def merge(self, other: PhaseResult) -> None:
        self.stats.add(other.stats)
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.rejects.extend(other.rejects)
        self.cancelled = self.cancelled or other.cancelled


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------

@dataclass
class MigrationResult:
    success: bool = False
    message: str = ""
    stats: MigrationStats = field(default_factory=MigrationStats)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejects: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def validation_failed(cls, errors: list[str]) -> MigrationResult:
        return cls(success=False, message="Validation failed", errors=list(errors))

    def absorb(self, phase: PhaseResult) -> None:
        self.stats.add(phase.stats)
        self.errors.extend(phase.errors)
        self.warnings.extend(phase.warnings)
        self.rejects.extend(phase.rejects)
        self.cancelled = self.cancelled or phase.cancelled

    def summarize(self) -> None:
        """Set success + message from the accumulated counters."""
        s = self.stats
        counts = (
            f"{s.sessions_created} sessions, {s.players_created} new players, "
            f"updated {s.players_updated} players, and {s.payments_created} payments"
        )
        if self.cancelled:
            self.success = False
            self.message = f"Migration cancelled after creating {counts}."
            return
        self.success = True
        self.message = f"Migration completed successfully! Created {counts}."
        if self.errors:
            self.message += f" {len(self.errors)} record(s) failed; see errors."

    def to_dict(self, max_errors: int | None = None) -> dict[str, Any]:
        errors = self.errors if max_errors is None else self.errors[:max_errors]
        warnings = self.warnings if max_errors is None else self.warnings[:max_errors]
        return {
            "success": self.success,
            "message": self.message,
            "cancelled": self.cancelled,
            "stats": self.stats.to_dict(),
            "error_count": len(self.errors),
            "errors": errors,
            "warnings": warnings,
        }


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected records."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.rows_written = 0

    def write(self, row: dict[str, Any]) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(
                self._fh,
                fieldnames=list(REJECT_FIELDS) + ["_reject_reason"],
                extrasaction="ignore",
            )
            self._writer.writeheader()
        self._writer.writerow(row)
        self._fh.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    organizer_id: str,
    dry_run: bool,
    batch_path: str,
    result: MigrationResult,
    max_errors: int = 50,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "organizer_id": organizer_id,
        "dry_run": dry_run,
        "batch_path": batch_path,
        "result": result.to_dict(max_errors=max_errors),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
