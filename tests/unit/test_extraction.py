"""Unit tests for unique-player extraction and session cost helpers in badminton_etl.upsert."""

from __future__ import annotations

from decimal import Decimal

from badminton_etl.config import MigrationConfig
from badminton_etl.models import MigrationParticipant, MigrationPayment, MigrationSession
from badminton_etl.upsert import (
    PlayerRef,
    cost_mismatch,
    extract_unique_players,
    player_ref_key,
    session_costs,
)


def _participant(name: str, phone: str) -> MigrationParticipant:
    return MigrationParticipant(player_name=name, phone_number=phone, amount_owed=10)


def _payment(name: str, phone: str, amount=10, method="cash") -> MigrationPayment:
    return MigrationPayment(
        player_name=name,
        phone_number=phone,
        amount=amount,
        payment_date="2025-07-15",
        payment_method=method,
    )


def _session(participants, payments=(), **overrides) -> MigrationSession:
    values = dict(
        date="2025-07-15",
        location_name="Hougang Sports Hall",
        court_rate=45,
        shuttle_rate=3.5,
        total_hours=2,
        total_shuttles=4,
        total_cost=59,
        player_count=len(participants),
        cost_per_player=29.5,
        participants=list(participants),
        payments=list(payments),
    )
    values.update(overrides)
    return MigrationSession(**values)


# ---------------------------------------------------------------------------
# player_ref_key
# ---------------------------------------------------------------------------

class TestPlayerRefKey:
    def test_phone_wins_over_name(self):
        assert player_ref_key("Sarah", "+6591234567") == player_ref_key("S. Tan", "+6591234567")

    def test_placeholder_falls_back_to_name(self):
        assert player_ref_key("Guest", " ") == "name:guest"

    def test_name_key_is_case_insensitive(self):
        assert player_ref_key("GUEST", None) == player_ref_key("guest", " ")


# ---------------------------------------------------------------------------
# extract_unique_players
# ---------------------------------------------------------------------------

class TestExtractUniquePlayers:
    def test_dedups_across_sessions(self):
        s1 = _session([_participant("Sarah", "+6591234567"), _participant("Guest", " ")])
        s2 = _session([_participant("Sarah", "+6591234567"), _participant("guest", " ")])
        refs = extract_unique_players([s1, s2])
        assert refs == [PlayerRef("Sarah", "+6591234567"), PlayerRef("Guest", " ")]

    def test_first_occurrence_wins(self):
        s1 = _session([_participant("Sarah Tan", "+6591234567")])
        s2 = _session([_participant("Sarah", "+6591234567")])
        assert [r.name for r in extract_unique_players([s1, s2])] == ["Sarah Tan"]

    def test_includes_nested_payments(self):
        session = _session(
            [_participant("Sarah", "+6591234567")],
            payments=[_payment("Kumar", "+6598765432")],
        )
        names = [r.name for r in extract_unique_players([session])]
        assert names == ["Sarah", "Kumar"]

    def test_includes_flat_payments(self):
        session = _session([_participant("Sarah", "+6591234567")])
        flat = [_payment("Refund Only", "+6588887777", amount=-5, method="credit_transfer")]
        names = [r.name for r in extract_unique_players([session], flat)]
        assert names == ["Sarah", "Refund Only"]

    def test_flat_payments_without_sessions(self):
        refs = extract_unique_players([], [_payment("Kumar", "+6598765432")])
        assert refs == [PlayerRef("Kumar", "+6598765432")]

    def test_nameless_rows_skipped(self):
        session = _session([_participant(None, "+6591234567")])
        assert extract_unique_players([session]) == []


# ---------------------------------------------------------------------------
# Session costs
# ---------------------------------------------------------------------------

class TestSessionCosts:
    def test_court_rate_is_total_court_cost(self):
        court, shuttles, other = session_costs(_session([], total_hours=3))
        assert court == Decimal("45")
        assert shuttles == Decimal("14.0")
        assert other == Decimal("0")

    def test_no_float_drift(self):
        _, shuttles, _ = session_costs(_session([], shuttle_rate=0.1, total_shuttles=3))
        assert shuttles == Decimal("0.3")

    def test_matching_total_has_no_warning(self):
        assert cost_mismatch(_session([]), MigrationConfig()) is None

    def test_within_tolerance(self):
        assert cost_mismatch(_session([], total_cost=59.01), MigrationConfig()) is None

    def test_mismatch_beyond_tolerance(self):
        warning = cost_mismatch(_session([], total_cost=60), MigrationConfig())
        assert warning is not None
        assert "calculated 59.00 vs declared 60" in warning

    def test_custom_tolerance(self):
        config = MigrationConfig(cost_tolerance=Decimal("2"))
        assert cost_mismatch(_session([], total_cost=60), config) is None
