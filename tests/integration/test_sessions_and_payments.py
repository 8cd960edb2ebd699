"""Integration tests for session, participant and payment creation."""

from __future__ import annotations

import logging
from datetime import date, time
from decimal import Decimal

import pytest

from badminton_etl.config import MigrationConfig
from badminton_etl.models import MigrationParticipant, MigrationPayment, MigrationSession
from badminton_etl.resolver import PlayerNotFoundError
from badminton_etl.store import GeneratedColumnError, insert_player, insert_session
from badminton_etl.upsert import create_payment, create_session

CONFIG = MigrationConfig()


def _add(conn, organizer_id, name, phone, temporary=False) -> str:
    return insert_player(conn, organizer_id, name, phone, temporary, True, None, None)


def _participant(name, phone, owed=29.5) -> MigrationParticipant:
    return MigrationParticipant(player_name=name, phone_number=phone, amount_owed=owed)


def _session(participants, **overrides) -> MigrationSession:
    values = dict(
        date="2025-07-15",
        location_name="Hougang Sports Hall",
        court_rate=45,
        shuttle_rate=3.5,
        total_hours=2,
        total_shuttles=4,
        total_cost=59,
        player_count=2,
        cost_per_player=29.5,
        participants=list(participants),
    )
    values.update(overrides)
    return MigrationSession(**values)


def _payment(name, phone, amount=29.5, method="paynow") -> MigrationPayment:
    return MigrationPayment(
        player_name=name,
        phone_number=phone,
        amount=amount,
        payment_date="2025-07-15",
        payment_method=method,
        reference_number="PN-0001",
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestCreateSession:
    def test_costs_and_generated_columns(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        _add(conn, organizer_id, "Guest", " ab12c", temporary=True)
        session_id, result = create_session(
            conn, organizer_id,
            _session([_participant("Sarah", "+6591234567"), _participant("Guest", " ")]),
            CONFIG,
        )
        row = conn.execute(
            """
            SELECT court_cost, shuttlecock_cost, other_costs, total_cost,
                   cost_per_player, title, status, session_date, player_count
            FROM sessions WHERE id = %s
            """,
            (session_id,),
        ).fetchone()
        assert row[0] == Decimal("45.00")
        assert row[1] == Decimal("14.00")
        assert row[2] == Decimal("0.00")
        assert row[3] == Decimal("59.00")
        assert row[4] == Decimal("29.50")
        assert row[5] == "Badminton Session - 2025-07-15"
        assert row[6] == "completed"
        assert row[7] == date(2025, 7, 15)
        assert row[8] == 2
        assert result.stats.sessions_created == 1
        assert result.stats.participant_records_created == 2
        assert result.errors == []

    def test_named_session_with_times(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        session_id, _ = create_session(
            conn, organizer_id,
            _session(
                [_participant("Sarah", "+6591234567")],
                session_name="Tuesday Doubles", start_time="18:30", end_time="20:30", notes="court 3",
            ),
            CONFIG,
        )
        title, start, end, notes = conn.execute(
            "SELECT title, start_time, end_time, notes FROM sessions WHERE id = %s", (session_id,)
        ).fetchone()
        assert title == "Tuesday Doubles"
        assert start == time(18, 30)
        assert end == time(20, 30)
        assert notes == "court 3"

    def test_unresolvable_participant_is_isolated(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        _add(conn, organizer_id, "Kumar", "+6598765432")
        session_id, result = create_session(
            conn, organizer_id,
            _session([
                _participant("Sarah", "+6591234567"),
                _participant("Ghost", "+6500000000"),
                _participant("Kumar", "+6598765432"),
            ], player_count=3),
            CONFIG,
        )
        linked = conn.execute(
            "SELECT count(*) FROM session_participants WHERE session_id = %s", (session_id,)
        ).fetchone()[0]
        assert linked == 2
        assert result.stats.participant_records_created == 2
        assert len(result.errors) == 1
        assert "Ghost" in result.errors[0]
        assert "Known players: " in result.errors[0]
        assert result.rejects[0]["entity_type"] == "participant"
        assert result.rejects[0]["session_date"] == "2025-07-15"

    def test_duplicate_link_is_a_warning(self, db_conn, organizer_id, caplog):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        with caplog.at_level(logging.WARNING, logger="badminton_etl.upsert"):
            _, result = create_session(
                conn, organizer_id,
                _session([_participant("Sarah", "+6591234567"), _participant("sarah", " ")]),
                CONFIG,
            )
        assert result.stats.participant_records_created == 1
        assert result.errors == []
        assert any("skipped duplicate" in w for w in result.warnings)

    def test_fuzzy_participant_match(self, db_conn, organizer_id):
        conn, _ = db_conn
        pid = _add(conn, organizer_id, "Kumar Raj", "+6598765432")
        session_id, result = create_session(
            conn, organizer_id, _session([_participant("kumar raj", " ")], player_count=1), CONFIG
        )
        linked = conn.execute(
            "SELECT player_id FROM session_participants WHERE session_id = %s", (session_id,)
        ).fetchone()
        assert str(linked[0]) == pid
        assert result.errors == []

    def test_strict_mode_rejects_fuzzy_participant(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Kumar Raj", "+6598765432")
        _, result = create_session(
            conn, organizer_id,
            _session([_participant("kumar raj", " ")], player_count=1),
            MigrationConfig(strict_matching=True),
        )
        assert result.stats.participant_records_created == 0
        assert len(result.errors) == 1

    def test_cost_mismatch_warns(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        session_id, result = create_session(
            conn, organizer_id,
            _session([_participant("Sarah", "+6591234567")], total_cost=70),
            CONFIG,
        )
        assert result.errors == []
        assert any("cost mismatch" in w for w in result.warnings)
        total = conn.execute("SELECT total_cost FROM sessions WHERE id = %s", (session_id,)).fetchone()[0]
        assert total == Decimal("59.00")


class TestInsertSessionGuards:
    def test_generated_column_refused(self, db_conn, organizer_id):
        conn, _ = db_conn
        with pytest.raises(GeneratedColumnError, match="total_cost"):
            insert_session(conn, organizer_id, {
                "session_date": date(2025, 7, 15), "court_cost": 45, "player_count": 2,
                "total_cost": 59,
            })

    def test_unknown_column_refused(self, db_conn, organizer_id):
        conn, _ = db_conn
        with pytest.raises(ValueError, match="unknown session column"):
            insert_session(conn, organizer_id, {
                "session_date": date(2025, 7, 15), "court_cost": 45, "player_count": 2,
                "is_recurring": False,
            })


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class TestCreatePayment:
    def test_verbatim_insert(self, db_conn, organizer_id):
        conn, _ = db_conn
        pid = _add(conn, organizer_id, "Sarah", "+6591234567")
        payment_id = create_payment(conn, organizer_id, _payment("Sarah", "+6591234567"), CONFIG)
        row = conn.execute(
            """
            SELECT player_id, amount, payment_method, payment_date, reference_number
            FROM payments WHERE id = %s
            """,
            (payment_id,),
        ).fetchone()
        assert str(row[0]) == pid
        assert row[1] == Decimal("29.50")
        assert row[2] == "paynow"
        assert row[3] == date(2025, 7, 15)
        assert row[4] == "PN-0001"

    def test_credit_transfer_negative_amount(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        payment_id = create_payment(
            conn, organizer_id, _payment("Sarah", "+6591234567", -10, "credit_transfer"), CONFIG
        )
        amount = conn.execute("SELECT amount FROM payments WHERE id = %s", (payment_id,)).fetchone()[0]
        assert amount == Decimal("-10.00")

    def test_no_deduplication(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        create_payment(conn, organizer_id, _payment("Sarah", "+6591234567"), CONFIG)
        create_payment(conn, organizer_id, _payment("Sarah", "+6591234567"), CONFIG)
        count = conn.execute("SELECT count(*) FROM payments").fetchone()[0]
        assert count == 2

    def test_unknown_player_lists_known_names(self, db_conn, organizer_id):
        conn, _ = db_conn
        _add(conn, organizer_id, "Sarah", "+6591234567")
        with pytest.raises(PlayerNotFoundError, match="Known players: Sarah"):
            create_payment(conn, organizer_id, _payment("Zhang Wei", "+6500000000"), CONFIG)
