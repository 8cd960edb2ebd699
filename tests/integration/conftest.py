"""Integration test fixtures.

Applies the SQL migrations against an ephemeral PostgreSQL database provided
by pytest-postgresql, and creates one organizer account to migrate into.
"""

from __future__ import annotations

from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_core_tables.sql",
    PROJECT_ROOT / "migrations" / "0002_credit_transfer_payments.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (connection, dsn) with the schema applied.

    Function scope: every test starts from an empty schema.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()


def _insert_user(conn: psycopg.Connection, phone: str, name: str, role: str) -> str:
    row = conn.execute(
        "INSERT INTO users (phone_number, name, role) VALUES (%s, %s, %s) RETURNING id",
        (phone, name, role),
    ).fetchone()
    conn.commit()
    return str(row[0])


@pytest.fixture
def organizer_id(db_conn) -> str:
    conn, _ = db_conn
    return _insert_user(conn, "+6590000001", "Coach Lim", "organizer")


@pytest.fixture
def other_organizer_id(db_conn) -> str:
    conn, _ = db_conn
    return _insert_user(conn, "+6590000002", "Coach Tan", "organizer")
