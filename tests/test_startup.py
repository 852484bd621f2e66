"""
test_startup.py — Tests for idempotent startup migrations

Runs against a throwaway SQLite engine; the PostgreSQL CHECK constraints
are skipped on SQLite.

Called by: pytest
Depends on: pipelinehub/startup.py
"""

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from pipelinehub.startup import run_startup_migrations


def _engine():
    return create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})


def test_skipped_in_testing_mode_without_explicit_bind():
    # TESTING=1 and no bind: nothing happens, nothing raises
    run_startup_migrations()


def test_creates_tables_and_is_idempotent():
    eng = _engine()
    run_startup_migrations(bind=eng)
    run_startup_migrations(bind=eng)

    tables = set(inspect(eng).get_table_names())
    assert {"salesforce_opportunities", "salesforce_connections", "users", "tasks", "action_logs"} <= tables


def test_lowercases_legacy_emails():
    eng = _engine()
    run_startup_migrations(bind=eng)
    with eng.begin() as conn:
        conn.execute(text(
            "INSERT INTO salesforce_opportunities (id, sf_opportunity_id, owner_email, created_at, updated_at) "
            "VALUES ('1', 'OPP1', 'Sam@Acme.COM', '2026-01-01 00:00:00', '2026-01-01 00:00:00')"
        ))
        conn.execute(text("INSERT INTO users (id, email) VALUES (1, 'Ada@Acme.com')"))

    run_startup_migrations(bind=eng)

    with eng.connect() as conn:
        assert conn.execute(text("SELECT owner_email FROM salesforce_opportunities")).scalar() == "sam@acme.com"
        assert conn.execute(text("SELECT email FROM users")).scalar() == "ada@acme.com"
