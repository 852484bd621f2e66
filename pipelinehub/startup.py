"""
startup.py — Database Startup Migrations (Idempotent)

Tables and indexes are defined in the ORM models and created via
Base.metadata.create_all(checkfirst=True). This file only handles what the
ORM can't express: data backfills and PostgreSQL CHECK constraints.

Called by: main.py lifespan, scripts/manage_opportunities.py
Depends on: database.py (engine), models (Base)
"""

from loguru import logger
from sqlalchemy import text as sqltext

from .config import settings
from .database import engine


def run_startup_migrations(bind=None) -> None:
    """Execute all idempotent startup operations. Safe to call on every app boot."""
    if settings.testing and bind is None:
        logger.info("TESTING mode — skipping startup migrations")
        return

    bind = bind or engine
    from .models import Base

    Base.metadata.create_all(bind=bind, checkfirst=True)
    logger.info("ORM schema sync complete (create_all checkfirst=True)")

    with bind.connect() as conn:
        _backfill_owner_email_case(conn)
        _backfill_user_email_case(conn)
        if conn.dialect.name == "postgresql":
            _add_check_constraints(conn)

    logger.info("Startup migrations complete")


def _exec(conn, stmt: str) -> None:
    """Execute a single statement with rollback on failure."""
    try:
        conn.execute(sqltext(stmt))
        conn.commit()
    except Exception as e:
        logger.warning("DDL failed: {}", e)
        conn.rollback()


# ── Backfills ────────────────────────────────────────────────────────


def _backfill_owner_email_case(conn) -> None:
    """Rows written before emails were normalized would be invisible to owners."""
    _exec(conn, """
        UPDATE salesforce_opportunities SET owner_email = LOWER(owner_email)
        WHERE owner_email IS NOT NULL AND owner_email <> LOWER(owner_email)
    """)


def _backfill_user_email_case(conn) -> None:
    _exec(conn, """
        UPDATE users SET email = LOWER(email)
        WHERE email <> LOWER(email)
    """)


# ── CHECK constraints (PostgreSQL-specific) ──────────────────────────


def _add_check_constraints(conn) -> None:
    """Add CHECK constraints (NOT VALID) — only new inserts/updates are checked."""
    constraints = [
        ("salesforce_opportunities", "chk_opp_probability", "probability IS NULL OR (probability >= 0 AND probability <= 100)"),
        ("salesforce_opportunities", "chk_opp_owner_email_lower", "owner_email IS NULL OR owner_email = LOWER(owner_email)"),
        ("tasks", "chk_task_priority", "priority IN ('low','normal','high')"),
        ("action_logs", "chk_action_type", "action_type IN ('create_task','add_note','update_stage')"),
    ]
    for table, name, check in constraints:
        _exec(conn, f"""
            DO $$ BEGIN
                IF NOT EXISTS (
                    SELECT 1 FROM pg_constraint WHERE conname = '{name}'
                ) THEN
                    ALTER TABLE {table} ADD CONSTRAINT {name} CHECK ({check}) NOT VALID;
                END IF;
            END $$;
        """)
