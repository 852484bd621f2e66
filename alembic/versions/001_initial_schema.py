"""initial schema - opportunities, connection status, users, action queue

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Databases already created by startup.run_startup_migrations():
run `alembic stamp 001_initial` instead of upgrading.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("role", sa.String(20)),
        sa.Column("is_active", sa.Boolean()),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "salesforce_opportunities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sf_opportunity_id", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("sf_account_id", sa.String(64)),
        sa.Column("account_name", sa.String(255)),
        sa.Column("account_industry", sa.String(255)),
        sa.Column("account_billing_country", sa.String(100)),
        sa.Column("account_rating", sa.String(50)),
        sa.Column("amount", sa.Numeric(15, 2)),
        sa.Column("stage_name", sa.String(100)),
        sa.Column("probability", sa.Integer()),
        sa.Column("close_date", sa.Date()),
        sa.Column("sf_owner_id", sa.String(64)),
        sa.Column("owner_name", sa.String(255)),
        sa.Column("owner_email", sa.String(255)),
        sa.Column("opportunity_type", sa.String(100)),
        sa.Column("description", sa.Text()),
        sa.Column("raw_payload", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sf_opps_owner_email", "salesforce_opportunities", ["owner_email"])
    op.create_index("ix_sf_opps_stage", "salesforce_opportunities", ["stage_name"])
    op.create_index("ix_sf_opps_close_date", "salesforce_opportunities", ["close_date"])

    op.create_table(
        "salesforce_connections",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("instance_url", sa.String(500), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_payload_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("opportunity_id", sa.String(64), nullable=False),
        sa.Column("opportunity_name", sa.String(255)),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("due_date", sa.Date()),
        sa.Column("priority", sa.String(20)),
        sa.Column("status", sa.String(20)),
        sa.Column("assigned_to", sa.String(255)),
        sa.Column("created_by", sa.String(255)),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("synced_to_sf", sa.Boolean(), nullable=False),
        sa.Column("synced_at", sa.DateTime()),
        sa.Column("sf_task_id", sa.String(64)),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_tasks_unsynced", "tasks", ["synced_to_sf", "created_at"])

    op.create_table(
        "action_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("opportunity_id", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON()),
        sa.Column("created_by", sa.String(255)),
        sa.Column("synced_to_sf", sa.Boolean(), nullable=False),
        sa.Column("synced_at", sa.DateTime()),
        sa.Column("sf_record_id", sa.String(64)),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_action_logs_unsynced", "action_logs", ["synced_to_sf", "created_at"])
    op.create_index("ix_action_logs_type", "action_logs", ["action_type"])


def downgrade() -> None:
    """Drop everything. Destructive: dev/test only."""
    for table in ("action_logs", "tasks", "salesforce_connections", "salesforce_opportunities", "users"):
        op.drop_table(table)
