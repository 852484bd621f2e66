"""Actions queued for Salesforce — tasks and action logs awaiting sync.

Salesforce (Apex) polls for unsynced rows and reports back which ones it
has applied; nothing here pushes to Salesforce directly.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, Index, String, Text

from ..database import UTCDateTime
from .base import Base

ACTION_TYPES = ("create_task", "add_note", "update_stage")


def _uuid() -> str:
    return str(uuid.uuid4())


class OpportunityTask(Base):
    __tablename__ = "tasks"
    id = Column(String(36), primary_key=True, default=_uuid)
    opportunity_id = Column(String(64), nullable=False)  # Salesforce opportunity id
    opportunity_name = Column(String(255))
    title = Column(String(255), nullable=False)
    description = Column(Text)
    due_date = Column(Date)
    priority = Column(String(20), default="normal")
    status = Column(String(20), default="open")
    assigned_to = Column(String(255))
    created_by = Column(String(255))
    completed_at = Column(UTCDateTime)

    synced_to_sf = Column(Boolean, default=False, nullable=False)
    synced_at = Column(UTCDateTime)
    sf_task_id = Column(String(64))

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_tasks_unsynced", "synced_to_sf", "created_at"),)


class ActionLog(Base):
    __tablename__ = "action_logs"
    id = Column(String(36), primary_key=True, default=_uuid)
    action_type = Column(String(30), nullable=False)  # create_task | add_note | update_stage
    opportunity_id = Column(String(64), nullable=False)
    payload = Column(JSON, default=dict)
    created_by = Column(String(255))

    synced_to_sf = Column(Boolean, default=False, nullable=False)
    synced_at = Column(UTCDateTime)
    sf_record_id = Column(String(64))

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_action_logs_unsynced", "synced_to_sf", "created_at"),
        Index("ix_action_logs_type", "action_type"),
    )
