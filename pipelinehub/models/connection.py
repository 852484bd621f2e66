"""Salesforce connection status — a single row tracked by a fixed key."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, String, Text

from ..database import UTCDateTime
from .base import Base

WEBHOOK_INSTANCE = "webhook-based"


class SalesforceConnection(Base):
    """Liveness flag for the Salesforce feed.

    Written opportunistically after each successful ingestion, so
    last_payload_at is the time of the last good delivery, not a heartbeat.
    """

    __tablename__ = "salesforce_connections"
    id = Column(String(50), primary_key=True, default="default")
    access_token = Column(Text, nullable=False, default=WEBHOOK_INSTANCE)
    instance_url = Column(String(500), nullable=False, default=WEBHOOK_INSTANCE)
    is_active = Column(Boolean, default=False, nullable=False)
    last_payload_at = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
