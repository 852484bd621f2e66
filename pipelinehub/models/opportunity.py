"""Salesforce opportunity model — the canonical record written by the webhook."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, Index, Integer, Numeric, String, Text

from ..database import UTCDateTime
from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SalesforceOpportunity(Base):
    """One row per Salesforce opportunity, keyed by sf_opportunity_id.

    Account and owner fields are denormalized copies from the CRM payload.
    owner_email is always stored lower-cased; per-user reads compare it
    with plain equality.
    """

    __tablename__ = "salesforce_opportunities"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sf_opportunity_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(255))

    sf_account_id = Column(String(64))
    account_name = Column(String(255))
    account_industry = Column(String(255))
    account_billing_country = Column(String(100))
    account_rating = Column(String(50))

    amount = Column(Numeric(15, 2))
    stage_name = Column(String(100))
    probability = Column(Integer)
    close_date = Column(Date)

    sf_owner_id = Column(String(64))
    owner_name = Column(String(255))
    owner_email = Column(String(255))

    opportunity_type = Column(String(100))
    description = Column(Text)

    # Verbatim inbound payload; the columns above are a lossy projection of it
    raw_payload = Column(JSON)

    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_sf_opps_owner_email", "owner_email"),
        Index("ix_sf_opps_stage", "stage_name"),
        Index("ix_sf_opps_close_date", "close_date"),
    )
