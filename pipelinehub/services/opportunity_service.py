"""Opportunity read views — role-filtered lists, dashboard projection, status.

Business Rules:
- admin sees every opportunity; any other role sees only rows whose
  owner_email equals their own (lower-cased) email
- a non-admin without an email sees nothing
- lists are ordered by close date, undated deals last
- risk: low when probability >= 70 and > 7 days to close;
        high when probability < 30 or < 3 days to close; otherwise medium

Called by: routers/opportunities.py, services/agent_service.py,
           scripts/manage_opportunities.py
Depends on: models (SalesforceOpportunity, SalesforceConnection)
"""

from datetime import date, datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Session

from ..config import settings
from ..models import SalesforceConnection, SalesforceOpportunity
from ..schemas.opportunities import OpportunityView

PRIVILEGED_ROLES = ("admin",)


def _ordered(query):
    return query.order_by(
        SalesforceOpportunity.close_date.is_(None),
        SalesforceOpportunity.close_date.asc(),
        SalesforceOpportunity.sf_opportunity_id.asc(),
    )


def fetch_for_role(db: Session, role: str, owner_email: str | None) -> list[SalesforceOpportunity]:
    """Opportunities visible to a caller with this role and email."""
    q = db.query(SalesforceOpportunity)
    if role not in PRIVILEGED_ROLES:
        if not owner_email:
            return []
        q = q.filter(SalesforceOpportunity.owner_email == owner_email.strip().lower())
    return _ordered(q).all()


def get_opportunities_for_email(db: Session, email: str) -> tuple[list[SalesforceOpportunity], float]:
    """One owner's opportunities plus their total pipeline amount."""
    rows = fetch_for_role(db, "user", email)
    total = sum(float(o.amount or 0) for o in rows)
    return rows, total


def get_by_sf_id(db: Session, sf_opportunity_id: str) -> SalesforceOpportunity | None:
    return db.query(SalesforceOpportunity).filter_by(sf_opportunity_id=sf_opportunity_id).first()


def can_view(role: str, email: str | None, opp: SalesforceOpportunity) -> bool:
    if role in PRIVILEGED_ROLES:
        return True
    return bool(email) and opp.owner_email == email.strip().lower()


# ── Derived fields ───────────────────────────────────────────────────


def risk_level(probability: int | None, days_until_close: int | None) -> str:
    pct = probability or 0
    if days_until_close is None:
        return "high" if pct < settings.risk_high_probability else "medium"
    if pct >= settings.risk_low_probability and days_until_close > 7:
        return "low"
    if pct < settings.risk_high_probability or days_until_close < 3:
        return "high"
    return "medium"


def days_in_stage(updated_at: datetime | None, now: datetime | None = None) -> int:
    """Whole days since the last write (a stand-in for time in stage)."""
    if updated_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return max(0, (now - updated_at).days)


def to_view(opp: SalesforceOpportunity, today: date | None = None, now: datetime | None = None) -> OpportunityView:
    today = today or datetime.now(timezone.utc).date()
    days_until_close = (opp.close_date - today).days if opp.close_date else None
    return OpportunityView(
        id=opp.sf_opportunity_id,
        name=opp.name or opp.sf_opportunity_id,
        accountName=opp.account_name or "Unknown Account",
        amount=float(opp.amount or 0),
        stage=opp.stage_name or "Unknown",
        probability=opp.probability or 0,
        closeDate=opp.close_date.isoformat() if opp.close_date else "",
        owner=opp.owner_name or "Unknown",
        ownerEmail=opp.owner_email,
        type=opp.opportunity_type,
        daysInStage=days_in_stage(opp.updated_at, now),
        riskLevel=risk_level(opp.probability, days_until_close),
    )


# ── Status ───────────────────────────────────────────────────────────


def connection_status(db: Session, key: str | None = None) -> dict:
    """Answer "are we receiving data" from the liveness row alone."""
    conn = db.get(SalesforceConnection, key or settings.connection_status_key)
    if not conn or not conn.is_active:
        return {"connected": False}
    last = conn.last_payload_at or conn.updated_at
    return {
        "connected": True,
        "instanceUrl": conn.instance_url,
        "lastUpdated": last.isoformat() if last else None,
    }


def status_summary(db: Session) -> dict:
    total = db.query(sa.func.count(SalesforceOpportunity.id)).scalar() or 0
    owners = [
        email
        for (email,) in db.query(SalesforceOpportunity.owner_email)
        .filter(SalesforceOpportunity.owner_email.isnot(None))
        .distinct()
        .order_by(SalesforceOpportunity.owner_email)
    ]
    return {
        "totalOpportunities": total,
        "uniqueOwners": owners,
        "connection": connection_status(db),
    }
