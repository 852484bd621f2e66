"""
routers/opportunities.py — Opportunity dashboards, forecast and status

Read-only views over the webhook-fed opportunity table, plus queuing
tasks and notes that Salesforce later picks up.

Business Rules:
- admin sees everything; everyone else sees only opportunities they own
- per-user listing is open to admins and to the owner themselves
- an opportunity the caller cannot see answers 404, not 403

Called by: main.py (router include)
Depends on: services/opportunity_service.py, services/forecast_service.py,
            services/action_sync_service.py
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import is_admin, require_admin, require_user
from ..models import SalesforceOpportunity, User
from ..schemas.actions import ActionCreate
from ..schemas.opportunities import (
    OpportunityListResponse,
    TaskCreate,
    UserOpportunitiesResponse,
)
from ..services import action_sync_service, forecast_service, opportunity_service

router = APIRouter(tags=["opportunities"])


def _today():
    return datetime.now(timezone.utc).date()


@router.get("/api/opportunities", response_model=OpportunityListResponse)
async def list_opportunities(user: User = Depends(require_user), db: Session = Depends(get_db)):
    rows = opportunity_service.fetch_for_role(db, user.role, user.email)
    today = _today()
    return OpportunityListResponse(
        count=len(rows),
        opportunities=[opportunity_service.to_view(o, today) for o in rows],
    )


@router.get("/api/opportunities/user/{email}", response_model=UserOpportunitiesResponse)
async def list_user_opportunities(email: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    email = email.strip().lower()
    if not is_admin(user) and email != (user.email or "").lower():
        raise HTTPException(403, "You can only view your own opportunities")

    rows, total = opportunity_service.get_opportunities_for_email(db, email)
    today = _today()
    return UserOpportunitiesResponse(
        email=email,
        count=len(rows),
        totalPipeline=total,
        opportunities=[opportunity_service.to_view(o, today) for o in rows],
        message=f"Found {len(rows)} opportunities for {email}" if rows else f"No opportunities found for {email}",
    )


@router.get("/api/forecast")
async def get_forecast(user: User = Depends(require_user), db: Session = Depends(get_db)):
    rows = opportunity_service.fetch_for_role(db, user.role, user.email)
    return forecast_service.build_forecast(rows, _today())


@router.get("/api/salesforce/status")
async def salesforce_status(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return opportunity_service.connection_status(db)


@router.get("/api/status")
async def pipeline_status(user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return opportunity_service.status_summary(db)


# ── Work queued for Salesforce ───────────────────────────────────────


def _visible_opportunity(db: Session, user: User, sf_id: str) -> SalesforceOpportunity:
    opp = opportunity_service.get_by_sf_id(db, sf_id)
    if not opp or not opportunity_service.can_view(user.role, user.email, opp):
        raise HTTPException(404, "Opportunity not found")
    return opp


@router.post("/api/opportunities/{sf_id}/tasks", status_code=201)
async def create_task(
    sf_id: str,
    payload: TaskCreate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    opp = _visible_opportunity(db, user, sf_id)
    task = action_sync_service.queue_task(db, opp, payload, user)
    return {"success": True, "task": action_sync_service.task_to_action_dict(task)}


@router.post("/api/opportunities/{sf_id}/actions", status_code=201)
async def create_action(
    sf_id: str,
    body: ActionCreate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    opp = _visible_opportunity(db, user, sf_id)
    try:
        action = action_sync_service.queue_action(db, opp, body.action_type, body.payload(), user)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"success": True, "action": action_sync_service.action_to_dict(action)}
