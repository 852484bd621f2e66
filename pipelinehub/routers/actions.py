"""
routers/actions.py — Salesforce action sync (polled by Apex)

Salesforce pulls pending tasks/notes/stage changes with GET and
acknowledges what it applied with POST. Both calls carry the same
optional shared secret as the webhook.

Called by: main.py (router include)
Depends on: services/action_sync_service.py
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_webhook_secret
from ..schemas.actions import SyncAck
from ..services import action_sync_service

router = APIRouter(tags=["salesforce-actions"], dependencies=[Depends(require_webhook_secret)])


@router.get("/api/salesforce/actions")
async def pending_actions(
    type: str | None = Query(None, description="Filter action logs by action_type"),
    limit: int = Query(50, ge=1, le=action_sync_service.MAX_PENDING),
    db: Session = Depends(get_db),
):
    try:
        pending = action_sync_service.list_pending(db, action_type=type, limit=limit)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pendingActions": pending,
    }


@router.post("/api/salesforce/actions")
async def acknowledge_actions(body: SyncAck, db: Session = Depends(get_db)):
    results = action_sync_service.mark_synced(db, body.syncedActions, body.syncedTasks)
    return {
        "success": True,
        "message": "Sync status updated",
        "results": results,
    }
