"""Action sync — queue work for Salesforce and record what it has applied.

Salesforce Apex polls for pending rows (GET) and then posts back the ids it
processed (POST). Rows are never pushed from here.

Usage:
    pending = list_pending(db, action_type="update_stage", limit=50)
    results = mark_synced(db, synced_actions=[{"id": ..., "sf_record_id": ...}],
                          synced_tasks=[{"id": ..., "sf_task_id": ...}])
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from ..models import ActionLog, OpportunityTask, SalesforceOpportunity, User
from ..models.actions import ACTION_TYPES
from ..schemas.opportunities import TaskCreate

MAX_PENDING = 500


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def action_to_dict(action: ActionLog) -> dict:
    return {
        "id": action.id,
        "action_type": action.action_type,
        "opportunity_id": action.opportunity_id,
        "payload": action.payload or {},
        "created_by": action.created_by,
        "created_at": _iso(action.created_at),
    }


def task_to_action_dict(task: OpportunityTask) -> dict:
    """Tasks are presented to Salesforce as create_task actions."""
    return {
        "id": task.id,
        "action_type": "create_task",
        "opportunity_id": task.opportunity_id,
        "opportunity_name": task.opportunity_name,
        "payload": {
            "title": task.title,
            "description": task.description,
            "due_date": task.due_date.isoformat() if task.due_date else None,
            "priority": task.priority,
            "status": task.status,
            "assigned_to": task.assigned_to,
        },
        "created_at": _iso(task.created_at),
    }


def list_pending(db: Session, action_type: str | None = None, limit: int = 50) -> dict:
    """Unsynced action logs and tasks, oldest first."""
    limit = max(1, min(limit, MAX_PENDING))
    if action_type and action_type not in ACTION_TYPES:
        raise ValueError(f"Unknown action type: {action_type}")

    q = db.query(ActionLog).filter(ActionLog.synced_to_sf.is_(False))
    if action_type:
        q = q.filter(ActionLog.action_type == action_type)
    actions = q.order_by(ActionLog.created_at.asc()).limit(limit).all()

    tasks = (
        db.query(OpportunityTask)
        .filter(OpportunityTask.synced_to_sf.is_(False))
        .order_by(OpportunityTask.created_at.asc())
        .limit(limit)
        .all()
    )

    return {
        "count": len(actions) + len(tasks),
        "actions": [action_to_dict(a) for a in actions],
        "tasks": [task_to_action_dict(t) for t in tasks],
    }


def _mark(db: Session, model, items, sf_field: str, label: str, now: datetime) -> dict:
    result = {"updated": 0, "errors": []}
    for item in items or []:
        row_id = item.get("id") if isinstance(item, dict) else None
        # Primary keys are uuid strings; anything else cannot name a row
        row = db.get(model, row_id) if isinstance(row_id, str) and row_id else None
        if not row:
            result["errors"].append(f"Failed to sync {label} {row_id}: not found")
            continue
        sf_id = item.get(sf_field)
        if sf_id is not None and not isinstance(sf_id, str):
            result["errors"].append(f"Failed to sync {label} {row_id}: invalid {sf_field}")
            continue
        row.synced_to_sf = True
        row.synced_at = now
        setattr(row, sf_field, sf_id or None)
        result["updated"] += 1
    return result


def mark_synced(db: Session, synced_actions=None, synced_tasks=None) -> dict:
    """Flag rows Salesforce has applied. Unknown ids are reported, not fatal."""
    now = datetime.now(timezone.utc)
    results = {
        "actions": _mark(db, ActionLog, synced_actions, "sf_record_id", "action", now),
        "tasks": _mark(db, OpportunityTask, synced_tasks, "sf_task_id", "task", now),
    }
    db.commit()
    logger.info(
        "Salesforce sync ack: {} actions, {} tasks",
        results["actions"]["updated"],
        results["tasks"]["updated"],
    )
    return results


def queue_task(db: Session, opp: SalesforceOpportunity, payload: TaskCreate, user: User) -> OpportunityTask:
    """Create a task on an opportunity. It is offered to Salesforce as create_task."""
    task = OpportunityTask(
        opportunity_id=opp.sf_opportunity_id,
        opportunity_name=opp.name,
        title=payload.title,
        description=payload.description,
        due_date=payload.due_date,
        priority=payload.priority,
        assigned_to=payload.assigned_to or opp.owner_email,
        created_by=user.email,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def queue_action(db: Session, opp: SalesforceOpportunity, action_type: str, payload: dict, user: User) -> ActionLog:
    """Log a note or stage change for Salesforce to apply."""
    if action_type not in ACTION_TYPES or action_type == "create_task":
        raise ValueError(f"Unsupported action type: {action_type}")
    action = ActionLog(
        action_type=action_type,
        opportunity_id=opp.sf_opportunity_id,
        payload=payload,
        created_by=user.email,
    )
    db.add(action)
    db.commit()
    db.refresh(action)
    return action
