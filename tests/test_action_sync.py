"""
test_action_sync.py — Tests for the Salesforce action queue

Covers: pending listing (type filter, limit, oldest first, tasks as
create_task), acknowledgement marking with per-item errors, queuing, and
the /api/salesforce/actions routes including the shared secret.

Called by: pytest
Depends on: pipelinehub/services/action_sync_service.py, pipelinehub/routers/actions.py
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from pipelinehub.models import ActionLog, OpportunityTask
from pipelinehub.schemas.opportunities import TaskCreate
from pipelinehub.services.action_sync_service import (
    list_pending,
    mark_synced,
    queue_action,
    queue_task,
)

T0 = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.fixture()
def queued(db_session):
    """Three action logs and two tasks, created one minute apart."""
    rows = [
        ActionLog(action_type="add_note", opportunity_id="006A", payload={"note": "n1"}, created_at=T0),
        ActionLog(action_type="update_stage", opportunity_id="006A", payload={"stage_name": "Won"},
                  created_at=T0 + timedelta(minutes=1)),
        ActionLog(action_type="add_note", opportunity_id="006B", payload={"note": "done"},
                  synced_to_sf=True, created_at=T0 + timedelta(minutes=2)),
        OpportunityTask(opportunity_id="006A", title="Call back", created_at=T0 + timedelta(minutes=3)),
        OpportunityTask(opportunity_id="006B", title="Old", synced_to_sf=True, created_at=T0),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


# ── Service ──────────────────────────────────────────────────────────


def test_list_pending(db_session, queued):
    pending = list_pending(db_session)

    assert pending["count"] == 3
    assert [a["action_type"] for a in pending["actions"]] == ["add_note", "update_stage"]
    assert pending["actions"][0]["payload"] == {"note": "n1"}
    task = pending["tasks"][0]
    assert task["action_type"] == "create_task"
    assert task["payload"]["title"] == "Call back"


def test_list_pending_type_filter(db_session, queued):
    pending = list_pending(db_session, action_type="update_stage")
    assert [a["action_type"] for a in pending["actions"]] == ["update_stage"]


def test_list_pending_limit(db_session, queued):
    pending = list_pending(db_session, limit=1)
    assert len(pending["actions"]) == 1
    assert pending["actions"][0]["payload"] == {"note": "n1"}


def test_list_pending_unknown_type(db_session):
    with pytest.raises(ValueError, match="Unknown action type"):
        list_pending(db_session, action_type="delete")


def test_mark_synced(db_session, queued):
    note, stage, _, task, _ = queued
    results = mark_synced(
        db_session,
        synced_actions=[{"id": note.id, "sf_record_id": "00T1"}, {"id": "missing"}],
        synced_tasks=[{"id": task.id, "sf_task_id": "00T2"}],
    )

    assert results["actions"]["updated"] == 1
    assert results["actions"]["errors"] == ["Failed to sync action missing: not found"]
    assert results["tasks"] == {"updated": 1, "errors": []}

    db_session.expire_all()
    assert db_session.get(ActionLog, note.id).sf_record_id == "00T1"
    assert db_session.get(ActionLog, note.id).synced_at is not None
    assert db_session.get(OpportunityTask, task.id).sf_task_id == "00T2"
    assert db_session.get(ActionLog, stage.id).synced_to_sf is False
    assert list_pending(db_session)["count"] == 1


def test_mark_synced_non_string_ids_reported(db_session, queued):
    note, stage, _, task, _ = queued
    results = mark_synced(
        db_session,
        synced_actions=[
            {"id": note.id, "sf_record_id": "00T1"},
            {"id": {"x": 1}},
            {"id": 42},
            {"id": stage.id, "sf_record_id": ["00T3"]},
            "not-a-dict",
        ],
        synced_tasks=[{"id": task.id, "sf_task_id": "00T2"}],
    )

    assert results["actions"]["updated"] == 1
    assert len(results["actions"]["errors"]) == 4
    assert results["tasks"]["updated"] == 1

    db_session.expire_all()
    assert db_session.get(ActionLog, note.id).synced_to_sf is True
    assert db_session.get(ActionLog, stage.id).synced_to_sf is False
    assert db_session.get(OpportunityTask, task.id).synced_to_sf is True


def test_mark_synced_empty(db_session):
    assert mark_synced(db_session) == {
        "actions": {"updated": 0, "errors": []},
        "tasks": {"updated": 0, "errors": []},
    }


def test_queue_task_and_action(db_session, sales_user, make_opportunity):
    opp = make_opportunity(sf_opportunity_id="006Q", name="Q Deal")

    task = queue_task(db_session, opp, TaskCreate(title="Follow up"), sales_user)
    assert task.opportunity_name == "Q Deal"
    assert task.assigned_to == "sam@acme.com"

    action = queue_action(db_session, opp, "add_note", {"note": "hi"}, sales_user)
    assert action.created_by == "sam@acme.com"

    with pytest.raises(ValueError):
        queue_action(db_session, opp, "create_task", {}, sales_user)


# ── Routes ───────────────────────────────────────────────────────────


def test_get_pending_route(anon_client, queued):
    resp = anon_client.get("/api/salesforce/actions")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["timestamp"]
    assert data["pendingActions"]["count"] == 3


def test_get_pending_route_bad_type(anon_client):
    resp = anon_client.get("/api/salesforce/actions", params={"type": "nope"})
    assert resp.status_code == 400


def test_post_ack_route(anon_client, db_session, queued):
    note = queued[0]
    resp = anon_client.post(
        "/api/salesforce/actions",
        json={"syncedActions": [{"id": note.id, "sf_record_id": "00T9"}]},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["results"]["actions"]["updated"] == 1


def test_post_ack_route_mixed_batch(anon_client, db_session, queued):
    note = queued[0]
    resp = anon_client.post(
        "/api/salesforce/actions",
        json={"syncedActions": [{"id": note.id, "sf_record_id": "00T1"}, {"id": {"x": 1}}]},
    )
    assert resp.status_code == 200
    actions = resp.json()["results"]["actions"]
    assert actions["updated"] == 1
    assert len(actions["errors"]) == 1

    db_session.expire_all()
    assert db_session.get(ActionLog, note.id).sf_record_id == "00T1"


def test_routes_require_secret_when_configured(anon_client, queued):
    with patch("pipelinehub.dependencies.settings.webhook_secret", "s3cret"):
        assert anon_client.get("/api/salesforce/actions").status_code == 401
        ok = anon_client.get("/api/salesforce/actions", headers={"x-webhook-secret": "s3cret"})
    assert ok.status_code == 200
