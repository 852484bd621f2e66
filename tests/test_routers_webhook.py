"""
test_routers_webhook.py — Tests for the inbound Salesforce webhook routes

Covers: nested/flat delivery, idempotent redelivery, 400 without side
effects, malformed JSON, 500 on persistence failure, OPTIONS preflight,
the legacy alias path, and the optional shared secret.

Called by: pytest
Depends on: pipelinehub/routers/webhook.py, tests/conftest.py (anon_client)
"""

from unittest.mock import patch

import pytest
from sqlalchemy import func

from pipelinehub.models import SalesforceConnection, SalesforceOpportunity
from pipelinehub.services.ingestion import PersistenceError

URL = "/api/webhook/salesforce"

OPP1 = {
    "opportunity": {"Id": "OPP1", "Name": "Deal X", "Amount": 50000, "StageName": "Proposal"},
    "account": {"Name": "Acme"},
    "owner": {"Name": "Sam", "Email": "Sam@Acme.com"},
}

OPP2_FLAT = {
    "opportunityId": "OPP2",
    "opportunityName": "Deal Y",
    "amount": "1200.50",
    "probability": 80,
    "closeDate": "2026-12-01",
    "accountName": "Globex",
    "owner": {"ownerName": "Alex", "ownerEmail": "ALEX@globex.com"},
}


def _count(db):
    return db.query(func.count(SalesforceOpportunity.id)).scalar()


def test_nested_payload_saved(anon_client, db_session):
    resp = anon_client.post(URL, json=OPP1)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "Opportunity received and saved"

    row = db_session.query(SalesforceOpportunity).filter_by(sf_opportunity_id="OPP1").one()
    assert data["opportunityId"] == row.id
    assert row.name == "Deal X"
    assert float(row.amount) == 50000
    assert row.stage_name == "Proposal"
    assert row.account_name == "Acme"
    assert row.owner_email == "sam@acme.com"


def test_identical_redelivery_keeps_one_row(anon_client, db_session):
    first = anon_client.post(URL, json=OPP1).json()
    second = anon_client.post(URL, json=OPP1).json()

    assert _count(db_session) == 1
    assert first["opportunityId"] == second["opportunityId"]


def test_flat_payload_saved(anon_client, db_session):
    resp = anon_client.post(URL, json=OPP2_FLAT)

    assert resp.status_code == 200
    row = db_session.query(SalesforceOpportunity).filter_by(sf_opportunity_id="OPP2").one()
    assert row.name == "Deal Y"
    assert row.probability == 80
    assert row.owner_name == "Alex"
    assert row.owner_email == "alex@globex.com"


def test_alias_path(anon_client, db_session):
    resp = anon_client.post("/salesforce-webhook", json=OPP2_FLAT)
    assert resp.status_code == 200
    assert _count(db_session) == 1


def test_successful_delivery_marks_feed_connected(anon_client, db_session):
    anon_client.post(URL, json=OPP1)
    conn = db_session.get(SalesforceConnection, "default")
    assert conn is not None and conn.is_active is True


@pytest.mark.parametrize(
    "body",
    [
        {"opportunity": {"Name": "no id"}},
        {"accountName": "Acme"},
        {"opportunityId": "   "},
        [OPP1],
    ],
)
def test_unrecognized_payload_400_without_side_effects(anon_client, db_session, body):
    before = _count(db_session)
    resp = anon_client.post(URL, json=body)

    assert resp.status_code == 400
    data = resp.json()
    assert data["error"]
    assert data["details"]
    assert _count(db_session) == before
    assert db_session.get(SalesforceConnection, "default") is None


def test_malformed_json_400(anon_client, db_session):
    resp = anon_client.post(URL, content=b"{oops", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert "Malformed JSON" in resp.json()["details"]
    assert _count(db_session) == 0


def test_nan_and_infinity_rejected_400(anon_client, db_session):
    resp = anon_client.post(
        URL,
        content=b'{"opportunityId": "OPPNAN", "amount": NaN, "probability": Infinity}',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert "Malformed JSON" in resp.json()["details"]
    assert _count(db_session) == 0
    assert db_session.get(SalesforceConnection, "default") is None


def test_persistence_failure_500(anon_client):
    with patch(
        "pipelinehub.routers.webhook.OpportunityIngestor.ingest",
        side_effect=PersistenceError("duplicate key value violates unique constraint"),
    ):
        resp = anon_client.post(URL, json=OPP1)

    assert resp.status_code == 500
    data = resp.json()
    assert data["error"] == "Failed to process opportunity"
    assert "duplicate key" in data["details"]


def test_unexpected_error_still_answers_json(anon_client):
    with patch("pipelinehub.routers.webhook.OpportunityIngestor.ingest", side_effect=KeyError("boom")):
        resp = anon_client.post(URL, json=OPP1)
    assert resp.status_code == 500
    assert set(resp.json()) == {"error", "details"}


@pytest.mark.parametrize("path", [URL, "/salesforce-webhook"])
def test_options_preflight(anon_client, path):
    resp = anon_client.options(path)

    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "POST" in resp.headers["Access-Control-Allow-Methods"]


def test_cors_header_on_post(anon_client):
    resp = anon_client.post(URL, json=OPP1)
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


# ── Shared secret ────────────────────────────────────────────────────


def test_secret_required_when_configured(anon_client, db_session):
    with patch("pipelinehub.dependencies.settings.webhook_secret", "s3cret"):
        denied = anon_client.post(URL, json=OPP1)
        wrong = anon_client.post(URL, json=OPP1, headers={"x-webhook-secret": "nope"})
        ok = anon_client.post(URL, json=OPP1, headers={"x-webhook-secret": "s3cret"})

    assert denied.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 200
    assert _count(db_session) == 1


def test_secret_ignored_when_unset(anon_client):
    resp = anon_client.post(URL, json=OPP1, headers={"x-webhook-secret": "anything"})
    assert resp.status_code == 200
