"""
routers/webhook.py — Inbound Salesforce opportunity webhook

Salesforce (an Apex trigger or an outbound message relay) POSTs one
opportunity per call in either the nested or the flat payload shape.

Business Rules:
- Every failure is answered with {error, details}; nothing escapes
- 400 for malformed/unrecognized payloads, before any store interaction
- 500 for persistence failures; the sender is expected to redeliver
- OPTIONS preflight answers 200 with open CORS headers (server-to-server)
- x-webhook-secret is checked only when WEBHOOK_SECRET is configured
- Not rate limited: a bulk update arrives as a burst from a few sender IPs

Called by: main.py (router include)
Depends on: services/ingestion.py, dependencies.secret_matches
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import secret_matches
from ..schemas.opportunities import WebhookAck, WebhookError
from ..services.ingestion import (
    InvalidPayloadError,
    OpportunityIngestor,
    PersistenceError,
    decode_body,
)

router = APIRouter(tags=["webhook"])

WEBHOOK_PATHS = ("/api/webhook/salesforce", "/salesforce-webhook")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Webhook-Secret",
}


def _error(status: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=WebhookError(error=error, details=details).model_dump(),
        headers=CORS_HEADERS,
    )


async def receive_opportunity(request: Request, db: Session = Depends(get_db)):
    """Normalize and upsert one opportunity pushed by Salesforce."""
    if not secret_matches(request.headers.get("x-webhook-secret")):
        logger.warning("Salesforce webhook rejected: bad secret")
        return _error(401, "Unauthorized", "Invalid webhook secret")

    try:
        body = decode_body(await request.body())
        result = OpportunityIngestor(db, connection_key=settings.connection_status_key).ingest(body)
    except InvalidPayloadError as e:
        logger.warning("Salesforce webhook rejected: {}", e)
        return _error(400, "Invalid opportunity payload", str(e))
    except PersistenceError as e:
        return _error(500, "Failed to process opportunity", str(e))
    except Exception as e:
        logger.exception("Unexpected webhook failure")
        return _error(500, "Failed to process opportunity", str(e))

    ack = WebhookAck(opportunityId=result.opportunity_id)
    return JSONResponse(content=ack.model_dump(), headers=CORS_HEADERS)


async def preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


for _path in WEBHOOK_PATHS:
    router.add_api_route(
        _path,
        receive_opportunity,
        methods=["POST"],
        name=f"receive_opportunity{_path.replace('/', '_').replace('-', '_')}",
    )
    router.add_api_route(_path, preflight, methods=["OPTIONS"], include_in_schema=False)
