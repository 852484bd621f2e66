"""Salesforce webhook ingestion — normalize one opportunity payload and upsert it.

Salesforce (Flow / Apex callouts, middleware) posts opportunities in two
layouts, and field names arrive either Capitalized (API names) or camelCase:

    Nested:  {"opportunity": {"Id": ..., "Name": ...},
              "account": {"Name": ...}, "owner": {"Email": ...}}
    Flat:    {"opportunityId": ..., "opportunityName": ..., "accountName": ...,
              "owner": {"ownerEmail": ...}}

Parsing is a separate step from persistence: detect_shape() tags the payload,
parse_payload() turns it into a CanonicalOpportunity, and OpportunityIngestor
writes that record with a single INSERT ... ON CONFLICT DO UPDATE.

Precedence when both conventions are present:
    nested payloads → Capitalized first ("Name" beats "name")
    flat payloads   → camelCase first   ("opportunityName" beats "OpportunityName")

Usage:
    ingestor = OpportunityIngestor(db, connection_key=settings.connection_status_key)
    result = ingestor.ingest(decode_body(raw_bytes))
"""

import enum
import json
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import SalesforceConnection, SalesforceOpportunity
from ..models.connection import WEBHOOK_INSTANCE
from ..schemas.opportunities import CanonicalOpportunity


class InvalidPayloadError(ValueError):
    """Payload is not JSON, has no recognizable shape, or lacks an id."""


class PersistenceError(RuntimeError):
    """The store rejected the write. Nothing was committed."""


class PayloadShape(enum.Enum):
    NESTED = "nested"
    FLAT = "flat"


@dataclass(frozen=True)
class IngestResult:
    opportunity_id: str  # local row id
    sf_opportunity_id: str
    created: bool


# ── Field probing ────────────────────────────────────────────────────


def first_present(source: Any, keys: tuple[str, ...]) -> Any:
    """Return the value of the first key present in source, else None.

    A key counts as present when its value is neither None nor a blank
    string. 0 and False are real values and win.
    """
    if not isinstance(source, Mapping):
        return None
    for key in keys:
        value = source.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _resolve(sources: Mapping[str, Any], candidates: list[tuple[str, tuple[str, ...]]]) -> Any:
    """Walk (source name, keys) pairs in order; first present value wins."""
    for source_name, keys in candidates:
        value = first_present(sources.get(source_name), keys)
        if value is not None:
            return value
    return None


# Canonical field → ordered (source, candidate keys). Capitalized first.
NESTED_FIELDS: dict[str, list[tuple[str, tuple[str, ...]]]] = {
    "sf_opportunity_id": [("opportunity", ("Id", "id"))],
    "name": [("opportunity", ("Name", "name"))],
    "stage_name": [("opportunity", ("StageName", "stageName"))],
    "amount": [("opportunity", ("Amount", "amount"))],
    "close_date": [("opportunity", ("CloseDate", "closeDate"))],
    "description": [("opportunity", ("Description", "description"))],
    "probability": [("opportunity", ("Probability", "probability"))],
    "opportunity_type": [("opportunity", ("Type", "type"))],
    "sf_account_id": [
        ("opportunity", ("AccountId", "accountId")),
        ("account", ("Id", "id")),
    ],
    "sf_owner_id": [
        ("opportunity", ("OwnerId", "ownerId")),
        ("owner", ("Id", "id")),
    ],
    "account_name": [("account", ("Name", "name"))],
    "account_industry": [("account", ("Industry", "industry"))],
    "account_billing_country": [("account", ("BillingCountry", "billingCountry"))],
    "account_rating": [("account", ("Rating", "rating"))],
    "owner_name": [
        ("owner", ("Name", "name")),
        ("account_owner", ("Name", "name")),
    ],
    "owner_email": [
        ("owner", ("Email", "email")),
        ("account_owner", ("Email", "email")),
    ],
}

# Canonical field → ordered (source, candidate keys). camelCase first.
FLAT_FIELDS: dict[str, list[tuple[str, tuple[str, ...]]]] = {
    "sf_opportunity_id": [("body", ("opportunityId", "OpportunityId"))],
    "name": [("body", ("opportunityName", "OpportunityName", "name", "Name"))],
    "stage_name": [("body", ("stageName", "StageName"))],
    "amount": [("body", ("amount", "Amount"))],
    "close_date": [("body", ("closeDate", "CloseDate"))],
    "description": [("body", ("description", "Description"))],
    "probability": [("body", ("probability", "Probability"))],
    "opportunity_type": [("body", ("type", "Type", "opportunityType", "OpportunityType"))],
    "sf_account_id": [("body", ("accountId", "AccountId"))],
    "account_name": [("body", ("accountName", "AccountName"))],
    "account_industry": [("body", ("industry", "Industry", "accountIndustry", "AccountIndustry"))],
    "account_billing_country": [("body", ("billingCountry", "BillingCountry"))],
    "account_rating": [("body", ("rating", "Rating", "accountRating", "AccountRating"))],
    "sf_owner_id": [
        ("body", ("ownerId", "OwnerId")),
        ("owner", ("ownerId", "OwnerId", "id", "Id")),
    ],
    "owner_name": [
        ("body", ("ownerName", "OwnerName")),
        ("owner", ("ownerName", "owner_name", "OwnerName", "name", "Name")),
    ],
    "owner_email": [
        ("body", ("ownerEmail", "OwnerEmail")),
        ("owner", ("ownerEmail", "owner_email", "OwnerEmail", "email", "Email")),
    ],
}


# ── Parsing ──────────────────────────────────────────────────────────


def _reject_constant(token: str):
    raise InvalidPayloadError(f"Malformed JSON body: {token} is not valid JSON")


def decode_body(raw: bytes | str) -> dict:
    """Decode a request body into a JSON object, or raise InvalidPayloadError.

    NaN and Infinity are not JSON; json.loads accepts them unless told not to.
    """
    try:
        body = json.loads(raw, parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(f"Malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise InvalidPayloadError("Payload must be a JSON object")
    return body


def detect_shape(body: Any) -> PayloadShape:
    """Nested when opportunity.{Id|id} is present, flat when {o|O}pportunityId is."""
    if not isinstance(body, Mapping):
        raise InvalidPayloadError("Payload must be a JSON object")
    if first_present(body.get("opportunity"), ("Id", "id")) is not None:
        return PayloadShape.NESTED
    if first_present(body, ("opportunityId", "OpportunityId")) is not None:
        return PayloadShape.FLAT
    raise InvalidPayloadError(
        'Invalid payload: missing opportunity data. Expected either nested format with '
        '"opportunity" object or flat format with "opportunityId"'
    )


def _nested_sources(body: Mapping) -> dict[str, Any]:
    opportunity = body.get("opportunity")
    account = body.get("account")
    owner = body.get("owner")
    if not isinstance(owner, Mapping):
        owner = opportunity.get("Owner")
    account_owner = account.get("owner") if isinstance(account, Mapping) else None
    return {
        "opportunity": opportunity,
        "account": account,
        "owner": owner,
        "account_owner": account_owner,
    }


def _flat_sources(body: Mapping) -> dict[str, Any]:
    return {"body": body, "owner": body.get("owner")}


def parse_payload(body: Any) -> CanonicalOpportunity:
    """Turn either payload layout into one CanonicalOpportunity."""
    shape = detect_shape(body)
    if shape is PayloadShape.NESTED:
        sources, table = _nested_sources(body), NESTED_FIELDS
    else:
        sources, table = _flat_sources(body), FLAT_FIELDS

    fields = {name: _resolve(sources, candidates) for name, candidates in table.items()}
    try:
        return CanonicalOpportunity(**fields, raw_payload=dict(body))
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid opportunity payload: {e.errors()[0]['msg']}") from e


# ── Persistence ──────────────────────────────────────────────────────


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceError(f"No native upsert for dialect '{dialect}'")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpportunityIngestor:
    """Idempotent create-or-update of opportunities keyed by Salesforce id.

    Configuration comes in through the constructor: the session to write
    with, the connection-status row key, and a clock (tests pin it).
    """

    def __init__(
        self,
        db: Session,
        *,
        connection_key: str = "default",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.connection_key = connection_key
        self._clock = clock

    def ingest(self, body: Any) -> IngestResult:
        record = parse_payload(body)
        return self.upsert(record)

    def upsert(self, record: CanonicalOpportunity) -> IngestResult:
        """Write record with one INSERT ... ON CONFLICT DO UPDATE.

        Every canonical column is overwritten, Nones included. id and
        created_at keep their first-insert values; updated_at is always
        the local processing time. The row id is minted here, so RETURNING
        it back unchanged means the insert branch ran.
        """
        now = self._clock()
        values = record.column_values()
        insert = _dialect_insert(self.db)
        new_id = str(uuid.uuid4())

        stmt = insert(SalesforceOpportunity).values(
            **values, id=new_id, created_at=now, updated_at=now
        )
        overwrite = {col: stmt.excluded[col] for col in values if col != "sf_opportunity_id"}
        overwrite["updated_at"] = now
        stmt = stmt.on_conflict_do_update(
            index_elements=[SalesforceOpportunity.sf_opportunity_id],
            set_=overwrite,
        ).returning(SalesforceOpportunity.id)

        try:
            local_id = self.db.execute(stmt).scalar_one()
            self._mark_connection_active(insert, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Opportunity upsert failed for {}: {}", record.sf_opportunity_id, e
            )
            raise PersistenceError(str(getattr(e, "orig", None) or e)) from e

        created = local_id == new_id
        logger.info(
            "Opportunity {} {} (row {})",
            record.sf_opportunity_id,
            "created" if created else "updated",
            local_id,
        )
        return IngestResult(
            opportunity_id=local_id,
            sf_opportunity_id=record.sf_opportunity_id,
            created=created,
        )

    def _mark_connection_active(self, insert, now: datetime) -> None:
        """Flip the liveness row to active. Runs in the same transaction."""
        stmt = insert(SalesforceConnection).values(
            id=self.connection_key,
            access_token=WEBHOOK_INSTANCE,
            instance_url=WEBHOOK_INSTANCE,
            is_active=True,
            last_payload_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SalesforceConnection.id],
            set_={"is_active": True, "last_payload_at": now, "updated_at": now},
        )
        self.db.execute(stmt)

