"""
schemas/opportunities.py — Canonical opportunity record and read-side models

CanonicalOpportunity is the single, convention-independent shape produced
by the webhook normalizer. Every payload variant is parsed into it before
anything touches the database.

Business Rules:
- sf_opportunity_id is required and never blank
- Unresolvable or unparseable fields become None, never ""
- owner_email is lower-cased (per-user reads use plain equality)
- probability is clamped to 0-100
- close_date accepts YYYY-MM-DD or an ISO datetime (date part kept)

Called by: services/ingestion.py, routers/opportunities.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

CANONICAL_TEXT_FIELDS = (
    "name",
    "sf_account_id",
    "account_name",
    "account_industry",
    "account_billing_country",
    "account_rating",
    "stage_name",
    "sf_owner_id",
    "owner_name",
    "opportunity_type",
    "description",
)


def _clean_text(v: Any) -> str | None:
    if v is None or isinstance(v, (dict, list, bool)):
        return None
    v = str(v).strip()
    return v or None


# ── Canonical record ─────────────────────────────────────────────────


class CanonicalOpportunity(BaseModel):
    sf_opportunity_id: str
    name: str | None = None

    sf_account_id: str | None = None
    account_name: str | None = None
    account_industry: str | None = None
    account_billing_country: str | None = None
    account_rating: str | None = None

    amount: Decimal | None = None
    stage_name: str | None = None
    probability: int | None = None
    close_date: date | None = None

    sf_owner_id: str | None = None
    owner_name: str | None = None
    owner_email: str | None = None

    opportunity_type: str | None = None
    description: str | None = None

    raw_payload: dict = Field(default_factory=dict, repr=False)

    @field_validator("sf_opportunity_id", mode="before")
    @classmethod
    def id_not_blank(cls, v: Any) -> str:
        v = _clean_text(v)
        if not v:
            raise ValueError("Opportunity id is required")
        return v

    @field_validator(*CANONICAL_TEXT_FIELDS, mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        return _clean_text(v)

    @field_validator("owner_email", mode="before")
    @classmethod
    def lower_email(cls, v: Any) -> str | None:
        v = _clean_text(v)
        return v.lower() if v else None

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Decimal | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            amount = Decimal(str(v).strip().replace(",", ""))
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None

    @field_validator("probability", mode="before")
    @classmethod
    def parse_probability(cls, v: Any) -> int | None:
        if v is None or isinstance(v, bool):
            return None
        try:
            pct = int(float(str(v).strip().rstrip("%")))
        except (TypeError, ValueError, OverflowError):
            return None
        return max(0, min(100, pct))

    @field_validator("close_date", mode="before")
    @classmethod
    def parse_close_date(cls, v: Any) -> date | None:
        if isinstance(v, date):
            return v
        v = _clean_text(v)
        if not v:
            return None
        try:
            return date.fromisoformat(v[:10])
        except ValueError:
            return None

    def column_values(self) -> dict[str, Any]:
        """Values for every canonical column, Nones included (full overwrite)."""
        return self.model_dump()


# ── Webhook responses ────────────────────────────────────────────────


class WebhookAck(BaseModel):
    success: bool = True
    message: str = "Opportunity received and saved"
    opportunityId: str


class WebhookError(BaseModel):
    error: str
    details: str | None = None


# ── Dashboard views ──────────────────────────────────────────────────


class OpportunityView(BaseModel):
    id: str
    name: str
    accountName: str = "Unknown Account"
    amount: float = 0.0
    stage: str = "Unknown"
    probability: int = 0
    closeDate: str = ""
    owner: str = "Unknown"
    ownerEmail: str | None = None
    type: str | None = None
    daysInStage: int = 0
    riskLevel: str = "medium"


class OpportunityListResponse(BaseModel):
    count: int = 0
    opportunities: list[OpportunityView] = Field(default_factory=list)


class UserOpportunitiesResponse(BaseModel):
    email: str
    count: int = 0
    totalPipeline: float = 0.0
    opportunities: list[OpportunityView] = Field(default_factory=list)
    message: str = ""


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    due_date: date | None = None
    priority: str = "normal"
    assigned_to: str | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Task title is required")
        return v

    @field_validator("priority")
    @classmethod
    def priority_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("low", "normal", "high"):
            raise ValueError("Priority must be low, normal or high")
        return v
