"""
schemas/actions.py — Salesforce action queue payloads

Salesforce polls the pending queue and posts back what it applied.
Acknowledgement items are loose on purpose: a bad item is reported
in the results instead of failing the whole batch.

Called by: routers/actions.py, routers/opportunities.py
Depends on: pydantic
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class SyncAck(BaseModel):
    syncedActions: list[dict[str, Any]] = Field(default_factory=list)
    syncedTasks: list[dict[str, Any]] = Field(default_factory=list)


class ActionCreate(BaseModel):
    action_type: str
    note: str | None = None
    stage_name: str | None = None

    @field_validator("action_type")
    @classmethod
    def known_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("add_note", "update_stage"):
            raise ValueError("action_type must be add_note or update_stage")
        return v

    def payload(self) -> dict:
        """The JSON stored on the action log; requires the field the type needs."""
        if self.action_type == "add_note":
            if not (self.note or "").strip():
                raise ValueError("note is required for add_note")
            return {"note": self.note.strip()}
        if not (self.stage_name or "").strip():
            raise ValueError("stage_name is required for update_stage")
        return {"stage_name": self.stage_name.strip()}
