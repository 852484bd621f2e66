"""Request/response models for the AI agent endpoints."""

from pydantic import BaseModel, field_validator


class AgentQuery(BaseModel):
    query: str

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Query is required")
        return v


class AgentAnswer(BaseModel):
    agent: str
    response: str
