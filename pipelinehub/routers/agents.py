"""
routers/agents.py — AI agent endpoints (pipeline summarizer, win/loss analyzer)

Business Rules:
- AI features gated by settings.ai_features_enabled (off/all)
- Agents answer from the caller's own role-filtered opportunities
- Disabled, unconfigured or failing AI answers 503

Called by: main.py (router include)
Depends on: services/agent_service.py
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import require_user
from ..models import User
from ..rate_limit import limiter
from ..schemas.agents import AgentAnswer, AgentQuery
from ..services.agent_service import AgentUnavailableError, ask_pipeline_agent, ask_win_loss_agent

router = APIRouter(tags=["agents"])


def _ai_enabled() -> bool:
    return settings.ai_features_enabled != "off"


@router.post("/api/agents/pipeline", response_model=AgentAnswer)
@limiter.limit(settings.rate_limit_agents)
async def pipeline_agent(
    payload: AgentQuery,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if not _ai_enabled():
        raise HTTPException(503, "AI features are disabled")
    try:
        answer = await ask_pipeline_agent(db, user, payload.query)
    except AgentUnavailableError as e:
        raise HTTPException(503, str(e))
    return AgentAnswer(agent="pipeline", response=answer)


@router.post("/api/agents/win-loss", response_model=AgentAnswer)
@limiter.limit(settings.rate_limit_agents)
async def win_loss_agent(
    payload: AgentQuery,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if not _ai_enabled():
        raise HTTPException(503, "AI features are disabled")
    try:
        answer = await ask_win_loss_agent(db, user, payload.query)
    except AgentUnavailableError as e:
        raise HTTPException(503, str(e))
    return AgentAnswer(agent="win-loss", response=answer)
