"""
dependencies.py — Shared FastAPI Dependencies

Reusable dependency functions for authentication, authorization and
webhook verification. All routers import from here instead of defining
their own auth logic.

Business Rules:
- get_user returns None if not logged in (non-throwing)
- require_user raises 401 if not logged in, 403 if deactivated
- x-agent-key lets internal services act as the agent user
- require_admin raises 403 if user.role != "admin"
- require_webhook_secret is a no-op until WEBHOOK_SECRET is set

Called by: all routers
Depends on: models, database, config
"""

import hmac

from fastapi import Depends, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .models import User

AGENT_EMAIL = "agent@pipelinehub.local"


# ── Authentication ────────────────────────────────────────────────────


def get_user(request: Request, db: Session) -> User | None:
    """Return current user from session, or None if not logged in."""
    uid = request.session.get("user_id")
    if not uid:
        return None
    return db.get(User, uid)


def _agent_user(request: Request, db: Session) -> User | None:
    agent_key = request.headers.get("x-agent-key")
    if not (agent_key and settings.agent_api_key):
        return None
    if not hmac.compare_digest(agent_key, settings.agent_api_key):
        return None
    return db.query(User).filter_by(email=AGENT_EMAIL).first()


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency: raises 401 if no authenticated user, 403 if deactivated."""
    user = get_user(request, db) or _agent_user(request, db)
    if not user:
        raise HTTPException(401, "Not authenticated")
    if not user.is_active:
        request.session.clear()
        raise HTTPException(403, "Account deactivated — contact admin")
    return user


def is_admin(user: User) -> bool:
    return user.role == "admin"


def require_admin(user: User = Depends(require_user)) -> User:
    """Dependency: raises 403 if user is not an admin."""
    if not is_admin(user):
        raise HTTPException(403, "Admin access required")
    return user


# ── Webhooks ──────────────────────────────────────────────────────────


def secret_matches(provided: str | None) -> bool:
    """Constant-time comparison against WEBHOOK_SECRET; open when unset."""
    if not settings.webhook_secret:
        return True
    return hmac.compare_digest(provided or "", settings.webhook_secret)


def require_webhook_secret(request: Request) -> None:
    """Dependency: raises 401 if x-webhook-secret does not match."""
    if not secret_matches(request.headers.get("x-webhook-secret")):
        logger.warning("Rejected Salesforce call with bad webhook secret from {}", request.client.host if request.client else "?")
        raise HTTPException(401, "Invalid webhook secret")
