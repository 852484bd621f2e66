"""
conftest.py — Shared Test Fixtures for Pipeline Hub

Provides an in-memory SQLite database, a FastAPI TestClient with auth
overrides, role-based user fixtures and opportunity factories.

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- Auth is overridden so tests don't need a session cookie
- Each test function gets fresh tables (create_all / drop_all)

Called by: all test files via pytest autodiscovery
Depends on: pipelinehub.models (Base), pipelinehub.database (get_db), pipelinehub.dependencies
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing pipelinehub modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_URL", "http://localhost:8000")

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pipelinehub.models import Base, SalesforceOpportunity, User

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _make_user(db: Session, email: str, name: str, role: str) -> User:
    user = User(email=email, name=name, role=role, created_at=datetime.now(timezone.utc))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def sales_user(db_session: Session) -> User:
    """A regular user: sees only opportunities they own."""
    return _make_user(db_session, "sam@acme.com", "Sam Seller", "user")


@pytest.fixture()
def other_sales_user(db_session: Session) -> User:
    return _make_user(db_session, "alex@acme.com", "Alex Closer", "user")


@pytest.fixture()
def admin_user(db_session: Session) -> User:
    """An admin-role user: sees every opportunity."""
    return _make_user(db_session, "admin@acme.com", "Ada Admin", "admin")


@pytest.fixture()
def make_opportunity(db_session: Session):
    """Factory for stored opportunities; keyword args override defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> SalesforceOpportunity:
        counter["n"] += 1
        now = datetime.now(timezone.utc)
        fields = {
            "sf_opportunity_id": f"006TEST{counter['n']:04d}",
            "name": f"Deal {counter['n']}",
            "account_name": "Acme",
            "amount": Decimal("10000"),
            "stage_name": "Prospecting",
            "probability": 50,
            "close_date": date(2026, 12, 15),
            "owner_name": "Sam Seller",
            "owner_email": "sam@acme.com",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        opp = SalesforceOpportunity(**fields)
        db_session.add(opp)
        db_session.commit()
        db_session.refresh(opp)
        return opp

    return _make


def _client_for(db_session: Session, user: User | None):
    from pipelinehub.database import get_db
    from pipelinehub.dependencies import require_user
    from pipelinehub.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    if user is not None:
        app.dependency_overrides[require_user] = lambda: user
    return app


@pytest.fixture()
def client(db_session: Session, sales_user: User) -> TestClient:
    """TestClient authenticated as sales_user.

    Overrides get_db to use the test session and require_user to
    skip session-cookie auth entirely.
    """
    app = _client_for(db_session, sales_user)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(db_session: Session, admin_user: User) -> TestClient:
    app = _client_for(db_session, admin_user)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def anon_client(db_session: Session) -> TestClient:
    """TestClient with the real auth dependencies (no user logged in)."""
    app = _client_for(db_session, None)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
