"""Pytest configuration and fixtures."""

import os
import pytest
import uuid
from datetime import datetime
from typing import Callable

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"

from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from unbuilt.core.models import Base, Search, SearchResult, User
from unbuilt.core.database import engine
from unbuilt.core.auth import AuthContext, create_access_token, hash_password
from unbuilt.services.plans import PlanService


@pytest.fixture(scope="session")
def db_engine():
    """Create test database engine."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a fresh database session for each test."""
    connection = db_engine.connect()
    transaction = connection.begin()

    Session = sessionmaker(bind=connection)
    session = Session()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    """Factory for users stored in the test session."""
    def _make(plan: str = "free", is_admin: bool = False, email: str = None) -> User:
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:12]}@example.com",
            password_hash=hash_password("correct-horse-battery", iterations=1000),
            plan=plan,
            is_admin=is_admin,
            last_reset_date=datetime.utcnow(),
        )
        db_session.add(user)
        db_session.flush()
        return user
    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def make_search(db_session) -> Callable[..., Search]:
    """Factory for a search with a few stored results."""
    def _make(owner: User, query: str = "tools for remote teams", results: int = 3) -> Search:
        search = Search(user_id=owner.id, query=query, filters={}, results_count=results)
        db_session.add(search)
        db_session.flush()
        for i in range(results):
            db_session.add(SearchResult(
                search_id=search.id,
                title=f"Gap {i}",
                description=f"Description of gap {i}",
                category="Tech That's Missing",
                feasibility="high" if i == 0 else "medium",
                market_potential="high",
                innovation_score=9 - i,
                market_size="$1B",
                gap_reason="Nobody has built it",
            ))
        db_session.flush()
        return search
    return _make


@pytest.fixture
def search(make_search, user) -> Search:
    return make_search(user)


@pytest.fixture
def plan(db_session, user, search):
    """A four-phase plan built from the default structure."""
    return PlanService(db_session).create_plan(user.id, search.id, "My launch plan")


@pytest.fixture
def auth_context(user) -> AuthContext:
    """Create an auth context for testing."""
    return AuthContext(user_id=str(user.id), email=user.email, plan=user.plan)


@pytest.fixture
def client(db_engine) -> TestClient:
    """Create a test client."""
    from unbuilt.api.main import app
    return TestClient(app)


@pytest.fixture
def register(client) -> Callable[..., dict]:
    """Register a fresh account through the API and return its headers and id."""
    def _register(password: str = "correct-horse-battery") -> dict:
        email = f"api-{uuid.uuid4().hex[:12]}@example.com"
        response = client.post("/api/auth/register", json={"email": email, "password": password})
        assert response.status_code == 201, response.text
        body = response.json()
        return {
            "email": email,
            "password": password,
            "user_id": body["user"]["id"],
            "refresh_token": body["refresh_token"],
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }
    return _register


@pytest.fixture
def admin_headers(db_engine) -> dict:
    """Headers for an admin account committed to the test database."""
    from unbuilt.core.database import get_db

    with get_db() as db:
        admin = User(
            email=f"admin-{uuid.uuid4().hex[:12]}@example.com",
            password_hash=hash_password("admin-password", iterations=1000),
            plan="pro",
            is_admin=True,
        )
        db.add(admin)
        db.flush()
        token = create_access_token(str(admin.id), admin.email, admin.plan)
    return {"Authorization": f"Bearer {token}"}
