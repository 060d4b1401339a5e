"""Pytest configuration for kpidash integration tests

WHAT: Shared fixtures for data-layer, realtime, session and HTTP tests
WHY: Every test gets a fresh in-memory database, change feed and signed-in users
REFERENCES:
    - kpidash/main.py: FastAPI application
    - kpidash/database.py: Database configuration
    - kpidash/deps.py: Dependency injection
    - kpidash/hosted/client.py: HostedClient
"""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be URL-safe base64-encoded 32-byte string (kpidash.security validates at import time)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("SENTRY_DSN", None)

OWNER_EMAIL = "owner@shop.com"
OTHER_EMAIL = "rival@store.com"
PASSWORD = "password123"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite shared by every session and thread of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from kpidash.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Hosted Client Fixtures
# ============================================================================

@pytest.fixture
def feed():
    from kpidash.hosted import ChangeFeed
    return ChangeFeed()


@pytest.fixture
def anon_client(test_db_session, feed):
    """Client with no session."""
    from kpidash.hosted import HostedClient
    return HostedClient(test_db_session, feed)


def _signed_up(session, feed, email, first_name, last_name):
    from kpidash.hosted import HostedClient

    client = HostedClient(session, feed)
    client.auth.sign_up(email, PASSWORD, metadata={"first_name": first_name, "last_name": last_name})
    return client


@pytest.fixture
def owner_client(test_db_session, feed):
    """Signed-in client for the primary test user."""
    return _signed_up(test_db_session, feed, OWNER_EMAIL, "Teto", "Kasane")


@pytest.fixture
def other_client(test_db_session, feed):
    """Signed-in client for a second, unrelated user."""
    return _signed_up(test_db_session, feed, OTHER_EMAIL, "Miku", "Hatsune")


@pytest.fixture
def owner_id(owner_client) -> str:
    return str(owner_client.auth.get_user().id)


@pytest.fixture
def kpi_form():
    """A valid KPI form as the dashboard submits it."""
    return {
        "name": "Monthly Revenue",
        "value": "45000",
        "target": "50000",
        "unit": "currency",
        "category": "Revenue",
        "change_percent": "12.5",
    }


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, feed):
    """FastAPI app bound to the test database and feed."""
    from kpidash.database import get_db
    from kpidash.main import create_app

    test_app = create_app()
    test_app.state.change_feed = feed

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Anonymous TestClient."""
    return TestClient(app)


@pytest.fixture
def auth_client(app) -> TestClient:
    """TestClient holding the owner's access_token cookie."""
    api = TestClient(app)
    response = api.post(
        "/auth/signup",
        json={"email": OWNER_EMAIL, "password": PASSWORD, "first_name": "Teto", "last_name": "Kasane"},
    )
    assert response.status_code == 201, response.text
    return api
