"""
Tests for health check endpoints.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.config import Settings
from app.core.chat_store import ChatStore
from app.database import get_db, Base

from conftest import FakeClock

# In-memory test database shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override database dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def setup_database():
    """Set up test database and an empty store before each test."""
    Base.metadata.create_all(bind=engine)
    app.state.chat_store = ChatStore(settings=Settings(), clock=FakeClock())
    yield
    Base.metadata.drop_all(bind=engine)


def test_root_endpoint(client):
    """Test the root endpoint returns welcome message."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "ChatChain" in data["message"]
    assert "version" in data
    assert "docs" in data
    assert "health" in data


def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()

    # Check required fields
    assert data["status"] == "healthy"
    assert "version" in data
    assert "timestamp" in data
    assert data["app_name"] == "ChatChain"
    assert data["database"] == "connected"
    assert data["users"] == 0
    assert data["messages"] == 0


def test_health_reports_store_size(client):
    store = app.state.chat_store
    store.register_user("alice", "Alice")
    store.send_message("alice", "hello")

    data = client.get("/health").json()
    assert data["users"] == 1
    assert data["messages"] == 1


def test_readiness_check(client):
    """Test the readiness check endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()

    assert data["ready"] is True
    assert data["checks"]["database"] == "ok"


def test_health_endpoints_cors(client):
    """Test that CORS headers are properly set."""
    response = client.options(
        "/health",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        }
    )
    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers
