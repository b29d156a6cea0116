"""Pytest configuration and fixtures."""

import json
import os
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fueltrack.api.dependencies import get_duplicate_guard, get_object_storage, get_vision_client
from fueltrack.config import get_settings
from fueltrack.database import Base, get_db
from fueltrack.main import app
from fueltrack.models.user import User
from fueltrack.services.duplicate_guard import DuplicateUploadGuard
from fueltrack.services.storage import ObjectStorage
from fueltrack.services.vision import VisionExtractionClient


class AuthHeaders(dict):
    """Dict subclass that also stores the user's id and email."""

    def __init__(self, *args, user_id: int | None = None, email: str | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email


class FakeVisionAPI:
    """Stands in for the chat-completion endpoint of the vision model."""

    def __init__(self) -> None:
        self.content: str | None = "{}"
        self.status_code = 200
        self.error: Exception | None = None
        self.body: dict | None = None  # replaces the whole response body when set
        self.requests: list[httpx.Request] = []

    def reply_with(self, data: dict) -> None:
        self.content = json.dumps(data)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream failure")
        if self.body is not None:
            return httpx.Response(200, json=self.body)
        return httpx.Response(
            200,
            json={
                "id": "cmpl-test",
                "model": "pixtral-12b-2409",
                "choices": [
                    {"index": 0, "message": {"role": "assistant", "content": self.content}}
                ],
            },
        )


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace("/fueltrack", "/fueltrack_test")
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        from sqlalchemy_utils import create_database, database_exists

        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def minio_client():
    """MinIO client double; downloads return a small fake JPEG."""
    client = MagicMock()
    client.get_object.return_value.read.return_value = b"\xff\xd8\xff\xe0fake-jpeg"
    return client


@pytest.fixture
def storage(settings, minio_client):
    return ObjectStorage(settings, client=minio_client)


@pytest.fixture
def fake_vision():
    return FakeVisionAPI()


@pytest.fixture
def vision_client(settings, storage, fake_vision):
    return VisionExtractionClient(
        settings, storage, transport=httpx.MockTransport(fake_vision.handler)
    )


@pytest.fixture
def duplicate_guard():
    return DuplicateUploadGuard()


@pytest.fixture
def user(db):
    """A user created directly in the database."""
    user = User(email="driver@example.com", name="Driver", password_hash="fake")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def client(db, storage, vision_client, duplicate_guard):
    """Create a test client with database and external service overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_storage] = lambda: storage
    app.dependency_overrides[get_vision_client] = lambda: vision_client
    app.dependency_overrides[get_duplicate_guard] = lambda: duplicate_guard
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _register(client, email: str) -> AuthHeaders:
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": "testpass123", "name": "Test User"},
    )
    assert response.status_code == 201
    data = response.json()
    return AuthHeaders(
        {"Authorization": f"Bearer {data['access_token']}"},
        user_id=data["user"]["id"],
        email=email,
    )


@pytest.fixture
def auth_headers(client):
    """Create a user and return auth headers with user info."""
    return _register(client, "test@example.com")


@pytest.fixture
def other_auth_headers(client):
    """A second, unrelated user."""
    return _register(client, "other@example.com")
