"""
Pytest configuration and fixtures for FitTrack API tests.

Every test runs against a fresh InMemoryDocumentStore; nothing talks to
Supabase.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["DOCUMENT_STORE"] = "memory"

import uuid
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.auth import create_access_token
from app.core.database import (
    USERS_TABLE,
    InMemoryDocumentStore,
    configure_document_store,
)
from main import app


@pytest.fixture(autouse=True)
def store() -> Generator[InMemoryDocumentStore, None, None]:
    """Fresh in-memory document store installed for the test"""
    memory_store = InMemoryDocumentStore()
    configure_document_store(memory_store)
    yield memory_store
    configure_document_store(None)


@pytest.fixture
def make_user(store: InMemoryDocumentStore) -> Callable[..., str]:
    """Insert a user document and return its id."""

    def _make_user(
        name: Optional[str] = "Test User",
        email: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> str:
        user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
        return store.insert(
            USERS_TABLE,
            {"id": user_id, "name": name, "email": email or f"{user_id}@fittrack-test.example.com"},
        )

    return _make_user


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client for the FastAPI app."""
    with TestClient(app, base_url="http://test") as c:
        yield c


@pytest.fixture
def api_base() -> str:
    """Base path for API v1 endpoints."""
    return "/api/v1"


@pytest.fixture
def auth_headers() -> Callable[[str], dict]:
    """Bearer headers for a given user id."""

    def _headers(user_id: str) -> dict:
        token = create_access_token({"user_id": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers
