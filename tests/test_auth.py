"""Tests for bearer token handling."""

from datetime import timedelta

from jose import jwt

from app.core.auth import create_access_token, verify_token
from app.core.config import settings


def test_token_round_trip():
    token = create_access_token({"user_id": "user-1", "email": "one@example.com"})

    payload = verify_token(token)

    assert payload["user_id"] == "user-1"
    assert payload["sub"] == "user-1"
    assert payload["type"] == "access"
    assert payload["email"] == "one@example.com"


def test_invalid_tokens_are_rejected():
    assert verify_token("not-a-jwt") is None

    expired = create_access_token({"user_id": "user-1"}, expires_delta=timedelta(minutes=-5))
    assert verify_token(expired) is None

    forged = jwt.encode({"user_id": "user-1", "type": "access"}, "other-secret", algorithm=settings.ALGORITHM)
    assert verify_token(forged) is None


def test_dependency_rejects_non_access_tokens(client, api_base):
    refresh = jwt.encode(
        {"user_id": "user-1", "type": "refresh"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )

    response = client.get(f"{api_base}/challenges/my", headers={"Authorization": f"Bearer {refresh}"})

    assert response.status_code == 401


def test_dependency_requires_bearer_scheme(client, api_base):
    token = create_access_token({"user_id": "user-1"})

    response = client.get(f"{api_base}/challenges/my", headers={"Authorization": f"Token {token}"})

    assert response.status_code == 401
