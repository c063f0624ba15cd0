"""Tests for auth endpoints."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.models import User
from src.auth.permissions import UserRole
from src.auth.router import get_auth_service
from src.auth.schemas import GoogleSignInResponse, UserResponse
from src.auth.service import InvalidTokenError, OAuthNotConfiguredError
from src.main import app


@pytest.fixture
def auth_service():
    service = Mock()
    service.sign_in_with_google = AsyncMock()
    service.get_user_by_id = AsyncMock()
    service.to_response = UserResponse.from_user
    app.dependency_overrides[get_auth_service] = lambda: service
    return service


class TestGoogleSignIn:
    def test_success(self, client: TestClient, auth_service) -> None:
        user = User(email="maria@example.com", name="Maria", role="student")
        auth_service.sign_in_with_google.return_value = GoogleSignInResponse(
            access_token="token",
            expires_in=1800,
            user=UserResponse.from_user(user),
            outcome="created",
        )

        response = client.post("/v1/auth/oauth/google", json={"id_token": " abc "})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["access_token"] == "token"
        assert body["data"]["outcome"] == "created"
        assert body["data"]["user"]["email"] == "maria@example.com"
        auth_service.sign_in_with_google.assert_awaited_once_with("abc")

    def test_invalid_token(self, client: TestClient, auth_service) -> None:
        auth_service.sign_in_with_google.side_effect = InvalidTokenError()

        response = client.post("/v1/auth/oauth/google", json={"id_token": "abc"})

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_not_configured(self, client: TestClient, auth_service) -> None:
        auth_service.sign_in_with_google.side_effect = OAuthNotConfiguredError()

        response = client.post("/v1/auth/oauth/google", json={"id_token": "abc"})

        assert response.status_code == 503

    def test_blank_token_is_validation_error(
        self, client: TestClient, auth_service
    ) -> None:
        response = client.post("/v1/auth/oauth/google", json={"id_token": "   "})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"
        auth_service.sign_in_with_google.assert_not_awaited()

    def test_service_unavailable_without_database(self, client: TestClient) -> None:
        response = client.post("/v1/auth/oauth/google", json={"id_token": "abc"})
        assert response.status_code == 503


class TestMe:
    def test_requires_token(self, client: TestClient, auth_service) -> None:
        response = client.get("/v1/auth/me")
        assert response.status_code == 401

    def test_rejects_garbage_token(self, client: TestClient, auth_service) -> None:
        response = client.get(
            "/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_returns_stored_profile(
        self, client: TestClient, auth_service, auth_header
    ) -> None:
        user_id = uuid4()
        auth_service.get_user_by_id.return_value = User(
            id=user_id, email="t@example.com", name="Teacher", role="teacher"
        )

        response = client.get(
            "/v1/auth/me", headers=auth_header(UserRole.TEACHER, user_id)
        )

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Teacher"
        auth_service.get_user_by_id.assert_awaited_once_with(user_id)
