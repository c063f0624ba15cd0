"""Tests for AuthService Google sign-in."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.auth.models import User
from src.auth.security import decode_access_token
from src.auth.service import (
    AuthService,
    InvalidTokenError,
    OAuthNotConfiguredError,
    OAuthProfileError,
    UserInactiveError,
)
from src.config import Settings


CLAIMS = {
    "sub": "google-123",
    "email": "maria@example.com",
    "name": "Maria Silva",
    "email_verified": True,
}


def user_row(user: User) -> SimpleNamespace:
    return SimpleNamespace(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
        role=user.role,
        is_active=user.is_active,
        is_email_verified=user.is_email_verified,
        auth_provider=user.auth_provider,
        google_id=user.google_id,
        google_linked_at=user.google_linked_at,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@pytest.fixture
def mock_session():
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name="stmt", cql=cql))
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def auth_service(mock_session) -> AuthService:
    settings = Settings(google_client_id="client-id.apps.googleusercontent.com")
    return AuthService(session=mock_session, keyspace="test_ks", settings=settings)


@pytest.fixture
def verify_token():
    with patch(
        "src.auth.service.google_id_token.verify_oauth2_token",
        return_value=CLAIMS,
    ) as mock:
        yield mock


class TestSignInWithGoogle:
    async def test_creates_new_user(
        self, auth_service: AuthService, mock_session, verify_token
    ) -> None:
        result = await auth_service.sign_in_with_google("id-token")

        assert result.outcome == "created"
        assert result.user.email == "maria@example.com"
        assert result.user.role == "student"
        assert result.token_type == "Bearer"

        payload = decode_access_token(result.access_token)
        assert payload["sub"] == str(result.user.id)
        assert payload["role"] == "student"

        # google_id lookup, email lookup, upsert
        assert mock_session.aexecute.await_count == 3
        upsert_params = mock_session.aexecute.await_args_list[-1].args[1]
        assert upsert_params[1] == "maria@example.com"
        assert upsert_params[8] == "google-123"

        assert verify_token.call_args.args[0] == "id-token"
        assert verify_token.call_args.args[2] == "client-id.apps.googleusercontent.com"

    async def test_links_existing_email_account(
        self, auth_service: AuthService, mock_session, verify_token
    ) -> None:
        existing = User(email="maria@example.com", name="Maria", role="teacher")
        mock_session.aexecute.side_effect = [[], [user_row(existing)], None]

        result = await auth_service.sign_in_with_google("id-token")

        assert result.outcome == "linked"
        assert result.user.id == existing.id
        assert result.user.role == "teacher"

    async def test_inactive_user_refused(
        self, auth_service: AuthService, mock_session, verify_token
    ) -> None:
        existing = User(
            email="maria@example.com", google_id="google-123", is_active=False
        )
        mock_session.aexecute.side_effect = [[user_row(existing)]]

        with pytest.raises(UserInactiveError):
            await auth_service.sign_in_with_google("id-token")

    async def test_invalid_token(self, auth_service: AuthService) -> None:
        with (
            patch(
                "src.auth.service.google_id_token.verify_oauth2_token",
                side_effect=ValueError("Token expired"),
            ),
            pytest.raises(InvalidTokenError),
        ):
            await auth_service.sign_in_with_google("bad-token")

    async def test_profile_without_email(
        self, auth_service: AuthService
    ) -> None:
        with (
            patch(
                "src.auth.service.google_id_token.verify_oauth2_token",
                return_value={"sub": "google-123"},
            ),
            pytest.raises(OAuthProfileError),
        ):
            await auth_service.sign_in_with_google("id-token")

    async def test_not_configured(self, mock_session) -> None:
        service = AuthService(
            session=mock_session, keyspace="test_ks", settings=Settings(google_client_id=None)
        )
        with pytest.raises(OAuthNotConfiguredError):
            await service.sign_in_with_google("id-token")


class TestLookups:
    async def test_get_user_by_email_normalises(
        self, auth_service: AuthService, mock_session
    ) -> None:
        await auth_service.get_user_by_email("  Maria@Example.COM ")
        assert mock_session.aexecute.await_args.args[1] == ["maria@example.com"]

    async def test_get_user_by_id_missing(self, auth_service: AuthService) -> None:
        assert await auth_service.get_user_by_id(uuid4()) is None
