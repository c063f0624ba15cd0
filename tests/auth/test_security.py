"""Tests for auth security functions."""

from datetime import timedelta
from uuid import uuid4

import pytest
from jose import JWTError, jwt

from src.auth.permissions import UserRole
from src.auth.security import (
    access_token_ttl_seconds,
    create_access_token,
    decode_access_token,
)
from src.config import get_settings


class TestAccessToken:
    """Tests for JWT access token functions."""

    def test_create_and_decode(self) -> None:
        user_id = str(uuid4())
        token = create_access_token(
            {"sub": user_id, "email": "a@example.com", "role": UserRole.TEACHER.value}
        )

        payload = decode_access_token(token)

        assert payload["sub"] == user_id
        assert payload["email"] == "a@example.com"
        assert payload["role"] == "teacher"
        assert payload["type"] == "access"
        assert "exp" in payload
        assert "iat" in payload

    def test_expired_token_rejected(self) -> None:
        token = create_access_token(
            {"sub": str(uuid4())}, expires_delta=timedelta(seconds=-1)
        )
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_wrong_type_rejected(self) -> None:
        """Tokens not minted as access tokens are refused."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "refresh"},
            settings.auth_secret_key,
            algorithm=settings.auth_algorithm,
        )
        with pytest.raises(JWTError, match="expected 'access'"):
            decode_access_token(token)

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token({"sub": str(uuid4())})
        with pytest.raises(JWTError):
            decode_access_token(token[:-2] + "xx")

    def test_ttl_matches_settings(self) -> None:
        assert (
            access_token_ttl_seconds()
            == get_settings().auth_access_token_expire_minutes * 60
        )
