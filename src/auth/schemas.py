"""Pydantic schemas for authentication.

Request and response models for:
- Google sign-in
- Token responses
- User profile
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


if TYPE_CHECKING:
    from src.auth.models import User


# ==============================================================================
# Request Schemas
# ==============================================================================


class GoogleSignInRequest(BaseModel):
    """Google ID token obtained by the frontend with Google Identity Services."""

    id_token: str = Field(..., min_length=1, description="Google ID token (JWT)")

    @field_validator("id_token")
    @classmethod
    def validate_id_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "ID token cannot be empty"
            raise ValueError(msg)
        return v


# ==============================================================================
# Response Schemas
# ==============================================================================


class UserResponse(BaseModel):
    """User response (public profile)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None = None
    role: str
    is_active: bool
    avatar_url: str | None = None
    is_email_verified: bool = False
    auth_provider: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: "User") -> "UserResponse":
        """Create response from User model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=user.is_active,
            avatar_url=user.avatar_url,
            is_email_verified=user.is_email_verified,
            auth_provider=user.auth_provider,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenResponse(BaseModel):
    """Access token response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")


class GoogleSignInResponse(TokenResponse):
    """Token plus the signed-in user and how the account was resolved."""

    user: UserResponse
    outcome: str = Field(..., description="updated | linked | created")
