"""Authentication service layer.

Business logic for:
- User lookups and persistence
- Google sign-in (ID token verification, account linking, token issuing)
"""

import asyncio
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from src.auth.models import User
from src.auth.oauth import GoogleProfile, OAuthResolution, resolve_oauth_user
from src.auth.schemas import GoogleSignInResponse, UserResponse
from src.auth.security import access_token_ttl_seconds, create_access_token
from src.config.settings import Settings, get_settings


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class AuthError(Exception):
    """Base authentication error."""

    def __init__(self, message: str, code: str = "auth_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidTokenError(AuthError):
    """Invalid or expired token."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, "invalid_token")


class UserInactiveError(AuthError):
    """User account is inactive."""

    def __init__(self, message: str = "Account is inactive"):
        super().__init__(message, "user_inactive")


class OAuthNotConfiguredError(AuthError):
    def __init__(self, message: str = "Google sign-in is not configured"):
        super().__init__(message, "oauth_not_configured")


class OAuthProfileError(AuthError):
    """Identity provider profile cannot be mapped onto an account."""

    def __init__(self, message: str):
        super().__init__(message, "oauth_profile_invalid")


# ==============================================================================
# Auth Service
# ==============================================================================


class AuthService:
    """Authentication service for user lookups and Google sign-in."""

    def __init__(
        self, session: "Session", keyspace: str, settings: Settings | None = None
    ):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra driver session (with ``aexecute``)
            keyspace: Keyspace name for queries
            settings: Application settings, defaults to the cached instance
        """
        self.session = session
        self.keyspace = keyspace
        self.settings = settings or get_settings()
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_user_by_email = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE email = ?"
        )
        self._get_user_by_google_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE google_id = ?"
        )
        self._upsert_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users
            (id, email, name, avatar_url, role, is_active, is_email_verified,
             auth_provider, google_id, google_linked_at, last_login_at,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _get_one(self, statement, value: Any) -> User | None:
        result = await self.session.aexecute(statement, [value])
        row = result[0] if result else None
        return User.from_row(row) if row else None

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return await self._get_one(self._get_user_by_id, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._get_one(self._get_user_by_email, email.lower().strip())

    async def get_user_by_google_id(self, google_id: str) -> User | None:
        return await self._get_one(self._get_user_by_google_id, google_id)

    async def save_user(self, user: User) -> None:
        """Insert or overwrite the user row."""
        await self.session.aexecute(
            self._upsert_user,
            [
                user.id,
                user.email,
                user.name,
                user.avatar_url,
                user.role,
                user.is_active,
                user.is_email_verified,
                user.auth_provider,
                user.google_id,
                user.google_linked_at,
                user.last_login_at,
                user.created_at,
                user.updated_at,
            ],
        )

    # ==========================================================================
    # Tokens
    # ==========================================================================

    def create_access_token_for(self, user: User) -> str:
        return create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role}
        )

    # ==========================================================================
    # Google sign-in
    # ==========================================================================

    async def verify_google_token(self, token: str) -> GoogleProfile:
        """Verify a Google ID token and extract the profile.

        Signature, expiry, issuer and audience are checked by google-auth.
        Certificate fetching is blocking, so it runs in a worker thread.

        Raises:
            OAuthNotConfiguredError: No client id configured.
            InvalidTokenError: Token rejected by google-auth.
        """
        if not self.settings.google_oauth_configured:
            raise OAuthNotConfiguredError

        try:
            claims = await asyncio.to_thread(
                google_id_token.verify_oauth2_token,
                token,
                google_requests.Request(),
                self.settings.google_client_id,
            )
        except ValueError as e:
            logger.warning("google_token_rejected", error=str(e))
            raise InvalidTokenError("Invalid Google ID token") from e

        return GoogleProfile.from_claims(claims)

    async def link_google_account(self, profile: GoogleProfile) -> OAuthResolution:
        """Resolve the profile to a local user and persist the result."""
        try:
            resolution = await resolve_oauth_user(
                profile,
                find_by_provider_id=self.get_user_by_google_id,
                find_by_email=self.get_user_by_email,
            )
        except ValueError as e:
            raise OAuthProfileError(str(e)) from e

        if not resolution.user.is_active:
            raise UserInactiveError

        await self.save_user(resolution.user)
        logger.info(
            "google_sign_in",
            user_id=str(resolution.user.id),
            outcome=resolution.outcome.value,
        )
        return resolution

    async def sign_in_with_google(self, token: str) -> GoogleSignInResponse:
        """Verify the ID token, link or create the account, issue a token."""
        profile = await self.verify_google_token(token)
        resolution = await self.link_google_account(profile)
        return GoogleSignInResponse(
            access_token=self.create_access_token_for(resolution.user),
            expires_in=access_token_ttl_seconds(),
            user=self.to_response(resolution.user),
            outcome=resolution.outcome.value,
        )

    def to_response(self, user: User) -> UserResponse:
        return UserResponse.from_user(user)
