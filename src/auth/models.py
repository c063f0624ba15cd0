"""Database models for authentication.

Cassandra table definitions for:
- Users: main user table with email and Google id lookups

Note: Uses cassandra-driver directly (not ORM) for flexibility.
Tables are created via CQL statements in the database module.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from src.auth.permissions import UserRole


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    name TEXT,
    avatar_url TEXT,
    role TEXT,
    is_active BOOLEAN,
    is_email_verified BOOLEAN,
    auth_provider TEXT,
    google_id TEXT,
    google_linked_at TIMESTAMP,
    last_login_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

USER_EMAIL_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_email_idx ON {keyspace}.users (email)
"""

USER_GOOGLE_ID_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_google_id_idx ON {keyspace}.users (google_id)
"""

AUTH_TABLES_CQL = [
    USER_TABLE_CQL,
    USER_EMAIL_INDEX_CQL,
    USER_GOOGLE_ID_INDEX_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class User:
    """User entity for authentication and authorization.

    Attributes:
        id: Unique identifier (UUID)
        email: Unique email address, stored lower-cased
        name: Display name
        avatar_url: Profile picture URL
        role: User role (user, student, teacher, admin)
        is_active: Account status; inactive accounts cannot sign in
        is_email_verified: Email ownership confirmed (by the identity provider)
        auth_provider: How the account was created ("local" or "google")
        google_id: Google account subject, once linked
        google_linked_at: When the Google account was attached
        last_login_at: Last successful sign-in
    """

    def __init__(
        self,
        id: UUID | None = None,
        email: str = "",
        name: str = "",
        avatar_url: str | None = None,
        role: str = UserRole.USER.value,
        is_active: bool = True,
        is_email_verified: bool = False,
        auth_provider: str = "local",
        google_id: str | None = None,
        google_linked_at: datetime | None = None,
        last_login_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.email = email.lower().strip()
        self.name = name
        self.avatar_url = avatar_url
        self.role = role
        self.is_active = is_active
        self.is_email_verified = is_email_verified
        self.auth_provider = auth_provider
        self.google_id = google_id
        self.google_linked_at = ensure_utc_aware(google_linked_at)
        self.last_login_at = ensure_utc_aware(last_login_at)
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User instance from Cassandra row."""
        return cls(
            id=row.id,
            email=row.email or "",
            name=row.name or "",
            avatar_url=row.avatar_url,
            role=row.role or UserRole.USER.value,
            is_active=row.is_active if row.is_active is not None else True,
            is_email_verified=row.is_email_verified or False,
            auth_provider=row.auth_provider or "local",
            google_id=row.google_id,
            google_linked_at=row.google_linked_at,
            last_login_at=row.last_login_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "is_active": self.is_active,
            "is_email_verified": self.is_email_verified,
            "auth_provider": self.auth_provider,
            "google_id": self.google_id,
            "google_linked_at": self.google_linked_at,
            "last_login_at": self.last_login_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
