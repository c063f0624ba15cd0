"""Google account linking.

``resolve_oauth_user`` decides which local account a Google identity maps
to. Lookups are injected, so the same logic runs against Cassandra in the
service and against plain mocks in tests; nothing is registered at import.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.auth.models import User
from src.auth.permissions import UserRole


GOOGLE_PROVIDER = "google"


class OAuthOutcome(str, Enum):
    UPDATED = "updated"  # already linked, refreshed
    LINKED = "linked"  # existing email account, Google attached
    CREATED = "created"  # new account


@dataclass(frozen=True)
class GoogleProfile:
    """Identity claims taken from a verified Google ID token."""

    google_id: str
    email: str
    name: str = ""
    avatar_url: str | None = None
    email_verified: bool = False

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "GoogleProfile":
        name = claims.get("name") or " ".join(
            part for part in (claims.get("given_name"), claims.get("family_name")) if part
        )
        return cls(
            google_id=str(claims["sub"]),
            email=(claims.get("email") or "").lower().strip(),
            name=name,
            avatar_url=claims.get("picture") or None,
            email_verified=bool(claims.get("email_verified", False)),
        )


@dataclass(frozen=True)
class OAuthResolution:
    user: User
    outcome: OAuthOutcome


ProviderLookup = Callable[[str], Awaitable[User | None]]


def _refresh(user: User, profile: GoogleProfile, now: datetime) -> None:
    if not user.avatar_url and profile.avatar_url:
        user.avatar_url = profile.avatar_url
    if profile.email_verified:
        user.is_email_verified = True
    user.last_login_at = now
    user.updated_at = now


async def resolve_oauth_user(
    profile: GoogleProfile,
    find_by_provider_id: ProviderLookup,
    find_by_email: ProviderLookup,
    now: datetime | None = None,
) -> OAuthResolution:
    """Map a Google profile onto a local user.

    1. A user already linked to this Google id is refreshed (``updated``).
    2. Otherwise a user with the same email gets the Google id attached
       (``linked``).
    3. Otherwise a new student account is created (``created``).

    The returned user is not persisted; the caller saves it.

    Raises:
        ValueError: If the profile has no email address.
    """
    now = now or datetime.now(UTC)

    user = await find_by_provider_id(profile.google_id)
    if user is not None:
        _refresh(user, profile, now)
        return OAuthResolution(user, OAuthOutcome.UPDATED)

    if not profile.email:
        msg = "Google profile has no email address"
        raise ValueError(msg)

    user = await find_by_email(profile.email)
    if user is not None:
        user.google_id = profile.google_id
        user.google_linked_at = now
        _refresh(user, profile, now)
        return OAuthResolution(user, OAuthOutcome.LINKED)

    user = User(
        email=profile.email,
        name=profile.name or profile.email.split("@")[0],
        avatar_url=profile.avatar_url,
        role=UserRole.STUDENT.value,
        is_email_verified=profile.email_verified,
        auth_provider=GOOGLE_PROVIDER,
        google_id=profile.google_id,
        google_linked_at=now,
        last_login_at=now,
        created_at=now,
        updated_at=now,
    )
    return OAuthResolution(user, OAuthOutcome.CREATED)
