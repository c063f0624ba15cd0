"""Authentication module.

Provides:
- JWT access tokens and role-based permissions
- Google sign-in with account linking

Note: Router is not exported here to avoid circular imports.
Import directly from src.auth.router when needed.
"""

from .oauth import GoogleProfile, OAuthOutcome, resolve_oauth_user
from .permissions import UserRole
from .service import AuthService


__all__ = [
    "AuthService",
    "GoogleProfile",
    "OAuthOutcome",
    "UserRole",
    "resolve_oauth_user",
]
