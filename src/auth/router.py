"""Authentication API endpoints.

Provides routes for:
- Google sign-in
- Current user profile
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.auth.dependencies import CurrentUser
from src.auth.schemas import GoogleSignInRequest, GoogleSignInResponse, UserResponse
from src.auth.service import AuthError, AuthService
from src.core.schemas import ApiResponse


router = APIRouter(prefix="/v1/auth", tags=["auth"])


# ==============================================================================
# Dependency for AuthService
# ==============================================================================


async def get_auth_service(request: Request) -> AuthService:
    """Get AuthService from app state.

    Raises:
        HTTPException 503: When the service was not initialised (no database).
    """
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Auth service unavailable",
        )
    return service


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# ==============================================================================
# Error Handling
# ==============================================================================


def handle_auth_error(error: AuthError) -> HTTPException:
    """Convert AuthError to HTTPException."""
    status_map = {
        "invalid_token": status.HTTP_401_UNAUTHORIZED,
        "user_inactive": status.HTTP_403_FORBIDDEN,
        "oauth_profile_invalid": status.HTTP_400_BAD_REQUEST,
        "oauth_not_configured": status.HTTP_503_SERVICE_UNAVAILABLE,
        "auth_error": status.HTTP_400_BAD_REQUEST,
    }
    headers = (
        {"WWW-Authenticate": "Bearer"} if error.code == "invalid_token" else None
    )
    return HTTPException(
        status_code=status_map.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=error.message,
        headers=headers,
    )


# ==============================================================================
# Endpoints
# ==============================================================================


@router.post(
    "/oauth/google",
    response_model=ApiResponse[GoogleSignInResponse],
    summary="Sign in with Google",
    responses={
        401: {"description": "Invalid Google ID token"},
        403: {"description": "Account is inactive"},
        503: {"description": "Google sign-in not configured"},
    },
)
async def google_sign_in(
    data: GoogleSignInRequest,
    auth_service: AuthServiceDep,
) -> ApiResponse[GoogleSignInResponse]:
    """Exchange a Google ID token for an access token.

    Links the Google account to an existing user with the same email or
    creates a new student account.
    """
    try:
        result = await auth_service.sign_in_with_google(data.id_token)
    except AuthError as e:
        raise handle_auth_error(e) from e
    return ApiResponse[GoogleSignInResponse](data=result)


@router.get(
    "/me",
    response_model=ApiResponse[UserResponse],
    summary="Get current user",
)
async def get_me(
    current_user: CurrentUser,
    auth_service: AuthServiceDep,
) -> ApiResponse[UserResponse]:
    """Return the stored profile of the authenticated user."""
    user = await auth_service.get_user_by_id(current_user.id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )
    return ApiResponse[UserResponse](data=auth_service.to_response(user))
