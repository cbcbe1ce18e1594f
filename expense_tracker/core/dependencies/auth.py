"""
Authentication dependencies for FastAPI endpoints.

- Getting the login orchestrator built at start-up
- Extracting and validating JWT access tokens from requests
- Getting the current authenticated user

Example usage:
    from expense_tracker.core.dependencies.auth import CurrentUser

    @router.get("/me")
    async def get_profile(user: CurrentUser):
        return user
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.core.config import auth_logger
from expense_tracker.core.dependencies.db import get_async_session
from expense_tracker.core.db.models import User
from expense_tracker.core.exceptions.types import AuthenticationException
from expense_tracker.core.services.auth import LoginOrchestrator

# Missing credentials are reported by get_current_user, not by the scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_orchestrator(request: Request) -> LoginOrchestrator:
    """Return the orchestrator the application lifespan stored on ``app.state``."""
    return request.app.state.auth_orchestrator


AuthOrchestrator = Annotated[LoginOrchestrator, Depends(get_auth_orchestrator)]


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    orchestrator: AuthOrchestrator,
) -> User:
    """
    Extract and validate the JWT access token from the Authorization header.

    This dependency:
    1. Extracts the Bearer token from the Authorization header
    2. Decodes and validates the JWT token
    3. Fetches the active user from the database

    Returns:
        User: The authenticated user object.

    Raises:
        AuthenticationException: 401 if the token is missing or the user no longer exists.
        InvalidTokenException: 401 if the token is malformed or not an access token.
        TokenExpiredException: 401 if the token has expired.

    Example:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": str(user.id)}
    """
    if credentials is None:
        raise AuthenticationException("Missing access token.")

    user_id = orchestrator.token_issuer.decode_access_token(credentials.credentials)

    user = await orchestrator.users.get_active_by_id(session, user_id)
    if user is None:
        auth_logger.warning(f"Authentication failed: user not found or deleted {user_id}")
        raise AuthenticationException("User not found.")

    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
DBSession = Annotated[AsyncSession, Depends(get_async_session)]


__all__ = [
    "get_auth_orchestrator",
    "get_current_user",
    "AuthOrchestrator",
    "CurrentUser",
    "DBSession",
    "bearer_scheme",
]
