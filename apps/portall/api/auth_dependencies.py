"""
Authentication and role dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from portall.services import auth_service, user_service
from portall.database.db import get_db_session
from portall.database.models import UserType

security = HTTPBearer()


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from an access token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary (with "profile")

    Raises:
        HTTPException: 401 if the token is invalid or the user no longer exists
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_active_user(user: dict = Depends(get_current_user)) -> dict:
    """Require an authenticated account that an admin has approved."""
    if not user.get("is_active"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account pending approval",
        )
    return user


def require_user_type(*user_types: UserType):
    """
    Build a dependency that admits active users of the given types only.

    Usage:
        @router.get("/dashboard")
        async def dashboard(user: dict = Depends(require_user_type(UserType.PLAYER))):
    """
    allowed = {UserType(t).value for t in user_types}

    async def dependency(user: dict = Depends(require_active_user)) -> dict:
        if user.get("user_type") not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access restricted to: {', '.join(sorted(allowed))}",
            )
        return user

    return dependency


require_player = require_user_type(UserType.PLAYER)
require_coach = require_user_type(UserType.COACH)
require_njcaa_coach = require_user_type(UserType.NJCAA_COACH)
require_admin = require_user_type(UserType.ADMIN)
require_recruiter = require_user_type(UserType.COACH, UserType.NJCAA_COACH, UserType.ADMIN)
require_subscriber = require_user_type(UserType.COACH, UserType.PLAYER)
