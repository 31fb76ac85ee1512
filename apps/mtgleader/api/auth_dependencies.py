"""
Authentication dependencies for FastAPI routes.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader import config
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.services import auth_service
from mtgleader.services.errors import ForbiddenError, UnauthorizedError

security = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract the raw bearer token.

    Raises:
        UnauthorizedError: No ``Authorization: Bearer`` header
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("missing bearer token")
    return credentials.credentials


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    token: str = Depends(get_bearer_token),
) -> User:
    """
    Dependency to get the current authenticated user from the session token.

    Args:
        session: Database session
        token: Raw bearer token

    Returns:
        User row

    Raises:
        UnauthorizedError: Unknown, revoked or expired session
        ForbiddenError: Disabled account
    """
    return await auth_service.get_user_for_session(session, token)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require an authenticated user whose email is listed in ADMIN_EMAILS."""
    if not config.is_admin_email(user.email):
        raise ForbiddenError("admin access required")
    return user
