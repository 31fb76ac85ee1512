"""Authentication route handlers."""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_bearer_token
from mtgleader.api.errors import error_response
from mtgleader.api.routes import limiter
from mtgleader.database.db import get_db_session
from mtgleader.models.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from mtgleader.services import auth_service, password_reset_service
from mtgleader.services.rate_limiting_service import login_key
from mtgleader.services.user_service import user_to_dict

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/auth/register", status_code=201)
@limiter.limit("10/minute")
async def register(
    request: Request, payload: RegisterRequest, session: AsyncSession = Depends(get_db_session)
):
    """Create an account and return a session token."""
    user, token = await auth_service.register(
        session, payload.email, payload.username, payload.password
    )
    return {"token": token, "user": user_to_dict(user)}


@router.post("/api/auth/login")
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """
    Log in with username or email.

    Attempts are counted per client IP and login in the application's
    sliding-window limiter; over the limit answers 429.
    """
    client_ip = request.client.host if request.client else ""
    if not request.app.state.login_limiter.allow(login_key(client_ip, payload.login)):
        logger.warning(f"Login rate limit exceeded for {client_ip}")
        return error_response(429, "rate_limited", "too many login attempts, try again later")

    user, token = await auth_service.login(session, payload.login, payload.password)
    return {"token": token, "user": user_to_dict(user)}


@router.post("/api/auth/logout", status_code=204)
async def logout(
    token: str = Depends(get_bearer_token),
    session: AsyncSession = Depends(get_db_session),
):
    await auth_service.logout(session, token)
    return Response(status_code=204)


@router.post("/api/auth/forgot", status_code=202)
@limiter.limit("5/minute")
async def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Email a reset link. Always accepted so registered addresses are not revealed."""
    await password_reset_service.request_reset(session, payload.email)
    return {"status": "accepted"}


@router.post("/api/auth/reset", status_code=204)
@limiter.limit("10/minute")
async def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    session: AsyncSession = Depends(get_db_session),
):
    await password_reset_service.reset_password(session, payload.token, payload.password)
    return Response(status_code=204)
