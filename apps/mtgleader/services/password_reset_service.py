"""
Password reset tokens.

The raw token is shown once (emailed or returned to an admin); only its
SHA-256 hex digest is stored. A token is consumed by a single conditional
write on ``used_at IS NULL``.
"""

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader import config
from mtgleader.database.models import PasswordResetToken, User, UserStatus
from mtgleader.services import auth_service, email_service, user_service
from mtgleader.services.errors import (
    NotFoundError,
    ResetTokenExpiredError,
    ResetTokenInvalidError,
    ValidationError,
)
from mtgleader.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

CREATED_BY_SELF = "self"
RESET_PATH = "/reset-password"


def new_reset_token():
    """Return (raw, sha256 hex) for a fresh 32-byte url-safe token."""
    raw = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")
    return raw, hash_reset_token(raw)


def hash_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def reset_url(raw: str) -> str:
    return f"{config.PUBLIC_URL}{RESET_PATH}?token={raw}"


async def create_reset_token(
    session: AsyncSession,
    user_id: int,
    sent_to_email: str,
    created_by: str = CREATED_BY_SELF,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Store a new reset token for the user.

    Args:
        session: Database session
        user_id: Account to reset
        sent_to_email: Address the link goes to
        created_by: "self" or "admin:<id>"
        now: Creation time (defaults to the current time)

    Returns:
        Dict with the raw ``token`` and ``expires_at``
    """
    now = now or utcnow()
    raw, token_hash = new_reset_token()
    expires_at = now + timedelta(minutes=config.PASSWORD_RESET_TTL_MINUTES)
    session.add(
        PasswordResetToken(
            user_id=user_id,
            token_hash=token_hash,
            sent_to_email=sent_to_email,
            created_by=created_by,
            created_at=now,
            expires_at=expires_at,
        )
    )
    await session.flush()
    return {"token": raw, "expires_at": expires_at}


async def request_reset(session: AsyncSession, email: str) -> None:
    """
    Email a reset link if the address belongs to an active account.

    Unknown or disabled addresses are accepted silently so the endpoint does
    not reveal which emails are registered.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError({"email": "required"})
    user = await user_service.get_user_by_email(session, email)
    if user is None or user.status != UserStatus.ACTIVE.value:
        logger.info("Password reset requested for unknown or disabled account")
        return

    created = await create_reset_token(session, user.id, user.email)
    sent = await email_service.send_password_reset_email(
        user.email, reset_url(created["token"]), config.PASSWORD_RESET_TTL_MINUTES
    )
    if not sent:
        logger.warning(f"Password reset email for user {user.id} was not delivered")


async def create_admin_reset_link(session: AsyncSession, admin_id: int, user_id: int) -> Dict:
    """
    Create a reset link on behalf of an admin.

    Raises:
        NotFoundError: User does not exist
    """
    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("user not found")
    created = await create_reset_token(session, user.id, user.email, created_by=f"admin:{admin_id}")
    logger.info(f"Admin {admin_id} created a password reset link for user {user.id}")
    return {"reset_url": reset_url(created["token"]), "expires_at": created["expires_at"]}


async def reset_password(
    session: AsyncSession, raw_token: str, new_password: str, now: Optional[datetime] = None
) -> None:
    """
    Consume a reset token and set a new password.

    Raises:
        ValidationError: Password too short
        ResetTokenInvalidError: Unknown or already used token
        ResetTokenExpiredError: Token past its expiry
    """
    if len(new_password or "") < auth_service.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            {"password": f"must be at least {auth_service.PASSWORD_MIN_LENGTH} characters"}
        )
    now = now or utcnow()
    token_hash = hash_reset_token((raw_token or "").strip())

    result = await session.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == token_hash)
    )
    token = result.scalar_one_or_none()
    if token is None or token.used_at is not None:
        raise ResetTokenInvalidError()
    if as_utc(token.expires_at) < now:
        raise ResetTokenExpiredError()

    consumed = await session.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.id == token.id, PasswordResetToken.used_at.is_(None))
        .values(used_at=now)
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount == 0:
        raise ResetTokenInvalidError()

    await session.execute(
        update(User)
        .where(User.id == token.user_id)
        .values(password_hash=auth_service.hash_password(new_password))
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Password reset completed for user {token.user_id}")
