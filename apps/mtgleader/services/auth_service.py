"""
Authentication service: passwords, registration, login and bearer sessions.

Session tokens are opaque random strings handed to the client once; only
their SHA-256 digest is stored.
"""

import hashlib
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader import config
from mtgleader.database.models import AuthSession, User, UserStatus
from mtgleader.services import user_service
from mtgleader.services.errors import (
    EmailTakenError,
    ForbiddenError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserDisabledError,
    UsernameTakenError,
    ValidationError,
)
from mtgleader.utils.datetime_utils import as_utc, now_millis, utcnow

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,24}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 8
SESSION_TOKEN_BYTES = 32


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password
        password_hash: Hashed password

    Returns:
        True if password matches, False otherwise
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    """
    Trim and lowercase an email address.

    Raises:
        ValidationError: If the result is not a plausible address
    """
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError({"email": "must be a valid email address"})
    return email


def validate_registration(email: str, username: str, password: str) -> Tuple[str, str]:
    """Normalise and validate registration fields, collecting every failure."""
    fields = {}
    try:
        email = normalize_email(email)
    except ValidationError as e:
        fields.update(e.fields)
    username = (username or "").strip()
    if not USERNAME_RE.match(username):
        fields["username"] = "must be 3-24 letters, digits or underscores"
    if len(password or "") < PASSWORD_MIN_LENGTH:
        fields["password"] = f"must be at least {PASSWORD_MIN_LENGTH} characters"
    if fields:
        raise ValidationError(fields)
    return email, username


async def create_session(
    session: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> str:
    """
    Start a bearer session for the user.

    Returns:
        The raw session token (not stored)
    """
    now = now or utcnow()
    token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
    session.add(
        AuthSession(
            user_id=user_id,
            token_hash=hash_token(token),
            created_at=now,
            expires_at=now + timedelta(hours=config.SESSION_TTL_HOURS),
        )
    )
    await session.flush()
    return token


async def register(
    session: AsyncSession, email: str, username: str, password: str
) -> Tuple[User, str]:
    """
    Create an account and log it in.

    Args:
        session: Database session
        email: Email address (trimmed and lowercased)
        username: 3-24 characters of letters, digits or underscore
        password: At least 8 characters

    Returns:
        Tuple of (user, raw session token)

    Raises:
        ValidationError: Malformed fields
        EmailTakenError: Email already registered
        UsernameTakenError: Username already taken
    """
    email, username = validate_registration(email, username, password)

    if await user_service.get_user_by_email(session, email) is not None:
        raise EmailTakenError()
    existing = await session.execute(select(User.id).where(User.username == username))
    if existing.scalar_one_or_none() is not None:
        raise UsernameTakenError()

    now = now_millis()
    user = User(
        email=email,
        username=username,
        display_name="",
        status=UserStatus.ACTIVE.value,
        password_hash=hash_password(password),
        created_at=now,
        updated_at=now,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        if "email" in str(e.orig).lower():
            raise EmailTakenError()
        raise UsernameTakenError()

    token = await create_session(session, user.id)
    logger.info(f"Registered user {user.id} ({username})")
    return user, token


async def login(session: AsyncSession, login_name: str, password: str) -> Tuple[User, str]:
    """
    Authenticate by username or email and start a session.

    ``last_login_at`` is recorded; ``updated_at`` is left alone since it is
    the profile watermark.

    Raises:
        InvalidCredentialsError: Unknown login or wrong password
        UserDisabledError: Account disabled
    """
    user = await user_service.find_user_by_login(session, login_name)
    if user is None:
        raise InvalidCredentialsError()
    if user.status == UserStatus.DISABLED.value:
        raise UserDisabledError()
    if not verify_password(password or "", user.password_hash):
        raise InvalidCredentialsError()

    token = await create_session(session, user.id)
    await session.execute(
        update(User)
        .where(User.id == user.id)
        .values(last_login_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return user, token


async def logout(session: AsyncSession, token: str) -> None:
    """Revoke a session. Unknown tokens are ignored."""
    await session.execute(
        update(AuthSession)
        .where(AuthSession.token_hash == hash_token(token), AuthSession.revoked_at.is_(None))
        .values(revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )


async def get_user_for_session(session: AsyncSession, token: str) -> User:
    """
    Resolve a bearer token to its user.

    Raises:
        UnauthorizedError: Unknown, revoked or expired session
        ForbiddenError: The account is disabled
    """
    if not token:
        raise UnauthorizedError()
    result = await session.execute(
        select(AuthSession).where(AuthSession.token_hash == hash_token(token))
    )
    auth_session = result.scalar_one_or_none()
    if auth_session is None or auth_session.revoked_at is not None:
        raise UnauthorizedError()
    if as_utc(auth_session.expires_at) <= utcnow():
        raise UnauthorizedError("session expired")

    user = await user_service.get_user_by_id(session, auth_session.user_id)
    if user is None:
        raise UnauthorizedError()
    if user.status == UserStatus.DISABLED.value:
        raise ForbiddenError("user is disabled")
    return user
