"""
User service: lookups, formatting and the profile update engine.

Profile writes are conditional on the stored ``updated_at`` being strictly
older than the caller's watermark. A write that does not apply is a NOOP
when the stored row already holds exactly the requested state, and a
CONFLICT otherwise.
"""

import enum
import logging
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import quote

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.models import (
    AuthSession,
    Friendship,
    Match,
    MatchParticipant,
    NotificationToken,
    PasswordResetToken,
    User,
    UserStatus,
)
from mtgleader.services.errors import NotFoundError, ValidationError
from mtgleader.utils.datetime_utils import as_utc, format_updated_at, truncate_to_millis

logger = logging.getLogger(__name__)

DISPLAY_NAME_MAX_LENGTH = 48
DEFAULT_AVATAR_URL = "/static/default-avatar.png"
AVATAR_URL_PREFIX = "/avatars/"
SEARCH_MIN_QUERY_LENGTH = 3
SEARCH_DEFAULT_LIMIT = 20
SEARCH_MAX_LIMIT = 50


class ProfileUpdateResult(str, enum.Enum):
    """Outcome of a profile write."""

    APPLIED = "applied"
    NOOP = "noop"
    CONFLICT = "conflict"


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """
    Get a user by ID, bypassing any stale identity-map copy.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User or None if not found
    """
    result = await session.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_user_by_login(session: AsyncSession, login: str) -> Optional[User]:
    """
    Resolve a login string to a user.

    An exact username match wins over an email match.

    Args:
        session: Database session
        login: Username or email

    Returns:
        User or None
    """
    login = (login or "").strip()
    if not login:
        return None
    result = await session.execute(
        select(User).where(
            or_(User.username == login, func.lower(User.email) == login.lower())
        ).execution_options(populate_existing=True)
    )
    users = result.scalars().all()
    for user in users:
        if user.username == login:
            return user
    return users[0] if users else None


def avatar_url(user: User) -> str:
    """Public URL of the user's avatar, cache-busted by its update time."""
    if not user.avatar_path:
        return DEFAULT_AVATAR_URL
    stamp = as_utc(user.avatar_updated_at or user.updated_at)
    url = AVATAR_URL_PREFIX + quote(user.avatar_path)
    if stamp is None:
        return url
    return f"{url}?v={int(stamp.timestamp())}"


def user_summary(user: User) -> Dict:
    """Public subset of a user used in friend and match payloads."""
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name or "",
        "avatar_url": avatar_url(user),
        "updated_at": as_utc(user.updated_at),
        "avatar_updated_at": as_utc(user.avatar_updated_at),
    }


def user_to_dict(user: User) -> Dict:
    """Full representation of the current user."""
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "display_name": user.display_name or "",
        "avatar_path": user.avatar_path or "",
        "avatar_url": avatar_url(user),
        "avatar_updated_at": format_updated_at(user.avatar_updated_at),
        "status": user.status,
        "created_at": as_utc(user.created_at),
        "updated_at": format_updated_at(user.updated_at),
    }


def validate_display_name(display_name: Optional[str]) -> str:
    """
    Trim and validate a display name. Empty clears the name.

    Raises:
        ValidationError: Too long or contains control characters
    """
    display_name = (display_name or "").strip()
    if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
        raise ValidationError(
            {"display_name": f"must be {DISPLAY_NAME_MAX_LENGTH} characters or less"}
        )
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in display_name):
        raise ValidationError({"display_name": "contains invalid characters"})
    return display_name


async def _classify_miss(
    session: AsyncSession, user_id: int, field: str, value: str, updated_at: datetime
) -> ProfileUpdateResult:
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("user not found")
    if getattr(user, field) == value and as_utc(user.updated_at) == updated_at:
        return ProfileUpdateResult.NOOP
    return ProfileUpdateResult.CONFLICT


async def update_display_name(
    session: AsyncSession, user_id: int, display_name: str, updated_at: datetime
) -> ProfileUpdateResult:
    """
    Set the display name if the caller's watermark is newer than the stored one.

    Args:
        session: Database session
        user_id: User ID
        display_name: New name (trimmed; empty clears it)
        updated_at: Client watermark, stored as the new updated_at on success

    Returns:
        APPLIED, NOOP (identical retry) or CONFLICT

    Raises:
        ValidationError: Invalid display name
        NotFoundError: User does not exist
    """
    display_name = validate_display_name(display_name)
    updated_at = truncate_to_millis(updated_at)

    result = await session.execute(
        update(User)
        .where(User.id == user_id, User.updated_at < updated_at)
        .values(display_name=display_name, updated_at=updated_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return ProfileUpdateResult.APPLIED
    return await _classify_miss(session, user_id, "display_name", display_name, updated_at)


async def update_avatar(
    session: AsyncSession, user_id: int, avatar_path: str, updated_at: datetime
) -> ProfileUpdateResult:
    """
    Point the user's avatar at ``avatar_path`` under the same watermark rules
    as ``update_display_name``. Also stamps ``avatar_updated_at``.
    """
    avatar_path = (avatar_path or "").strip()
    if not avatar_path:
        raise ValidationError({"avatar": "file is required"})
    updated_at = truncate_to_millis(updated_at)

    result = await session.execute(
        update(User)
        .where(User.id == user_id, User.updated_at < updated_at)
        .values(avatar_path=avatar_path, avatar_updated_at=updated_at, updated_at=updated_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return ProfileUpdateResult.APPLIED
    return await _classify_miss(session, user_id, "avatar_path", avatar_path, updated_at)


async def search_users(
    session: AsyncSession, query: str, limit: Optional[int], exclude_user_id: int
) -> List[Dict]:
    """
    Find active users whose username contains ``query`` (case-insensitive).

    Raises:
        ValidationError: Query shorter than three characters
    """
    query = (query or "").strip()
    if len(query) < SEARCH_MIN_QUERY_LENGTH:
        raise ValidationError({"q": f"must be at least {SEARCH_MIN_QUERY_LENGTH} characters"})
    if limit is None or limit <= 0 or limit > SEARCH_MAX_LIMIT:
        limit = SEARCH_DEFAULT_LIMIT

    result = await session.execute(
        select(User)
        .where(
            User.username.ilike(f"%{query}%"),
            User.id != exclude_user_id,
            User.status == UserStatus.ACTIVE.value,
        )
        .order_by(User.username.asc())
        .limit(limit)
    )
    return [
        {
            "id": u.id,
            "username": u.username,
            "display_name": u.display_name or "",
            "avatar_url": avatar_url(u),
        }
        for u in result.scalars().all()
    ]


async def set_status(session: AsyncSession, user_id: int, status: UserStatus) -> User:
    """
    Enable or disable an account. Disabling revokes every session.

    Raises:
        NotFoundError: User does not exist
    """
    result = await session.execute(
        update(User)
        .where(User.id == user_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("user not found")
    if status == UserStatus.DISABLED:
        await session.execute(
            delete(AuthSession)
            .where(AuthSession.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
    logger.info(f"User {user_id} status set to {status.value}")
    return await get_user_by_id(session, user_id)


async def delete_user(session: AsyncSession, user_id: int) -> Optional[str]:
    """
    Delete an account and everything that only makes sense with it.

    Matches stay on record: participant seats become guest seats under
    their display name, and created matches lose their creator.

    Returns:
        The removed avatar path (so the caller can delete the file), or None

    Raises:
        NotFoundError: User does not exist
    """
    user = await get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("user not found")
    avatar_path = user.avatar_path

    for model, column in (
        (AuthSession, AuthSession.user_id),
        (NotificationToken, NotificationToken.user_id),
        (PasswordResetToken, PasswordResetToken.user_id),
    ):
        await session.execute(
            delete(model).where(column == user_id).execution_options(synchronize_session=False)
        )
    await session.execute(
        delete(Friendship)
        .where(or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(MatchParticipant)
        .where(MatchParticipant.user_id == user_id)
        .values(user_id=None, guest_name=MatchParticipant.display_name)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Match)
        .where(Match.created_by == user_id)
        .values(created_by=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(Match)
        .where(Match.winner_id == user_id)
        .values(winner_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(User).where(User.id == user_id).execution_options(synchronize_session=False)
    )
    logger.info(f"Deleted user {user_id}")
    return avatar_path
