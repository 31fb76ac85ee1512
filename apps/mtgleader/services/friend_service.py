"""
Friend service for managing friend requests and friendships.

Every state transition is a single conditional UPDATE whose affected-row
count decides the outcome; a follow-up read only classifies a miss as
NOT_FOUND or CONFLICT.
"""

import enum
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, delete, update, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.models import Friendship, FriendshipStatus, User, UserStatus
from mtgleader.services import notification_service
from mtgleader.services.errors import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    FriendshipExistsError,
)
from mtgleader.services.user_service import find_user_by_login, user_summary
from mtgleader.utils.datetime_utils import (
    as_utc,
    now_millis,
    to_unix_nanos,
    truncate_to_millis,
)

logger = logging.getLogger(__name__)


class FriendActionResult(str, enum.Enum):
    """Outcome of accept/decline/cancel."""

    APPLIED = "applied"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class ConnectionStatus(str, enum.Enum):
    """A friendship as seen from one user's side."""

    ACCEPTED = "accepted"
    INCOMING = "incoming"
    OUTGOING = "outgoing"


def _pair(a: int, b: int):
    return (a, b) if a < b else (b, a)


def _involves(user_id: int):
    return or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id)


async def create_request(
    session: AsyncSession,
    requester_id: int,
    addressee_username: str,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Send a friend request to the user with the given username (or email).

    Any declined row between the pair is purged first so a declined request
    can be re-sent.

    Args:
        session: Database session
        requester_id: User sending the request
        addressee_username: Username of the recipient
        now: Timestamp for the new row (defaults to the current time)

    Returns:
        Dict with the request id, the recipient summary and created_at

    Raises:
        ValidationError: Blank username or self-request
        NotFoundError: No such user
        ForbiddenError: Recipient is disabled
        FriendshipExistsError: A pending or accepted row already exists
    """
    username = (addressee_username or "").strip()
    if not username:
        raise ValidationError({"username": "required"})

    target = await find_user_by_login(session, username)
    if target is None:
        raise NotFoundError("user not found")
    if target.id == requester_id:
        raise ValidationError({"username": "cannot friend yourself"})
    if target.status == UserStatus.DISABLED.value:
        raise ForbiddenError("user is disabled")

    low, high = _pair(requester_id, target.id)
    now = truncate_to_millis(now) if now else now_millis()

    await session.execute(
        delete(Friendship)
        .where(
            Friendship.pair_low_id == low,
            Friendship.pair_high_id == high,
            Friendship.status == FriendshipStatus.DECLINED.value,
        )
        .execution_options(synchronize_session="fetch")
    )

    existing = await session.execute(
        select(Friendship.id).where(
            Friendship.pair_low_id == low, Friendship.pair_high_id == high
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise FriendshipExistsError()

    friendship = Friendship(
        requester_id=requester_id,
        addressee_id=target.id,
        pair_low_id=low,
        pair_high_id=high,
        status=FriendshipStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(friendship)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise FriendshipExistsError()

    try:
        await notification_service.notify_friend_request(
            session, friendship.id, requester_id, target.id
        )
    except Exception as e:
        logger.warning(f"Failed to send friend request notification: {e}")

    return {
        "id": friendship.id,
        "user": user_summary(target),
        "created_at": now,
    }


async def _transition(
    session: AsyncSession,
    request_id: int,
    party_column,
    party_id: int,
    new_status: FriendshipStatus,
    updated_at: Optional[datetime],
    now: Optional[datetime],
) -> FriendActionResult:
    now = truncate_to_millis(now) if now else now_millis()
    conditions = [
        Friendship.id == request_id,
        party_column == party_id,
        Friendship.status == FriendshipStatus.PENDING.value,
    ]
    if updated_at is not None:
        conditions.append(Friendship.updated_at < truncate_to_millis(updated_at))

    result = await session.execute(
        update(Friendship)
        .where(and_(*conditions))
        .values(status=new_status.value, responded_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return FriendActionResult.APPLIED

    # Zero rows: a row for this party that is no longer pending, or whose
    # watermark is newer than the caller's, is a conflict.
    row = await session.execute(
        select(Friendship.id).where(Friendship.id == request_id, party_column == party_id)
    )
    if row.scalar_one_or_none() is None:
        return FriendActionResult.NOT_FOUND
    return FriendActionResult.CONFLICT


async def accept_request(
    session: AsyncSession,
    addressee_id: int,
    request_id: int,
    updated_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> FriendActionResult:
    """
    Accept a pending request addressed to ``addressee_id``.

    Args:
        session: Database session
        addressee_id: The user accepting (must be the addressee)
        request_id: Friendship row id
        updated_at: Optional client watermark; the stored updated_at must be
            strictly older for the write to apply
        now: Transition time (defaults to the current time)

    Returns:
        APPLIED, CONFLICT (already resolved or stale watermark) or NOT_FOUND
    """
    return await _transition(
        session, request_id, Friendship.addressee_id, addressee_id,
        FriendshipStatus.ACCEPTED, updated_at, now,
    )


async def decline_request(
    session: AsyncSession,
    addressee_id: int,
    request_id: int,
    updated_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> FriendActionResult:
    """Decline a pending request addressed to ``addressee_id``."""
    return await _transition(
        session, request_id, Friendship.addressee_id, addressee_id,
        FriendshipStatus.DECLINED, updated_at, now,
    )


async def cancel_request(
    session: AsyncSession,
    requester_id: int,
    request_id: int,
    updated_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> FriendActionResult:
    """Withdraw a pending request sent by ``requester_id``. Stored as declined."""
    return await _transition(
        session, request_id, Friendship.requester_id, requester_id,
        FriendshipStatus.DECLINED, updated_at, now,
    )


async def remove_friend(session: AsyncSession, user_id: int, friend_id: int) -> None:
    """
    Delete the accepted friendship between two users.

    Raises:
        NotFoundError: If the users are not friends
    """
    low, high = _pair(user_id, friend_id)
    result = await session.execute(
        delete(Friendship)
        .where(
            Friendship.pair_low_id == low,
            Friendship.pair_high_id == high,
            Friendship.status == FriendshipStatus.ACCEPTED.value,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("friendship not found")


async def are_friends(session: AsyncSession, user_a: int, user_b: int) -> bool:
    """
    Check if two users have an accepted friendship.

    Args:
        session: Database session
        user_a: First user ID
        user_b: Second user ID

    Returns:
        True if the users are friends
    """
    low, high = _pair(user_a, user_b)
    result = await session.execute(
        select(Friendship.id).where(
            Friendship.pair_low_id == low,
            Friendship.pair_high_id == high,
            Friendship.status == FriendshipStatus.ACCEPTED.value,
        )
    )
    return result.scalar_one_or_none() is not None


async def list_overview(session: AsyncSession, user_id: int) -> Dict:
    """
    Friends plus pending requests in both directions.

    Returns:
        Dict with ``friends`` (user summaries, by username),
        ``incoming_requests`` and ``outgoing_requests`` (newest first)
    """
    result = await session.execute(
        select(Friendship)
        .where(_involves(user_id), Friendship.status != FriendshipStatus.DECLINED.value)
        .execution_options(populate_existing=True)
    )
    rows = result.scalars().all()

    other_ids = {
        row.addressee_id if row.requester_id == user_id else row.requester_id for row in rows
    }
    users = {}
    if other_ids:
        users_result = await session.execute(
            select(User).where(User.id.in_(other_ids)).execution_options(populate_existing=True)
        )
        users = {u.id: u for u in users_result.scalars().all()}

    friends, incoming, outgoing = [], [], []
    for row in rows:
        other = users.get(row.addressee_id if row.requester_id == user_id else row.requester_id)
        if other is None:
            continue
        if row.status == FriendshipStatus.ACCEPTED.value:
            friends.append((other, row))
        elif row.addressee_id == user_id:
            incoming.append((other, row))
        else:
            outgoing.append((other, row))

    friends.sort(key=lambda pair: pair[0].username)
    incoming.sort(key=lambda pair: as_utc(pair[1].created_at), reverse=True)
    outgoing.sort(key=lambda pair: as_utc(pair[1].created_at), reverse=True)

    return {
        "friends": [_format_connection(u, r, ConnectionStatus.ACCEPTED) for u, r in friends],
        "incoming_requests": [
            _format_connection(u, r, ConnectionStatus.INCOMING) for u, r in incoming
        ],
        "outgoing_requests": [
            _format_connection(u, r, ConnectionStatus.OUTGOING) for u, r in outgoing
        ],
    }


async def list_connections(session: AsyncSession, user_id: int) -> List[Dict]:
    """Accepted, then incoming, then outgoing, as one status-tagged list."""
    overview = await list_overview(session, user_id)
    return overview["friends"] + overview["incoming_requests"] + overview["outgoing_requests"]


async def latest_friendship_update(session: AsyncSession, user_id: int) -> Optional[datetime]:
    """Most recent ``updated_at`` over every friendship row touching the user."""
    result = await session.execute(
        select(func.max(Friendship.updated_at)).where(_involves(user_id))
    )
    return as_utc(result.scalar_one_or_none())


def connections_etag(user_id: int, connections: List[Dict], latest: Optional[datetime]) -> str:
    """
    Weak ETag over a user's connection list.

    Uses the newest timestamp among the latest friendship mutation and each
    connection's request and counterpart profile times.
    """
    newest = to_unix_nanos(latest)
    for conn in connections:
        for key in ("created_at", "updated_at"):
            newest = max(newest, to_unix_nanos(conn.get(key)))
        user = conn["user"]
        for key in ("updated_at", "avatar_updated_at"):
            newest = max(newest, to_unix_nanos(user.get(key)))
    return f'W/"friends-connections-{user_id}-{newest}"'


def _format_connection(user: User, row: Friendship, status: ConnectionStatus) -> Dict:
    """Format a friendship row from one side."""
    return {
        "status": status.value,
        "request_id": row.id if status != ConnectionStatus.ACCEPTED else None,
        "friendship_id": row.id,
        "user": user_summary(user),
        "created_at": as_utc(row.created_at),
        "updated_at": as_utc(row.updated_at),
    }
