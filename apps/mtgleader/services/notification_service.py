"""
Notification service: device token registry and friend-request pushes.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.models import NotificationToken, Platform, User
from mtgleader.services import push_service
from mtgleader.services.errors import ValidationError
from mtgleader.utils.datetime_utils import now_millis, truncate_to_millis

logger = logging.getLogger(__name__)

FRIEND_REQUEST_TITLE = "Friend request"


async def register_token(
    session: AsyncSession,
    user_id: int,
    token: str,
    platform: str,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Register a device token for the user, taking it over from any previous owner.

    Args:
        session: Database session
        user_id: Owning user
        token: Push token string
        platform: "ios" or "android" (case-insensitive)
        now: Registration time (defaults to the current time)

    Returns:
        Dict with token, platform and timestamps

    Raises:
        ValidationError: Missing token/platform or unknown platform
    """
    token = (token or "").strip()
    platform = (platform or "").strip().lower()
    if not token or not platform:
        raise ValidationError({"token": "required", "platform": "required"})
    if platform not in {p.value for p in Platform}:
        raise ValidationError({"platform": "must be ios or android"})
    now = truncate_to_millis(now) if now else now_millis()

    result = await session.execute(
        update(NotificationToken)
        .where(NotificationToken.token == token)
        .values(user_id=user_id, platform=platform, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.add(
            NotificationToken(
                user_id=user_id, token=token, platform=platform, created_at=now, updated_at=now
            )
        )
        await session.flush()

    return {"token": token, "platform": platform, "user_id": user_id, "updated_at": now}


async def delete_token(session: AsyncSession, user_id: int, token: str) -> bool:
    """Forget one of the user's tokens. Returns True if a row was removed."""
    token = (token or "").strip()
    if not token:
        raise ValidationError({"token": "required"})
    result = await session.execute(
        delete(NotificationToken)
        .where(NotificationToken.user_id == user_id, NotificationToken.token == token)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def list_tokens(session: AsyncSession, user_id: int) -> List[NotificationToken]:
    result = await session.execute(
        select(NotificationToken)
        .where(NotificationToken.user_id == user_id)
        .order_by(NotificationToken.id)
    )
    return list(result.scalars().all())


async def notify_friend_request(
    session: AsyncSession,
    request_id: int,
    requester_id: int,
    addressee_id: int,
    sender: Optional[push_service.FCMSender] = None,
) -> None:
    """
    Push a friend request to every device of the addressee.

    iOS devices get a visible alert; Android devices get data only and
    render it themselves. Tokens FCM reports as invalid are deleted; other
    send failures are logged and skipped.
    """
    sender = sender or push_service.get_sender()
    if sender is None:
        logger.debug("Push sender not configured, skipping friend request notification")
        return

    tokens = await list_tokens(session, addressee_id)
    if not tokens:
        return

    requester = await session.get(User, requester_id)
    if requester is None:
        logger.warning(f"Friend request {request_id}: requester {requester_id} not found")
        return

    display = (requester.display_name or "").strip() or requester.username
    data = {
        "type": "friend_request",
        "display_name": display,
        "username": requester.username,
        "request_id": str(request_id),
    }
    body = f"{display} sent you a friend request."

    for device in tokens:
        try:
            if device.platform == Platform.IOS.value:
                await sender.send(device.token, data, title=FRIEND_REQUEST_TITLE, body=body)
            else:
                await sender.send(device.token, data)
        except push_service.InvalidTokenError:
            logger.info(f"Removing invalid push token for user {addressee_id}")
            await delete_token(session, addressee_id, device.token)
        except Exception as e:
            logger.error(f"Failed to push friend request to user {addressee_id}: {e}")
