"""Push notification token route handlers."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_current_user
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.models.schemas import NotificationTokenDelete, NotificationTokenRequest
from mtgleader.services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/notifications/token", status_code=204)
async def register_token(
    payload: NotificationTokenRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Register (or take over) a device token for push notifications."""
    await notification_service.register_token(
        session, current_user.id, payload.token, payload.platform
    )
    return Response(status_code=204)


@router.delete("/api/notifications/token", status_code=204)
async def delete_token(
    payload: NotificationTokenDelete,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Forget a device token. Unknown tokens are ignored."""
    removed = await notification_service.delete_token(session, current_user.id, payload.token)
    if not removed:
        logger.debug(f"Token delete for user {current_user.id} matched nothing")
    return Response(status_code=204)
