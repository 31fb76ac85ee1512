"""Admin route handlers. Access is limited to ADMIN_EMAILS."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import require_admin
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User, UserStatus
from mtgleader.models.schemas import AdminStatusRequest
from mtgleader.services import password_reset_service, user_service
from mtgleader.services.errors import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/admin/users/{user_id}/reset-link")
async def create_reset_link(
    user_id: int,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a one-time password reset link the admin can pass on."""
    return await password_reset_service.create_admin_reset_link(session, admin.id, user_id)


@router.post("/api/admin/users/{user_id}/status")
async def set_user_status(
    user_id: int,
    payload: AdminStatusRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Enable or disable an account.

    Disabling revokes every session of the account. Admins cannot disable
    themselves.
    """
    try:
        status = UserStatus((payload.status or "").strip().lower())
    except ValueError:
        raise ValidationError({"status": "must be active or disabled"})
    if user_id == admin.id and status == UserStatus.DISABLED:
        raise ValidationError({"status": "cannot disable your own account"})

    user = await user_service.set_status(session, user_id, status)
    logger.info(f"Admin {admin.id} set user {user_id} to {status.value}")
    return user_service.user_to_dict(user)
