"""Stats route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_current_user
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.services import stats_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/stats/summary")
async def get_summary(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Win/loss totals, per-format breakdown and rivals for the current user."""
    return await stats_service.summary(session, current_user.id)


@router.get("/api/stats/head-to-head/{user_id}")
async def get_head_to_head(
    user_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return await stats_service.head_to_head(session, current_user.id, user_id)
