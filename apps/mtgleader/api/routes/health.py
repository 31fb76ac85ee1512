"""Health check route."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.db import get_db_session

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health")
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Health check endpoint.

    Returns:
        dict: Service status, plus ``database`` when the database is unreachable
    """
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        return {"status": "degraded", "database": "unreachable"}
    return {"status": "ok"}
