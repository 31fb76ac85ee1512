"""Match route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_current_user
from mtgleader.api.routes import watermark_or_none
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.models.schemas import CreateMatchRequest
from mtgleader.services import match_service, stats_service
from mtgleader.services.errors import ValidationError
from mtgleader.services.match_service import MatchCreateResult, normalize_client_match_id
from mtgleader.utils.datetime_utils import as_utc, now_millis, truncate_to_millis

logger = logging.getLogger(__name__)
router = APIRouter()


def resolve_match_request(payload: CreateMatchRequest) -> CreateMatchRequest:
    """
    Fold ``client_ref`` into ``client_match_id`` and derive the duration.

    Raises:
        ValidationError: ``client_ref`` and ``client_match_id`` disagree
    """
    client_match_id = normalize_client_match_id(payload.client_match_id)
    client_ref = normalize_client_match_id(payload.client_ref)
    if client_match_id and client_ref and client_match_id != client_ref:
        raise ValidationError({"client_ref": "must match client_match_id"})

    updates = {"client_match_id": client_match_id or client_ref}
    if payload.total_duration_seconds is None and payload.started_at and payload.ended_at:
        elapsed = as_utc(payload.ended_at) - as_utc(payload.started_at)
        updates["total_duration_seconds"] = int(elapsed.total_seconds())
    return payload.model_copy(update=updates)


@router.post("/api/matches", status_code=201)
async def create_match(
    payload: CreateMatchRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Record a match.

    Returns 201 with the new match and the creator's refreshed stats, or
    409 with the stored match when ``client_match_id`` was already used.
    """
    request = resolve_match_request(payload)
    updated_at = watermark_or_none(request.updated_at)
    if updated_at is None:
        updated_at = truncate_to_millis(request.ended_at) if request.ended_at else now_millis()

    try:
        match, outcome = await match_service.create_match(
            session, current_user.id, request, updated_at
        )
    except ValidationError as e:
        logger.warning(f"Rejected match from user {current_user.id}: {e.fields}")
        raise
    if outcome == MatchCreateResult.CONFLICT:
        return JSONResponse(
            status_code=409,
            content=jsonable_encoder({"match_id": match["id"], "match": match}),
        )

    stats_summary = await stats_service.summary(session, current_user.id)
    return JSONResponse(
        status_code=201,
        content=jsonable_encoder(
            {"match_id": match["id"], "match": match, "stats_summary": stats_summary}
        ),
    )


@router.get("/api/matches")
async def list_matches(
    limit: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Matches the current user created or played in, newest first."""
    return await match_service.list_matches(session, current_user.id, limit)


@router.get("/api/matches/{match_id}")
async def get_match(
    match_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    return await match_service.get_match(session, current_user.id, match_id)
