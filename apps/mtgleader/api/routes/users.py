"""User profile route handlers."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Header, Query, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_current_user
from mtgleader.api.routes import limiter, watermark_or_now
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.models.schemas import UpdateProfileRequest
from mtgleader.services import avatar_service, stats_service, user_service
from mtgleader.services.errors import NotFoundError
from mtgleader.services.user_service import ProfileUpdateResult
from mtgleader.utils.datetime_utils import now_millis, to_unix_nanos

logger = logging.getLogger(__name__)
router = APIRouter()


def user_etag(user: User) -> str:
    return f'W/"user:{user.id}:{to_unix_nanos(user.updated_at)}"'


async def _profile_response(
    session: AsyncSession, user_id: int, outcome: ProfileUpdateResult
) -> JSONResponse:
    """Current user, 200 for applied/noop and 409 for a conflict."""
    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("user not found")
    status_code = 409 if outcome == ProfileUpdateResult.CONFLICT else 200
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(user_service.user_to_dict(user)),
        headers={"ETag": user_etag(user)},
    )


@router.get("/api/users/me")
async def get_me(
    include_stats: bool = Query(False),
    if_none_match: Optional[str] = Header(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Get the current user.

    With ``include_stats`` the stats summary is embedded and the response is
    not cacheable. Otherwise the response carries an ETag and answers 304
    when ``If-None-Match`` matches it.
    """
    if include_stats:
        body = user_service.user_to_dict(current_user)
        body["stats_summary"] = await stats_service.summary(session, current_user.id)
        return JSONResponse(
            content=jsonable_encoder(body), headers={"Cache-Control": "no-store"}
        )

    etag = user_etag(current_user)
    headers = {"ETag": etag, "Cache-Control": "private, max-age=0"}
    if if_none_match and if_none_match.strip() == etag:
        return Response(status_code=304, headers=headers)
    return JSONResponse(
        content=jsonable_encoder(user_service.user_to_dict(current_user)), headers=headers
    )


@router.patch("/api/users/me")
async def update_me(
    payload: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set the display name. 409 with the current user when the watermark is stale."""
    outcome = await user_service.update_display_name(
        session, current_user.id, payload.display_name, watermark_or_now(payload.updated_at)
    )
    return await _profile_response(session, current_user.id, outcome)


@router.delete("/api/users/me", status_code=204)
async def delete_me(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete the current account. Already-deleted accounts also answer 204."""
    try:
        avatar_path = await user_service.delete_user(session, current_user.id)
    except NotFoundError:
        return Response(status_code=204)
    if avatar_path:
        avatar_service.remove_avatar(avatar_path)
    return Response(status_code=204)


@router.post("/api/users/me/avatar")
@limiter.limit("10/minute")
async def upload_avatar(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Upload or replace the current user's avatar image.

    Accepts JPEG, PNG, WebP or GIF images up to 5MB. The image is converted
    to RGB, center-cropped to square, resized to 512x512 and stored as JPEG.
    The stored file is removed again if the profile write conflicts.
    """
    file_bytes = await file.read()
    loop = asyncio.get_event_loop()
    processed_bytes = await loop.run_in_executor(
        None, avatar_service.normalize_avatar, file_bytes
    )

    stamp = now_millis()
    previous_path = current_user.avatar_path
    name = await loop.run_in_executor(
        None, avatar_service.save_avatar, current_user.id,
        int(stamp.timestamp() * 1000), processed_bytes,
    )

    try:
        outcome = await user_service.update_avatar(session, current_user.id, name, stamp)
    except Exception:
        avatar_service.remove_avatar(name)
        raise

    if outcome == ProfileUpdateResult.CONFLICT:
        avatar_service.remove_avatar(name)
    elif outcome == ProfileUpdateResult.APPLIED and previous_path and previous_path != name:
        avatar_service.remove_avatar(previous_path)
    return await _profile_response(session, current_user.id, outcome)


@router.get("/api/users/search")
async def search_users(
    q: str = Query(""),
    limit: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Find active users by username substring."""
    return await user_service.search_users(session, q, limit, current_user.id)
