"""Friend system route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.api.auth_dependencies import get_current_user
from mtgleader.api.routes import watermark_or_none
from mtgleader.database.db import get_db_session
from mtgleader.database.models import User
from mtgleader.models.schemas import FriendActionRequest, FriendRequestCreate
from mtgleader.services import friend_service
from mtgleader.services.errors import NotFoundError
from mtgleader.services.friend_service import FriendActionResult

logger = logging.getLogger(__name__)
router = APIRouter()

CACHE_CONTROL = "private, max-age=0"


async def _connections_response(
    session: AsyncSession,
    user_id: int,
    status_code: int = 200,
    if_none_match: Optional[str] = None,
) -> Response:
    """The user's connection list with its ETag; 304 if the client already has it."""
    latest = await friend_service.latest_friendship_update(session, user_id)
    connections = await friend_service.list_connections(session, user_id)
    etag = friend_service.connections_etag(user_id, connections, latest)
    headers = {"ETag": etag, "Cache-Control": CACHE_CONTROL}
    if status_code == 200 and if_none_match and if_none_match.strip() == etag:
        return Response(status_code=304, headers=headers)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"connections": connections}),
        headers=headers,
    )


@router.get("/api/friends")
async def get_friends(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Friends plus incoming and outgoing pending requests."""
    return await friend_service.list_overview(session, current_user.id)


@router.get("/api/friends/connections")
async def get_connections(
    if_none_match: Optional[str] = Header(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Status-tagged connection list, honouring If-None-Match."""
    return await _connections_response(session, current_user.id, if_none_match=if_none_match)


@router.post("/api/friends/requests", status_code=201)
async def send_friend_request(
    payload: FriendRequestCreate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a friend request by username (or email)."""
    return await friend_service.create_request(session, current_user.id, payload.username)


async def _respond_to_transition(
    session: AsyncSession, user_id: int, outcome: FriendActionResult
) -> Response:
    if outcome == FriendActionResult.APPLIED:
        return Response(status_code=204)
    if outcome == FriendActionResult.CONFLICT:
        return await _connections_response(session, user_id, status_code=409)
    raise NotFoundError("friend request not found")


@router.post("/api/friends/requests/{request_id}/accept", status_code=204)
async def accept_friend_request(
    request_id: int,
    payload: Optional[FriendActionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pending request. 409 carries the caller's current connections."""
    updated_at = watermark_or_none(payload.updated_at if payload else None)
    outcome = await friend_service.accept_request(
        session, current_user.id, request_id, updated_at=updated_at
    )
    return await _respond_to_transition(session, current_user.id, outcome)


@router.post("/api/friends/requests/{request_id}/decline", status_code=204)
async def decline_friend_request(
    request_id: int,
    payload: Optional[FriendActionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    updated_at = watermark_or_none(payload.updated_at if payload else None)
    outcome = await friend_service.decline_request(
        session, current_user.id, request_id, updated_at=updated_at
    )
    return await _respond_to_transition(session, current_user.id, outcome)


@router.post("/api/friends/requests/{request_id}/cancel", status_code=204)
async def cancel_friend_request(
    request_id: int,
    payload: Optional[FriendActionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Withdraw an outgoing request."""
    updated_at = watermark_or_none(payload.updated_at if payload else None)
    outcome = await friend_service.cancel_request(
        session, current_user.id, request_id, updated_at=updated_at
    )
    return await _respond_to_transition(session, current_user.id, outcome)


@router.delete("/api/friends/{user_id}", status_code=204)
async def remove_friend(
    user_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a friend (unfriend)."""
    await friend_service.remove_friend(session, current_user.id, user_id)
    return Response(status_code=204)
