"""
Pydantic models for API request validation.

Request models only check types. Range and consistency checks live in the
services so they produce field-level ``ValidationError``s in a fixed order.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Account registration."""

    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    """Login by username or email."""

    login: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class UpdateProfileRequest(BaseModel):
    """Display name change; ``updated_at`` is the client watermark."""

    display_name: str
    updated_at: Optional[str] = None


class FriendRequestCreate(BaseModel):
    username: str


class FriendActionRequest(BaseModel):
    """Optional watermark for accept/decline/cancel."""

    updated_at: Optional[str] = None


class MatchResultEntry(BaseModel):
    """One seat in a ranked result. Either ``user_id`` or ``guest_name``."""

    seat_index: Optional[int] = None
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    display_name: Optional[str] = None
    place: Optional[int] = None
    eliminated_turn_number: Optional[int] = None
    eliminated_during_seat_index: Optional[int] = None
    total_turn_time_ms: Optional[int] = None
    turns_taken: Optional[int] = None


class CreateMatchRequest(BaseModel):
    """
    Record a match.

    Send ``results`` for ranked seats (guests allowed), or the legacy
    ``player_ids`` plus ``winner_id``. ``client_ref`` is accepted as an
    alias of ``client_match_id``.
    """

    results: List[MatchResultEntry] = Field(default_factory=list)
    player_ids: List[int] = Field(default_factory=list)
    winner_id: Optional[int] = None
    format: Optional[str] = None
    client_match_id: Optional[str] = None
    client_ref: Optional[str] = None
    played_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    total_duration_seconds: Optional[int] = None
    turn_count: Optional[int] = None
    updated_at: Optional[str] = None


class NotificationTokenRequest(BaseModel):
    token: Optional[str] = None
    platform: Optional[str] = None


class NotificationTokenDelete(BaseModel):
    token: str


class AdminStatusRequest(BaseModel):
    """``status`` is "active" or "disabled"."""

    status: str
