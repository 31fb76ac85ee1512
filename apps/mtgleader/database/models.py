"""
SQLAlchemy ORM models for the MTG Leader match tracker.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mtgleader.database.db import Base


class UserStatus(str, enum.Enum):
    """User account status enum."""

    ACTIVE = "active"
    DISABLED = "disabled"


class FriendshipStatus(str, enum.Enum):
    """Friendship status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class MatchFormat(str, enum.Enum):
    """Supported game formats."""

    COMMANDER = "commander"
    BRAWL = "brawl"
    STANDARD = "standard"
    MODERN = "modern"


class Platform(str, enum.Enum):
    """Push notification platforms."""

    IOS = "ios"
    ANDROID = "android"


class User(Base):
    """User accounts.

    ``updated_at`` is the profile watermark clients echo back on profile
    writes, so it is only ever set explicitly by profile updates.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True)
    username = Column(String(24), nullable=False, unique=True)
    display_name = Column(String(48), nullable=False, default="", server_default="")
    avatar_path = Column(String(255), nullable=True)
    avatar_updated_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'disabled')", name="ck_users_status"),
    )


class AuthSession(Base):
    """Bearer-token sessions. Only the SHA-256 of the token is stored."""

    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_auth_sessions_user", "user_id"),)


class Friendship(Base):
    """Friend request / friendship between two users.

    ``pair_low_id``/``pair_high_id`` hold the unordered pair so the unique
    constraint covers both directions.
    """

    __tablename__ = "friendships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    addressee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pair_low_id = Column(Integer, nullable=False)
    pair_high_id = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=FriendshipStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    requester = relationship("User", foreign_keys=[requester_id])
    addressee = relationship("User", foreign_keys=[addressee_id])

    __table_args__ = (
        UniqueConstraint("pair_low_id", "pair_high_id", name="uq_friendships_pair"),
        CheckConstraint("requester_id <> addressee_id", name="ck_friendships_not_self"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'declined')", name="ck_friendships_status"
        ),
        Index("idx_friendships_addressee_status", "addressee_id", "status"),
        Index("idx_friendships_requester_status", "requester_id", "status"),
    )


class Match(Base):
    """A recorded game. Immutable once created."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    client_match_id = Column(String(128), nullable=True)
    format = Column(String(20), nullable=False, default=MatchFormat.COMMANDER.value)
    played_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    total_duration_seconds = Column(Integer, nullable=False, default=0)
    turn_count = Column(Integer, nullable=False, default=0)
    winner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    participants = relationship(
        "MatchParticipant",
        back_populates="match",
        order_by="MatchParticipant.seat_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("created_by", "client_match_id", name="uq_matches_creator_client_id"),
        CheckConstraint("total_duration_seconds >= 0", name="ck_matches_duration"),
        CheckConstraint("turn_count >= 0", name="ck_matches_turn_count"),
        Index("idx_matches_created_by", "created_by"),
    )


class MatchParticipant(Base):
    """One seat in a match: a registered user or a named guest."""

    __tablename__ = "match_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    seat_index = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    guest_name = Column(String(48), nullable=True)
    display_name = Column(String(48), nullable=False, default="")
    place = Column(Integer, nullable=False)
    eliminated_turn_number = Column(Integer, nullable=True)
    eliminated_during_seat_index = Column(Integer, nullable=True)
    total_turn_time_ms = Column(Integer, nullable=False, default=0)
    turns_taken = Column(Integer, nullable=False, default=0)

    match = relationship("Match", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("match_id", "seat_index", name="uq_match_participants_seat"),
        CheckConstraint("place >= 1", name="ck_match_participants_place"),
        Index("idx_match_participants_user", "user_id"),
    )


class NotificationToken(Base):
    """Push token. A token value belongs to whichever user registered it last."""

    __tablename__ = "notification_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(512), nullable=False, unique=True)
    platform = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("platform IN ('ios', 'android')", name="ck_notification_tokens_platform"),
        Index("idx_notification_tokens_user", "user_id"),
    )


class PasswordResetToken(Base):
    """Single-use password reset token. Only the SHA-256 hash is stored."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    sent_to_email = Column(String(320), nullable=False)
    created_by = Column(String(64), nullable=False, default="self")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_password_reset_tokens_user", "user_id"),)
