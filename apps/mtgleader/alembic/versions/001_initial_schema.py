"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

Creates users, auth_sessions, friendships, matches, match_participants,
notification_tokens and password_reset_tokens.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = True, default_now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if default_now else None,
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('username', sa.String(24), nullable=False, unique=True),
        sa.Column('display_name', sa.String(48), nullable=False, server_default=''),
        sa.Column('avatar_path', sa.String(255), nullable=True),
        _ts('avatar_updated_at'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('password_hash', sa.String(), nullable=False),
        _ts('created_at', default_now=True),
        _ts('updated_at', nullable=False, default_now=True),
        _ts('last_login_at'),
        sa.CheckConstraint("status IN ('active', 'disabled')", name='ck_users_status'),
    )

    op.create_table(
        'auth_sessions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        _ts('created_at', default_now=True),
        _ts('expires_at', nullable=False),
        _ts('revoked_at'),
    )
    op.create_index('idx_auth_sessions_user', 'auth_sessions', ['user_id'])

    op.create_table(
        'friendships',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('addressee_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pair_low_id', sa.Integer(), nullable=False),
        sa.Column('pair_high_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        _ts('created_at', nullable=False, default_now=True),
        _ts('updated_at', nullable=False, default_now=True),
        _ts('responded_at'),
        sa.UniqueConstraint('pair_low_id', 'pair_high_id', name='uq_friendships_pair'),
        sa.CheckConstraint('requester_id <> addressee_id', name='ck_friendships_not_self'),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined')", name='ck_friendships_status'
        ),
    )
    op.create_index('idx_friendships_addressee_status', 'friendships', ['addressee_id', 'status'])
    op.create_index('idx_friendships_requester_status', 'friendships', ['requester_id', 'status'])

    op.create_table(
        'matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('client_match_id', sa.String(128), nullable=True),
        sa.Column('format', sa.String(20), nullable=False, server_default='commander'),
        _ts('played_at'),
        _ts('started_at'),
        _ts('ended_at'),
        sa.Column('total_duration_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('turn_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _ts('created_at', nullable=False, default_now=True),
        _ts('updated_at', nullable=False, default_now=True),
        sa.UniqueConstraint('created_by', 'client_match_id', name='uq_matches_creator_client_id'),
        sa.CheckConstraint('total_duration_seconds >= 0', name='ck_matches_duration'),
        sa.CheckConstraint('turn_count >= 0', name='ck_matches_turn_count'),
    )
    op.create_index('idx_matches_created_by', 'matches', ['created_by'])

    op.create_table(
        'match_participants',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seat_index', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('guest_name', sa.String(48), nullable=True),
        sa.Column('display_name', sa.String(48), nullable=False, server_default=''),
        sa.Column('place', sa.Integer(), nullable=False),
        sa.Column('eliminated_turn_number', sa.Integer(), nullable=True),
        sa.Column('eliminated_during_seat_index', sa.Integer(), nullable=True),
        sa.Column('total_turn_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('turns_taken', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('match_id', 'seat_index', name='uq_match_participants_seat'),
        sa.CheckConstraint('place >= 1', name='ck_match_participants_place'),
    )
    op.create_index('idx_match_participants_user', 'match_participants', ['user_id'])

    op.create_table(
        'notification_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(512), nullable=False, unique=True),
        sa.Column('platform', sa.String(20), nullable=False),
        _ts('created_at', nullable=False, default_now=True),
        _ts('updated_at', nullable=False, default_now=True),
        sa.CheckConstraint("platform IN ('ios', 'android')", name='ck_notification_tokens_platform'),
    )
    op.create_index('idx_notification_tokens_user', 'notification_tokens', ['user_id'])

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('sent_to_email', sa.String(320), nullable=False),
        sa.Column('created_by', sa.String(64), nullable=False, server_default='self'),
        _ts('created_at', nullable=False, default_now=True),
        _ts('expires_at', nullable=False),
        _ts('used_at'),
    )
    op.create_index('idx_password_reset_tokens_user', 'password_reset_tokens', ['user_id'])


def downgrade() -> None:
    for table in (
        'password_reset_tokens',
        'notification_tokens',
        'match_participants',
        'matches',
        'friendships',
        'auth_sessions',
        'users',
    ):
        op.drop_table(table)
