"""
Unit tests for user service: profile writes, search, status and deletion.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from conftest import BASE_TIME, create_user
from mtgleader.database.models import (
    AuthSession,
    Friendship,
    MatchParticipant,
    User,
    UserStatus,
)
from mtgleader.models.schemas import CreateMatchRequest, MatchResultEntry
from mtgleader.services import auth_service, friend_service, match_service, user_service
from mtgleader.services.errors import NotFoundError, ValidationError
from mtgleader.services.user_service import ProfileUpdateResult

T1 = BASE_TIME + timedelta(hours=1)
T2 = BASE_TIME + timedelta(hours=2)


async def _reload(session, user_id):
    return await user_service.get_user_by_id(session, user_id)


# ──────────────────────────────────────────────────────────────
# Display name
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_display_name_applied_noop_conflict(db_session, users):
    uid = users["dave"].id

    assert await user_service.update_display_name(db_session, uid, "Alice", T1) == \
        ProfileUpdateResult.APPLIED
    assert await user_service.update_display_name(db_session, uid, "Alice", T1) == \
        ProfileUpdateResult.NOOP
    assert await user_service.update_display_name(db_session, uid, "Bob", T1) == \
        ProfileUpdateResult.CONFLICT

    user = await _reload(db_session, uid)
    assert user.display_name == "Alice"
    assert user_service.user_to_dict(user)["updated_at"] == "2024-01-01T13:00:00.000Z"


@pytest.mark.asyncio
async def test_display_name_newer_watermark_applies(db_session, users):
    uid = users["dave"].id
    await user_service.update_display_name(db_session, uid, "Alice", T1)

    outcome = await user_service.update_display_name(db_session, uid, "Bob", T2)
    assert outcome == ProfileUpdateResult.APPLIED
    assert (await _reload(db_session, uid)).display_name == "Bob"


@pytest.mark.asyncio
async def test_display_name_older_watermark_conflicts(db_session, users):
    outcome = await user_service.update_display_name(
        db_session, users["dave"].id, "Dave", BASE_TIME - timedelta(days=1)
    )
    assert outcome == ProfileUpdateResult.CONFLICT


@pytest.mark.asyncio
async def test_display_name_is_trimmed_and_can_be_cleared(db_session, users):
    uid = users["alice"].id
    await user_service.update_display_name(db_session, uid, "  Ally  ", T1)
    assert (await _reload(db_session, uid)).display_name == "Ally"

    await user_service.update_display_name(db_session, uid, "", T2)
    assert (await _reload(db_session, uid)).display_name == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["x" * 49, "tab\there", "bell\x07", "del\x7f"])
async def test_display_name_validation(db_session, users, name):
    with pytest.raises(ValidationError) as exc:
        await user_service.update_display_name(db_session, users["alice"].id, name, T1)
    assert "display_name" in exc.value.fields


@pytest.mark.asyncio
async def test_display_name_unknown_user(db_session, users):
    with pytest.raises(NotFoundError):
        await user_service.update_display_name(db_session, 9999, "Nobody", T1)


# ──────────────────────────────────────────────────────────────
# Avatar
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_avatar_update_outcomes(db_session, users):
    uid = users["bob"].id

    assert await user_service.update_avatar(db_session, uid, "2-1.jpg", T1) == \
        ProfileUpdateResult.APPLIED
    assert await user_service.update_avatar(db_session, uid, "2-1.jpg", T1) == \
        ProfileUpdateResult.NOOP
    assert await user_service.update_avatar(db_session, uid, "2-2.jpg", T1) == \
        ProfileUpdateResult.CONFLICT

    user = await _reload(db_session, uid)
    assert user.avatar_path == "2-1.jpg"
    assert user_service.avatar_url(user) == f"/avatars/2-1.jpg?v={int(T1.timestamp())}"


@pytest.mark.asyncio
async def test_avatar_ref_required(db_session, users):
    with pytest.raises(ValidationError) as exc:
        await user_service.update_avatar(db_session, users["bob"].id, "  ", T1)
    assert exc.value.fields == {"avatar": "file is required"}


@pytest.mark.asyncio
async def test_default_avatar_url(db_session, users):
    assert user_service.avatar_url(users["carol"]) == user_service.DEFAULT_AVATAR_URL


# ──────────────────────────────────────────────────────────────
# Lookup and search
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_find_user_by_login_prefers_username(db_session, users):
    # Seeded directly: an account whose stored email equals Bob's username.
    await create_user(db_session, "mallory", email="bob")

    assert (await user_service.find_user_by_login(db_session, "bob")).id == users["bob"].id
    by_email = await user_service.find_user_by_login(db_session, "ALICE@example.com")
    assert by_email.id == users["alice"].id
    assert await user_service.find_user_by_login(db_session, "  ") is None


@pytest.mark.asyncio
async def test_login_lookups_see_writes_made_in_the_same_session(db_session, users):
    bob = users["bob"]
    await db_session.execute(
        update(User)
        .where(User.id == bob.id)
        .values(password_hash="fresh-hash")
        .execution_options(synchronize_session=False)
    )

    assert (await user_service.find_user_by_login(db_session, "bob")).password_hash == "fresh-hash"
    by_email = await user_service.get_user_by_email(db_session, "bob@example.com")
    assert by_email.password_hash == "fresh-hash"


@pytest.mark.asyncio
async def test_search_users(db_session, users):
    await create_user(db_session, "carolina")
    await create_user(db_session, "caroline_x", status=UserStatus.DISABLED)

    found = await user_service.search_users(db_session, " CAR ", None, users["alice"].id)
    assert [u["username"] for u in found] == ["carol", "carolina"]

    excluded = await user_service.search_users(db_session, "carol", None, users["carol"].id)
    assert [u["username"] for u in excluded] == ["carolina"]

    limited = await user_service.search_users(db_session, "car", 1, users["alice"].id)
    assert len(limited) == 1


@pytest.mark.asyncio
async def test_search_query_too_short(db_session, users):
    with pytest.raises(ValidationError) as exc:
        await user_service.search_users(db_session, "ab", 10, users["alice"].id)
    assert exc.value.fields == {"q": "must be at least 3 characters"}


# ──────────────────────────────────────────────────────────────
# Status and deletion
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_disable_revokes_sessions(db_session, users):
    uid = users["bob"].id
    await auth_service.create_session(db_session, uid)

    user = await user_service.set_status(db_session, uid, UserStatus.DISABLED)
    assert user.status == "disabled"
    remaining = await db_session.execute(select(AuthSession).where(AuthSession.user_id == uid))
    assert remaining.scalars().all() == []

    with pytest.raises(NotFoundError):
        await user_service.set_status(db_session, 9999, UserStatus.ACTIVE)


@pytest.mark.asyncio
async def test_delete_user_keeps_matches_as_guest_seats(db_session, users):
    alice, bob = users["alice"], users["bob"]
    await user_service.update_avatar(db_session, bob.id, "bob.jpg", T1)
    created = await friend_service.create_request(db_session, alice.id, "bob", now=T1)
    request = CreateMatchRequest(results=[
        MatchResultEntry(user_id=alice.id, place=2),
        MatchResultEntry(user_id=bob.id, place=1),
    ])
    match, _ = await match_service.create_match(db_session, bob.id, request, T1)

    avatar_path = await user_service.delete_user(db_session, bob.id)

    assert avatar_path == "bob.jpg"
    assert await _reload(db_session, bob.id) is None
    friendship = await db_session.execute(select(Friendship).where(Friendship.id == created["id"]))
    assert friendship.scalar_one_or_none() is None

    seats = await db_session.execute(
        select(MatchParticipant.user_id, MatchParticipant.guest_name)
        .where(MatchParticipant.match_id == match["id"])
        .order_by(MatchParticipant.seat_index)
    )
    assert seats.all() == [(alice.id, None), (None, "Bob")]

    with pytest.raises(NotFoundError):
        await user_service.delete_user(db_session, bob.id)


@pytest.mark.asyncio
async def test_user_to_dict_shape(db_session, users):
    data = user_service.user_to_dict(users["alice"])
    assert data["username"] == "alice"
    assert data["updated_at"] == "2024-01-01T12:00:00.000Z"
    assert data["avatar_updated_at"] is None
    assert set(data) >= {"id", "email", "display_name", "avatar_url", "status", "created_at"}


@pytest.mark.asyncio
async def test_get_user_by_id_refreshes_loaded_user(db_session, users):
    carol = users["carol"]
    await user_service.update_display_name(db_session, carol.id, "Caz", T1)
    assert carol.display_name == "Carol"

    reloaded = await user_service.get_user_by_id(db_session, carol.id)
    assert reloaded is carol
    assert carol.display_name == "Caz"
