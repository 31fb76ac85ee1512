"""
Unit tests for notification service: token registry and friend-request pushes.
"""

import pytest

from conftest import BASE_TIME
from mtgleader.services import notification_service, push_service
from mtgleader.services.errors import ValidationError


class FakeSender:
    """Records sends; tokens listed in ``invalid`` raise InvalidTokenError."""

    def __init__(self, invalid=(), broken=()):
        self.sent = []
        self.invalid = set(invalid)
        self.broken = set(broken)

    async def send(self, token, data, title=None, body=None):
        if token in self.invalid:
            raise push_service.InvalidTokenError("unregistered")
        if token in self.broken:
            raise RuntimeError("fcm unavailable")
        self.sent.append({"token": token, "data": data, "title": title, "body": body})
        return f"msg-{len(self.sent)}"


async def _tokens(session, user_id):
    return [t.token for t in await notification_service.list_tokens(session, user_id)]


@pytest.mark.asyncio
async def test_register_token_normalizes_platform(db_session, users):
    result = await notification_service.register_token(
        db_session, users["alice"].id, "  tok-1 ", " iOS ", now=BASE_TIME
    )
    assert result["token"] == "tok-1"
    assert result["platform"] == "ios"
    assert await _tokens(db_session, users["alice"].id) == ["tok-1"]


@pytest.mark.asyncio
async def test_register_token_moves_between_users(db_session, users):
    await notification_service.register_token(db_session, users["alice"].id, "shared", "android")
    await notification_service.register_token(db_session, users["bob"].id, "shared", "android")

    assert await _tokens(db_session, users["alice"].id) == []
    assert await _tokens(db_session, users["bob"].id) == ["shared"]


@pytest.mark.asyncio
async def test_register_token_validation(db_session, users):
    with pytest.raises(ValidationError):
        await notification_service.register_token(db_session, users["alice"].id, "", "ios")
    with pytest.raises(ValidationError) as exc:
        await notification_service.register_token(db_session, users["alice"].id, "t", "windows")
    assert exc.value.fields == {"platform": "must be ios or android"}


@pytest.mark.asyncio
async def test_delete_token_only_removes_own(db_session, users):
    await notification_service.register_token(db_session, users["alice"].id, "tok", "ios")

    assert await notification_service.delete_token(db_session, users["bob"].id, "tok") is False
    assert await notification_service.delete_token(db_session, users["alice"].id, "tok") is True
    assert await _tokens(db_session, users["alice"].id) == []

    with pytest.raises(ValidationError):
        await notification_service.delete_token(db_session, users["alice"].id, " ")


@pytest.mark.asyncio
async def test_friend_request_push_per_platform(db_session, users):
    bob_id = users["bob"].id
    await notification_service.register_token(db_session, bob_id, "ios-tok", "ios")
    await notification_service.register_token(db_session, bob_id, "android-tok", "android")
    sender = FakeSender()

    await notification_service.notify_friend_request(
        db_session, 7, users["alice"].id, bob_id, sender=sender
    )

    by_token = {m["token"]: m for m in sender.sent}
    assert by_token["ios-tok"]["title"] == notification_service.FRIEND_REQUEST_TITLE
    assert by_token["ios-tok"]["body"] == "Alice sent you a friend request."
    assert by_token["android-tok"]["title"] is None
    assert by_token["android-tok"]["data"] == {
        "type": "friend_request",
        "display_name": "Alice",
        "username": "alice",
        "request_id": "7",
    }


@pytest.mark.asyncio
async def test_friend_request_push_uses_username_without_display_name(db_session, users):
    alice_id = users["alice"].id
    await notification_service.register_token(db_session, alice_id, "tok", "android")
    sender = FakeSender()

    await notification_service.notify_friend_request(
        db_session, 1, users["dave"].id, alice_id, sender=sender
    )
    assert sender.sent[0]["data"]["display_name"] == "dave"


@pytest.mark.asyncio
async def test_invalid_tokens_are_forgotten(db_session, users):
    bob_id = users["bob"].id
    for token in ("dead", "flaky", "good"):
        await notification_service.register_token(db_session, bob_id, token, "android")
    sender = FakeSender(invalid={"dead"}, broken={"flaky"})

    await notification_service.notify_friend_request(
        db_session, 1, users["alice"].id, bob_id, sender=sender
    )

    assert [m["token"] for m in sender.sent] == ["good"]
    assert await _tokens(db_session, bob_id) == ["flaky", "good"]


@pytest.mark.asyncio
async def test_push_skipped_without_sender(db_session, users, monkeypatch):
    monkeypatch.setattr(notification_service.push_service, "get_sender", lambda: None)
    await notification_service.register_token(db_session, users["bob"].id, "tok", "ios")

    # Nothing to assert beyond not raising: there is no transport configured.
    await notification_service.notify_friend_request(
        db_session, 1, users["alice"].id, users["bob"].id
    )
