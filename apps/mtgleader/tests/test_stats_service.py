"""
Unit tests for stats aggregation.
"""

from datetime import timedelta

import pytest

from conftest import BASE_TIME
from mtgleader.models.schemas import CreateMatchRequest, MatchResultEntry
from mtgleader.services import match_service, stats_service
from mtgleader.services.errors import NotFoundError

T1 = BASE_TIME + timedelta(hours=1)


async def _record(session, creator_id, seats, fmt="commander", duration=0, turns=0):
    """seats: list of (user_id or guest name, place)."""
    results = [
        MatchResultEntry(user_id=who, place=place) if isinstance(who, int)
        else MatchResultEntry(guest_name=who, place=place)
        for who, place in seats
    ]
    request = CreateMatchRequest(
        results=results, format=fmt, total_duration_seconds=duration, turn_count=turns
    )
    match, _ = await match_service.create_match(session, creator_id, request, T1)
    return match


@pytest.mark.asyncio
async def test_summary_empty(db_session, users):
    summary = await stats_service.summary(db_session, users["alice"].id)

    assert summary["matches_played"] == 0
    assert summary["win_pct"] == 0.0
    assert summary["by_format"] == {}
    assert summary["most_often_beat"] is None
    assert summary["most_often_beats_you"] is None
    assert summary["guest_head_to_head"] == []


@pytest.mark.asyncio
async def test_summary_totals_and_rivals(db_session, users):
    a, b, c = users["alice"].id, users["bob"].id, users["carol"].id
    await _record(db_session, a, [(a, 1), (b, 2), (c, 3)], duration=600, turns=10)
    await _record(db_session, a, [(a, 1), (b, 2)], fmt="modern", duration=300, turns=20)
    await _record(db_session, a, [(a, 2), (c, 1)])
    await _record(db_session, a, [(a, 2), ("Guest Gary", 1)])
    await _record(db_session, a, [(a, 1), ("Guest Gary", 2)])

    summary = await stats_service.summary(db_session, a)

    assert summary["matches_played"] == 5
    assert summary["wins"] == 3
    assert summary["losses"] == 2
    assert summary["win_pct"] == 60.0
    # (600 + 300) seconds over (10 + 20) turns; untimed matches are ignored.
    assert summary["avg_turn_seconds"] == 30
    assert summary["by_format"]["modern"]["matches_played"] == 1
    assert summary["by_format"]["commander"]["wins"] == 2
    assert summary["most_often_beat"]["opponent"]["username"] == "bob"
    assert summary["most_often_beat"]["count"] == 2
    assert summary["most_often_beats_you"]["opponent"]["username"] == "carol"
    assert summary["guest_head_to_head"] == [{"guest_name": "Guest Gary", "wins": 1, "losses": 1}]


@pytest.mark.asyncio
async def test_rival_ties_break_by_username(db_session, users):
    a, b, c = users["alice"].id, users["bob"].id, users["carol"].id
    await _record(db_session, a, [(a, 1), (c, 2)])
    await _record(db_session, a, [(a, 1), (b, 2)])

    summary = await stats_service.summary(db_session, a)
    assert summary["most_often_beat"]["opponent"]["username"] == "bob"


@pytest.mark.asyncio
async def test_win_pct_rounds_to_one_decimal(db_session, users):
    a, b = users["alice"].id, users["bob"].id
    await _record(db_session, a, [(a, 1), (b, 2)])
    await _record(db_session, a, [(a, 2), (b, 1)])
    await _record(db_session, a, [(a, 2), (b, 1)])

    assert (await stats_service.summary(db_session, a))["win_pct"] == 33.3


@pytest.mark.asyncio
async def test_head_to_head(db_session, users):
    a, b, c = users["alice"].id, users["bob"].id, users["carol"].id
    await _record(db_session, a, [(a, 1), (b, 2)])
    await _record(db_session, a, [(a, 2), (b, 1), (c, 3)], fmt="brawl")
    await _record(db_session, a, [(a, 2), (b, 3), (c, 1)])
    await _record(db_session, a, [(a, 1), (c, 2)])

    h2h = await stats_service.head_to_head(db_session, a, b)

    assert h2h["opponent"]["username"] == "bob"
    assert (h2h["total"], h2h["wins"], h2h["losses"], h2h["co_losses"]) == (3, 1, 1, 1)
    assert h2h["by_format"]["brawl"] == {"total": 1, "wins": 0, "losses": 1, "co_losses": 0}


@pytest.mark.asyncio
async def test_head_to_head_unknown_opponent(db_session, users):
    with pytest.raises(NotFoundError):
        await stats_service.head_to_head(db_session, users["alice"].id, 9999)
