"""
Stats aggregation over recorded matches.

Results are computed from the participant rows: the seat with place 1 won,
every other seat lost. Guests count as opponents in ``guest_head_to_head``
only.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.models import Match, MatchParticipant, User
from mtgleader.services.errors import NotFoundError
from mtgleader.services.user_service import get_user_by_id, user_summary

logger = logging.getLogger(__name__)


async def _matches_played_by(session: AsyncSession, user_id: int) -> List[Match]:
    result = await session.execute(
        select(Match)
        .where(
            exists().where(
                MatchParticipant.match_id == Match.id, MatchParticipant.user_id == user_id
            )
        )
        .order_by(Match.id)
    )
    return list(result.scalars().all())


def _seat_of(match: Match, user_id: int) -> Optional[MatchParticipant]:
    for p in match.participants:
        if p.user_id == user_id:
            return p
    return None


def _winner_of(match: Match) -> Optional[MatchParticipant]:
    for p in match.participants:
        if p.place == 1:
            return p
    return None


def _tally(matches: List[Match], user_id: int) -> Dict:
    """Played/wins/losses/win_pct/avg_turn_seconds for a set of matches."""
    played = len(matches)
    wins = sum(1 for m in matches if _seat_of(m, user_id).place == 1)
    timed = [m for m in matches if m.turn_count > 0]
    total_seconds = sum(m.total_duration_seconds for m in timed)
    total_turns = sum(m.turn_count for m in timed)
    return {
        "matches_played": played,
        "wins": wins,
        "losses": played - wins,
        "win_pct": round(wins * 100.0 / played, 1) if played else 0.0,
        "avg_turn_seconds": total_seconds // total_turns if total_turns else 0,
    }


async def _top_opponent(session: AsyncSession, counts: Dict[int, int]) -> Optional[Dict]:
    if not counts:
        return None
    result = await session.execute(select(User).where(User.id.in_(counts.keys())))
    users = result.scalars().all()
    if not users:
        return None
    best = sorted(users, key=lambda u: (-counts[u.id], u.username))[0]
    return {"opponent": user_summary(best), "count": counts[best.id]}


async def summary(session: AsyncSession, user_id: int) -> Dict:
    """
    Build the stats summary for a user.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        Dict with totals, per-format totals, most_often_beat,
        most_often_beats_you and guest_head_to_head
    """
    matches = await _matches_played_by(session, user_id)

    by_format_matches = defaultdict(list)
    beat_counts: Dict[int, int] = defaultdict(int)
    beaten_by_counts: Dict[int, int] = defaultdict(int)
    guests: Dict[str, Dict[str, int]] = {}

    for match in matches:
        by_format_matches[match.format].append(match)
        me = _seat_of(match, user_id)
        winner = _winner_of(match)
        won = me.place == 1
        for p in match.participants:
            if p is me:
                continue
            if p.user_id is not None:
                if won:
                    beat_counts[p.user_id] += 1
                elif winner is p:
                    beaten_by_counts[p.user_id] += 1
            elif p.guest_name:
                record = guests.setdefault(p.guest_name, {"wins": 0, "losses": 0})
                if won:
                    record["wins"] += 1
                elif winner is p:
                    record["losses"] += 1

    out = _tally(matches, user_id)
    out["by_format"] = {
        fmt: _tally(group, user_id) for fmt, group in sorted(by_format_matches.items())
    }
    out["most_often_beat"] = await _top_opponent(session, beat_counts)
    out["most_often_beats_you"] = await _top_opponent(session, beaten_by_counts)
    out["guest_head_to_head"] = [
        {"guest_name": name, "wins": record["wins"], "losses": record["losses"]}
        for name, record in sorted(guests.items())
    ]
    return out


def _head_to_head_counts(matches: List[Match], user_id: int, opponent_id: int) -> Dict:
    wins = losses = co_losses = 0
    for match in matches:
        winner = _winner_of(match)
        if winner is not None and winner.user_id == user_id:
            wins += 1
        elif winner is not None and winner.user_id == opponent_id:
            losses += 1
        else:
            co_losses += 1
    return {"total": len(matches), "wins": wins, "losses": losses, "co_losses": co_losses}


async def head_to_head(session: AsyncSession, user_id: int, opponent_id: int) -> Dict:
    """
    Record against one opponent over matches both users played.

    ``co_losses`` counts matches a third seat won.

    Raises:
        NotFoundError: Opponent does not exist
    """
    opponent = await get_user_by_id(session, opponent_id)
    if opponent is None:
        raise NotFoundError("user not found")

    shared = [
        m for m in await _matches_played_by(session, user_id)
        if _seat_of(m, opponent_id) is not None
    ]
    by_format = defaultdict(list)
    for match in shared:
        by_format[match.format].append(match)

    out = {"opponent": user_summary(opponent)}
    out.update(_head_to_head_counts(shared, user_id, opponent_id))
    out["by_format"] = {
        fmt: _head_to_head_counts(group, user_id, opponent_id)
        for fmt, group in sorted(by_format.items())
    }
    return out
