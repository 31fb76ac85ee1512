"""
Match service: recording games and reading them back.

Creation is idempotent per (creator, client_match_id): a repeated create
returns the stored match with a CONFLICT outcome instead of inserting again.
Two input shapes are accepted. Ranked results list every seat with a place
and may include guests. The legacy shape is a flat list of player ids plus
a winner id and only allows the creator's accepted friends.
"""

import enum
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from sqlalchemy import select, exists, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mtgleader.database.models import Match, MatchFormat, MatchParticipant, User
from mtgleader.services import friend_service
from mtgleader.services.errors import ForbiddenError, NotFoundError, ValidationError
from mtgleader.utils.datetime_utils import as_utc, format_updated_at, now_millis, truncate_to_millis

if TYPE_CHECKING:
    from mtgleader.models.schemas import CreateMatchRequest, MatchResultEntry

logger = logging.getLogger(__name__)

SEAT_NAME_MAX_LENGTH = 48
CLIENT_MATCH_ID_MAX_LENGTH = 128
DEFAULT_LIST_LIMIT = 25
MAX_LIST_LIMIT = 100
FORMAT_ERROR = "must be commander, brawl, standard, or modern"


class MatchCreateResult(str, enum.Enum):
    """Outcome of create_match. CONFLICT means the match was already recorded."""

    APPLIED = "applied"
    CONFLICT = "conflict"


def normalize_client_match_id(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def _normalize_format(value: Optional[str]) -> str:
    value = (value or "").strip().lower()
    if not value:
        return MatchFormat.COMMANDER.value
    if value not in {f.value for f in MatchFormat}:
        raise ValidationError({"format": FORMAT_ERROR})
    return value


async def get_match_by_client_id(
    session: AsyncSession, creator_id: int, client_match_id: str
) -> Optional[Match]:
    result = await session.execute(
        select(Match).where(
            Match.created_by == creator_id, Match.client_match_id == client_match_id
        )
    )
    return result.scalar_one_or_none()


def _check_counter(entry_value: Optional[int], name: str) -> None:
    if entry_value is not None and entry_value < 0:
        raise ValidationError({"results": f"{name} must be >= 0"})


def _check_seat_name(value: str, name: str) -> None:
    if len(value) > SEAT_NAME_MAX_LENGTH:
        raise ValidationError(
            {"results": f"{name} must be {SEAT_NAME_MAX_LENGTH} characters or less"}
        )
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in value):
        raise ValidationError({"results": f"{name} contains invalid characters"})


def _assemble_results(entries: List["MatchResultEntry"]) -> List[Dict]:
    """Shape-check ranked results and turn them into participant rows."""
    participants = []
    seen_users = set()
    seen_seats = set()
    for position, entry in enumerate(entries):
        guest_name = (entry.guest_name or "").strip()
        if entry.user_id is None and not guest_name:
            raise ValidationError({"results": "each result must include a user_id or guest_name"})
        if entry.user_id is not None and guest_name:
            raise ValidationError({"results": "a result cannot have both user_id and guest_name"})
        display_name = (entry.display_name or "").strip()
        _check_seat_name(guest_name, "guest_name")
        _check_seat_name(display_name, "display_name")
        if entry.place is None or entry.place < 1:
            raise ValidationError({"results": "place must be >= 1"})
        if entry.user_id is not None:
            if entry.user_id in seen_users:
                raise ValidationError({"results": "user ids must be unique"})
            seen_users.add(entry.user_id)

        seat_index = entry.seat_index if entry.seat_index is not None else position
        if seat_index < 0:
            raise ValidationError({"results": "seat_index must be >= 0"})
        if seat_index in seen_seats:
            raise ValidationError({"results": "seat_index must be unique"})
        seen_seats.add(seat_index)

        _check_counter(entry.eliminated_turn_number, "eliminated_turn_number")
        _check_counter(entry.eliminated_during_seat_index, "eliminated_during_seat_index")
        _check_counter(entry.total_turn_time_ms, "total_turn_time_ms")
        _check_counter(entry.turns_taken, "turns_taken")

        participants.append({
            "seat_index": seat_index,
            "user_id": entry.user_id,
            "guest_name": guest_name or None,
            "display_name": display_name or guest_name,
            "place": entry.place,
            "eliminated_turn_number": entry.eliminated_turn_number,
            "eliminated_during_seat_index": entry.eliminated_during_seat_index,
            "total_turn_time_ms": entry.total_turn_time_ms or 0,
            "turns_taken": entry.turns_taken or 0,
        })
    return participants


def _assemble_legacy(creator_id: int, player_ids: List[int]) -> List[int]:
    """De-duplicate the flat player list and make sure the creator is in it."""
    players = []
    for player_id in player_ids or []:
        if player_id is None or player_id in players:
            continue
        players.append(player_id)
    if creator_id not in players:
        players.append(creator_id)
    return players


async def _load_users(session: AsyncSession, user_ids) -> Dict[int, User]:
    if not user_ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(set(user_ids))))
    return {u.id: u for u in result.scalars().all()}


async def create_match(
    session: AsyncSession,
    creator_id: int,
    request: "CreateMatchRequest",
    updated_at: datetime,
    now: Optional[datetime] = None,
) -> Tuple[Dict, MatchCreateResult]:
    """
    Record a match.

    Validation order: at least two participants, the creator among ranked
    results, exactly one winner, a known format, and (legacy shape) a winner
    who is one of the players. The friendship precondition applies to the
    legacy shape only.

    Args:
        session: Database session
        creator_id: Authenticated user recording the match
        request: Match payload; ``client_match_id`` is the idempotency key
        updated_at: Watermark stamped on the new row
        now: Creation time (defaults to the current time)

    Returns:
        Tuple of (match dict, APPLIED) or, for a repeated client_match_id,
        (stored match dict, CONFLICT)

    Raises:
        ValidationError: Invalid payload, naming the offending field
        ForbiddenError: Legacy shape with a player who is not a friend
    """
    client_match_id = normalize_client_match_id(request.client_match_id)
    if client_match_id and len(client_match_id) > CLIENT_MATCH_ID_MAX_LENGTH:
        raise ValidationError(
            {"client_match_id": f"must be {CLIENT_MATCH_ID_MAX_LENGTH} characters or less"}
        )
    if client_match_id:
        existing = await get_match_by_client_id(session, creator_id, client_match_id)
        if existing is not None:
            logger.info(f"Match {existing.id} already recorded for client id {client_match_id}")
            return format_match(existing), MatchCreateResult.CONFLICT

    total_duration_seconds = request.total_duration_seconds or 0
    turn_count = request.turn_count or 0
    if total_duration_seconds < 0:
        raise ValidationError({"total_duration_seconds": "must be >= 0"})
    if turn_count < 0:
        raise ValidationError({"turn_count": "must be >= 0"})

    legacy = not request.results
    if legacy:
        players = _assemble_legacy(creator_id, request.player_ids)
        if len(players) < 2:
            raise ValidationError({"players": "must have at least 2 players"})
        if request.winner_id is None:
            raise ValidationError({"winner_id": "exactly one winner is required"})
        fmt = _normalize_format(request.format)
        if request.winner_id not in players:
            raise ValidationError({"winner_id": "winner must be one of the players"})

        users = await _load_users(session, players)
        if len(users) != len(players):
            raise ValidationError({"players": "unknown user"})
        for player_id in players:
            if player_id == creator_id:
                continue
            if not await friend_service.are_friends(session, creator_id, player_id):
                raise ForbiddenError("all players must be friends of the creator")

        participants = [
            {
                "seat_index": seat,
                "user_id": player_id,
                "guest_name": None,
                "display_name": users[player_id].display_name or users[player_id].username,
                "place": 1 if player_id == request.winner_id else 2,
                "eliminated_turn_number": None,
                "eliminated_during_seat_index": None,
                "total_turn_time_ms": 0,
                "turns_taken": 0,
            }
            for seat, player_id in enumerate(players)
        ]
    else:
        participants = _assemble_results(request.results)
        if len(participants) < 2:
            raise ValidationError({"results": "must have at least 2 players"})
        if not any(p["user_id"] == creator_id for p in participants):
            raise ValidationError({"results": "creator must be included in results"})
        if sum(1 for p in participants if p["place"] == 1) != 1:
            raise ValidationError({"results": "exactly one player must have place 1"})
        fmt = _normalize_format(request.format)

        user_ids = [p["user_id"] for p in participants if p["user_id"] is not None]
        users = await _load_users(session, user_ids)
        if len(users) != len(user_ids):
            raise ValidationError({"results": "unknown user"})
        for p in participants:
            if p["user_id"] is not None and not p["display_name"]:
                user = users[p["user_id"]]
                p["display_name"] = user.display_name or user.username

    winner = next(p for p in participants if p["place"] == 1)
    now = truncate_to_millis(now) if now else now_millis()

    match = Match(
        created_by=creator_id,
        client_match_id=client_match_id,
        format=fmt,
        played_at=as_utc(request.played_at),
        started_at=as_utc(request.started_at),
        ended_at=as_utc(request.ended_at),
        total_duration_seconds=total_duration_seconds,
        turn_count=turn_count,
        winner_id=winner["user_id"],
        created_at=now,
        updated_at=truncate_to_millis(updated_at),
    )
    match.participants = [MatchParticipant(**p) for p in participants]
    session.add(match)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        if client_match_id:
            existing = await get_match_by_client_id(session, creator_id, client_match_id)
            if existing is not None:
                return format_match(existing), MatchCreateResult.CONFLICT
            raise ValidationError({"client_match_id": "already used"})
        raise

    logger.info(f"Match {match.id} recorded by user {creator_id} ({fmt}, {len(participants)} players)")
    return format_match(match), MatchCreateResult.APPLIED


def _visible_to(user_id: int):
    return or_(
        Match.created_by == user_id,
        exists().where(
            MatchParticipant.match_id == Match.id, MatchParticipant.user_id == user_id
        ),
    )


async def list_matches(
    session: AsyncSession, user_id: int, limit: Optional[int] = None
) -> List[Dict]:
    """
    Matches the user created or played in, newest first.

    Args:
        session: Database session
        user_id: User ID
        limit: Page size, clamped to 1..100 (default 25)

    Returns:
        List of match dicts
    """
    if limit is None:
        limit = DEFAULT_LIST_LIMIT
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    result = await session.execute(
        select(Match)
        .where(_visible_to(user_id))
        .order_by(Match.created_at.desc(), Match.id.desc())
        .limit(limit)
    )
    return [format_match(m) for m in result.scalars().all()]


async def get_match(session: AsyncSession, user_id: int, match_id: int) -> Dict:
    """
    Get one match if the user created or played in it.

    Raises:
        NotFoundError: Missing or not visible to the user
    """
    result = await session.execute(
        select(Match).where(Match.id == match_id, _visible_to(user_id))
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError("match not found")
    return format_match(match)


def format_match(match: Match) -> Dict:
    """Format a match with its seats in seat order."""
    return {
        "id": match.id,
        "created_by": match.created_by,
        "client_match_id": match.client_match_id,
        "format": match.format,
        "played_at": as_utc(match.played_at),
        "started_at": as_utc(match.started_at),
        "ended_at": as_utc(match.ended_at),
        "total_duration_seconds": match.total_duration_seconds,
        "turn_count": match.turn_count,
        "winner_id": match.winner_id,
        "created_at": as_utc(match.created_at),
        "updated_at": format_updated_at(match.updated_at),
        "players": [
            {
                "seat_index": p.seat_index,
                "user_id": p.user_id,
                "guest_name": p.guest_name,
                "display_name": p.display_name,
                "place": p.place,
                "is_winner": p.place == 1,
                "eliminated_turn_number": p.eliminated_turn_number,
                "eliminated_during_seat_index": p.eliminated_during_seat_index,
                "total_turn_time_ms": p.total_turn_time_ms,
                "turns_taken": p.turns_taken,
            }
            for p in sorted(match.participants, key=lambda p: p.seat_index)
        ],
    }
