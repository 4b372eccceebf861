"""
Room service: creating, listing and joining meetup rooms, and room chat.

Creating a room charges the host CREATE_ROOM_FEE and joining charges
JOIN_ROOM_FEE. Fees are destroyed, not paid to the host. The fee and the
state change it pays for commit in one transaction.

Join checks run in a fixed order (gender, age, coins, capacity, already
joined) and the first failing one is reported. The seat itself is claimed
with a conditional UPDATE on player_count, so racing joins can never push
a room past max_players.
"""

from datetime import date, datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from matchroom.database.models import (
    CoinReason,
    GenderRequirement,
    Player,
    Room,
    RoomChatMessage,
    RoomPlayer,
    SkillLevel,
    Sport,
)
from matchroom.services import coin_service, user_service
from matchroom.utils.constants import CREATE_ROOM_FEE, JOIN_ROOM_FEE, MIN_ROOM_PLAYERS
from matchroom.utils.datetime_utils import calculate_age, ensure_utc, isoformat, utcnow
from matchroom.utils.errors import (
    AlreadyJoined,
    InsufficientFunds,
    NotEligible,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)

# Restriction reasons, in the order join checks run
REASON_GENDER = "gender"
REASON_AGE = "age"
REASON_COINS = "coins"
REASON_FULL = "full"
REASON_JOINED = "joined"


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(datetime.fromisoformat(str(value)))
    except ValueError:
        raise ValidationError(f"Invalid scheduled time: {value}")


def _parse_age(value, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


def validate_room_spec(spec: Dict) -> Dict:
    """
    Validate and normalize a room specification.

    Returns:
        Dict of Room column values

    Raises:
        ValidationError: If any field is missing or invalid
    """
    try:
        sport = Sport(spec.get("sport")).value
    except ValueError:
        raise ValidationError(f"Invalid sport: {spec.get('sport')}")

    location_name = (spec.get("location_name") or "").strip()
    if not location_name:
        raise ValidationError("location_name is required")

    if spec.get("scheduled_at") is None:
        raise ValidationError("scheduled_at is required")
    scheduled_at = _parse_datetime(spec["scheduled_at"])

    max_players = spec.get("max_players")
    if isinstance(max_players, bool) or not isinstance(max_players, int) or max_players < MIN_ROOM_PLAYERS:
        raise ValidationError(f"max_players must be an integer of at least {MIN_ROOM_PLAYERS}")

    try:
        skill_level = SkillLevel(spec.get("skill_level")).value
    except ValueError:
        raise ValidationError(f"Invalid skill level: {spec.get('skill_level')}")

    try:
        gender_requirement = GenderRequirement(
            spec.get("gender_requirement") or GenderRequirement.UNRESTRICTED.value
        ).value
    except ValueError:
        raise ValidationError(f"Invalid gender requirement: {spec.get('gender_requirement')}")

    min_age = _parse_age(spec.get("min_age"), "min_age")
    max_age = _parse_age(spec.get("max_age"), "max_age")
    if min_age is not None and max_age is not None and min_age > max_age:
        raise ValidationError("min_age cannot be greater than max_age")

    return {
        "sport": sport,
        "location_name": location_name,
        "scheduled_at": scheduled_at,
        "max_players": max_players,
        "skill_level": skill_level,
        "gender_requirement": gender_requirement,
        "min_age": min_age,
        "max_age": max_age,
        "notes": (spec.get("notes") or "").strip() or None,
    }


def is_eligible(room: Room, player: Player, today: Optional[date] = None) -> bool:
    """
    Gender and age eligibility of a player for a room.

    An unrestricted room admits any gender; otherwise the player's gender
    must match. The player's age must fall within the bounds that are set.
    """
    return _eligibility_reason(room, player, today) is None


def _eligibility_reason(room: Room, player: Player, today: Optional[date] = None) -> Optional[str]:
    if (
        room.gender_requirement != GenderRequirement.UNRESTRICTED.value
        and room.gender_requirement != player.gender
    ):
        return REASON_GENDER

    if room.min_age is not None or room.max_age is not None:
        age = calculate_age(player.date_of_birth, today)
        if room.min_age is not None and age < room.min_age:
            return REASON_AGE
        if room.max_age is not None and age > room.max_age:
            return REASON_AGE
    return None


def get_restriction(
    room: Room,
    player: Player,
    balance: int,
    is_member: bool = False,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    First reason a player cannot join a room, or None if they can.

    Checks run in join order: gender, age, coins, full, joined.
    """
    reason = _eligibility_reason(room, player, today)
    if reason:
        return reason
    if balance < JOIN_ROOM_FEE:
        return REASON_COINS
    if room.player_count >= room.max_players:
        return REASON_FULL
    if is_member:
        return REASON_JOINED
    return None


async def _get_room_model(session: AsyncSession, room_id: int) -> Room:
    result = await session.execute(select(Room).where(Room.id == room_id))
    room = result.scalar_one_or_none()
    if room is None:
        raise RoomNotFound(room_id)
    return room


async def _get_rosters(session: AsyncSession, room_ids: List[int]) -> Dict[int, List[int]]:
    """Room id -> player ids in join order."""
    rosters = {room_id: [] for room_id in room_ids}
    if not room_ids:
        return rosters
    result = await session.execute(
        select(RoomPlayer.room_id, RoomPlayer.player_id)
        .where(RoomPlayer.room_id.in_(room_ids))
        .order_by(RoomPlayer.id)
    )
    for room_id, player_id in result.all():
        rosters[room_id].append(player_id)
    return rosters


def _format_room(room: Room, roster: List[int]) -> Dict:
    return {
        "id": room.id,
        "host_player_id": room.host_player_id,
        "sport": room.sport,
        "location_name": room.location_name,
        "scheduled_at": isoformat(room.scheduled_at),
        "max_players": room.max_players,
        "player_count": room.player_count,
        "player_ids": roster,
        "skill_level": room.skill_level,
        "gender_requirement": room.gender_requirement,
        "min_age": room.min_age,
        "max_age": room.max_age,
        "notes": room.notes,
        "created_at": isoformat(room.created_at),
    }


async def create_room(session: AsyncSession, host_player_id: int, spec: Dict) -> Dict:
    """
    Create a room hosted by a player.

    The host pays CREATE_ROOM_FEE and becomes the first member. If the fee
    cannot be paid no room is created.

    Args:
        session: Database session
        host_player_id: Player creating the room
        spec: Room specification (sport, location_name, scheduled_at,
            max_players, skill_level, gender_requirement, min_age, max_age, notes)

    Returns:
        Room dict

    Raises:
        ValidationError: If the specification is invalid
        InsufficientFunds: If the host cannot pay the fee
        PlayerNotFound: If the host does not exist
    """
    values = validate_room_spec(spec)
    await user_service.get_player_model(session, host_player_id)

    try:
        await coin_service.debit(session, host_player_id, CREATE_ROOM_FEE, CoinReason.CREATE_ROOM)
        room = Room(host_player_id=host_player_id, player_count=1, **values)
        session.add(room)
        await session.flush()
        session.add(RoomPlayer(room_id=room.id, player_id=host_player_id))
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"Player {host_player_id} created room {room.id} ({room.sport}, {room.max_players} players)"
    )
    return _format_room(room, [host_player_id])


async def join_room(
    session: AsyncSession, player_id: int, room_id: int, today: Optional[date] = None
) -> Dict:
    """
    Join a room, paying JOIN_ROOM_FEE.

    Raises:
        RoomNotFound: If the room does not exist
        PlayerNotFound: If the player does not exist
        NotEligible: On a gender ("gender") or age ("age") restriction
        InsufficientFunds: If the player cannot pay the join fee
        RoomFull: If no seat is left
        AlreadyJoined: If the player is already in the room
    """
    room = await _get_room_model(session, room_id)
    await session.refresh(room)
    player = await user_service.get_player_model(session, player_id)

    reason = _eligibility_reason(room, player, today)
    if reason:
        logger.info(f"Player {player_id} not eligible for room {room_id}: {reason}")
        raise NotEligible(reason)

    balance = await coin_service.get_balance(session, player_id)
    if balance < JOIN_ROOM_FEE:
        raise InsufficientFunds(balance=balance, required=JOIN_ROOM_FEE)
    if room.player_count >= room.max_players:
        raise RoomFull(room_id)

    result = await session.execute(
        select(RoomPlayer.id).where(RoomPlayer.room_id == room_id, RoomPlayer.player_id == player_id)
    )
    if result.scalar_one_or_none() is not None:
        raise AlreadyJoined(room_id)

    try:
        await coin_service.debit(session, player_id, JOIN_ROOM_FEE, CoinReason.JOIN_ROOM)
        result = await session.execute(
            update(Room)
            .where(Room.id == room_id, Room.player_count < Room.max_players)
            .values(player_count=Room.player_count + 1)
        )
        if result.rowcount == 0:
            raise RoomFull(room_id)
        session.add(RoomPlayer(room_id=room_id, player_id=player_id))
        await session.flush()
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AlreadyJoined(room_id)
    except Exception:
        await session.rollback()
        raise

    await session.refresh(room)
    rosters = await _get_rosters(session, [room_id])
    logger.info(f"Player {player_id} joined room {room_id} ({room.player_count}/{room.max_players})")
    return _format_room(room, rosters[room_id])


async def get_room(session: AsyncSession, room_id: int) -> Dict:
    """
    Room details with its roster (host first, then join order).

    Raises:
        RoomNotFound: If the room does not exist
    """
    room = await _get_room_model(session, room_id)
    await session.refresh(room)
    rosters = await _get_rosters(session, [room_id])
    details = _format_room(room, rosters[room_id])

    result = await session.execute(
        select(RoomPlayer.player_id, RoomPlayer.joined_at, Player.full_name, Player.avatar_url)
        .join(Player, Player.id == RoomPlayer.player_id)
        .where(RoomPlayer.room_id == room_id)
        .order_by(RoomPlayer.id)
    )
    details["players"] = [
        {
            "player_id": row.player_id,
            "full_name": row.full_name,
            "avatar_url": row.avatar_url,
            "joined_at": isoformat(row.joined_at),
            "is_host": row.player_id == room.host_player_id,
        }
        for row in result.all()
    ]
    return details


async def list_rooms(
    session: AsyncSession,
    sport: Optional[str] = None,
    viewer_id: Optional[int] = None,
    exclude_joined: bool = False,
    today: Optional[date] = None,
) -> List[Dict]:
    """
    List rooms ordered by scheduled time, earliest first.

    Args:
        session: Database session
        sport: Optional sport filter
        viewer_id: When given, each room carries {allowed, reason} for this player
        exclude_joined: Drop rooms the viewer is already in
        today: Date used for age checks (defaults to today in UTC)

    Returns:
        List of room dicts
    """
    query = select(Room).order_by(Room.scheduled_at, Room.id)
    if sport:
        try:
            query = query.where(Room.sport == Sport(sport).value)
        except ValueError:
            raise ValidationError(f"Invalid sport: {sport}")

    result = await session.execute(query.execution_options(populate_existing=True))
    rooms = result.scalars().all()
    rosters = await _get_rosters(session, [room.id for room in rooms])

    viewer = None
    balance = 0
    if viewer_id is not None:
        viewer = await user_service.get_player_model(session, viewer_id)
        balance = await coin_service.get_balance(session, viewer_id)

    items = []
    for room in rooms:
        roster = rosters[room.id]
        is_member = viewer_id in roster
        if exclude_joined and is_member:
            continue
        item = _format_room(room, roster)
        if viewer is not None:
            reason = get_restriction(room, viewer, balance, is_member=is_member, today=today)
            item["is_member"] = is_member
            item["allowed"] = reason is None
            item["reason"] = reason
        items.append(item)
    return items


async def get_player_rooms(session: AsyncSession, player_id: int) -> Dict:
    """
    Dashboard view of a player's rooms.

    Returns:
        Dict with hosted and joined (not hosted) rooms, each ordered by time
    """
    result = await session.execute(
        select(Room)
        .join(RoomPlayer, RoomPlayer.room_id == Room.id)
        .where(RoomPlayer.player_id == player_id)
        .order_by(Room.scheduled_at, Room.id)
        .execution_options(populate_existing=True)
    )
    rooms = result.scalars().all()
    rosters = await _get_rosters(session, [room.id for room in rooms])

    hosted, joined = [], []
    for room in rooms:
        target = hosted if room.host_player_id == player_id else joined
        target.append(_format_room(room, rosters[room.id]))
    return {"hosted": hosted, "joined": joined}


async def post_chat_message(
    session: AsyncSession, room_id: int, player_id: int, text: str
) -> Dict:
    """
    Append a message to a room's chat.

    Posting is free and does not require membership.

    Raises:
        RoomNotFound: If the room does not exist
        PlayerNotFound: If the player does not exist
        ValidationError: If the text is blank
    """
    if not text or not text.strip():
        raise ValidationError("Message text cannot be empty")
    await _get_room_model(session, room_id)
    player = await user_service.get_player_model(session, player_id)

    message = RoomChatMessage(room_id=room_id, player_id=player_id, text=text.strip(), created_at=utcnow())
    session.add(message)
    await session.commit()

    logger.debug(f"Chat message {message.id} in room {room_id} from player {player_id}")
    return _format_chat_message(message, player.full_name)


def _format_chat_message(message: RoomChatMessage, full_name: Optional[str]) -> Dict:
    return {
        "id": message.id,
        "room_id": message.room_id,
        "player_id": message.player_id,
        "full_name": full_name,
        "text": message.text,
        "created_at": isoformat(message.created_at),
    }


async def get_room_chat(session: AsyncSession, room_id: int) -> List[Dict]:
    """
    Chat log of a room, oldest first.

    Raises:
        RoomNotFound: If the room does not exist
    """
    await _get_room_model(session, room_id)
    result = await session.execute(
        select(RoomChatMessage, Player.full_name)
        .join(Player, Player.id == RoomChatMessage.player_id)
        .where(RoomChatMessage.room_id == room_id)
        .order_by(RoomChatMessage.id)
    )
    return [_format_chat_message(message, full_name) for message, full_name in result.all()]
