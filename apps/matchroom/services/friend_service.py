"""
Friend service for managing friend requests and friendships.

Handles sending/accepting/declining requests, listing friends and the
friendship status shown on another player's profile.
"""

from typing import List, Dict, Set, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_, or_, case
from sqlalchemy.exc import IntegrityError
from matchroom.database.models import (
    Friend,
    FriendRequest,
    FriendRequestStatus,
    Player,
)
from matchroom.utils.datetime_utils import isoformat
from matchroom.utils.errors import FriendRequestError, NotFound, PlayerNotFound
import logging

logger = logging.getLogger(__name__)

ALREADY_FRIENDS = "already_friends"
REQUEST_SENT = "request_sent"
REQUEST_PENDING = "request_pending"
NO_RELATION = "none"


async def get_friend_ids(session: AsyncSession, player_id: int) -> Set[int]:
    """Ids of everyone the player is friends with."""
    other_side = case(
        (Friend.player1_id == player_id, Friend.player2_id),
        else_=Friend.player1_id,
    )
    result = await session.execute(
        select(other_side).where(
            or_(Friend.player1_id == player_id, Friend.player2_id == player_id)
        )
    )
    return set(result.scalars().all())


async def are_friends(session: AsyncSession, player_id: int, other_player_id: int) -> bool:
    # Friendship rows store the lower id first
    low, high = min(player_id, other_player_id), max(player_id, other_player_id)
    result = await session.execute(
        select(Friend.id).where(Friend.player1_id == low, Friend.player2_id == high)
    )
    return result.scalar_one_or_none() is not None


async def get_pending_request(
    session: AsyncSession, player_id: int, other_player_id: int
) -> Optional[FriendRequest]:
    """
    The pending request between two players, whichever of them sent it.

    A pair never has more than one, since a second request in either
    direction is refused.
    """
    pair = [player_id, other_player_id]
    result = await session.execute(
        select(FriendRequest).where(
            FriendRequest.status == FriendRequestStatus.PENDING.value,
            FriendRequest.sender_player_id.in_(pair),
            FriendRequest.receiver_player_id.in_(pair),
            FriendRequest.sender_player_id != FriendRequest.receiver_player_id,
        )
    )
    return result.scalars().first()


async def _ensure_players_exist(session: AsyncSession, *player_ids: int):
    result = await session.execute(select(Player.id).where(Player.id.in_(player_ids)))
    found = set(result.scalars().all())
    for player_id in player_ids:
        if player_id not in found:
            raise PlayerNotFound(player_id)


async def send_friend_request(
    session: AsyncSession, sender_player_id: int, receiver_player_id: int
) -> Dict:
    """
    Send a friend request from one player to another.

    The request is stored against the receiver. Self requests, requests
    between existing friends and duplicates of a pending request (in either
    direction) are refused.

    Args:
        session: Database session
        sender_player_id: Player sending the request
        receiver_player_id: Player receiving the request

    Returns:
        Dict with friend request data

    Raises:
        FriendRequestError: If the request is refused
        PlayerNotFound: If either player does not exist
    """
    if sender_player_id == receiver_player_id:
        raise FriendRequestError("Cannot send a friend request to yourself")

    await _ensure_players_exist(session, sender_player_id, receiver_player_id)

    if await are_friends(session, sender_player_id, receiver_player_id):
        raise FriendRequestError("Already friends with this player")

    existing = await get_pending_request(session, sender_player_id, receiver_player_id)
    if existing:
        if existing.sender_player_id == sender_player_id:
            raise FriendRequestError("Friend request already sent")
        raise FriendRequestError(
            "This player already sent you a friend request. Accept it instead."
        )

    friend_request = FriendRequest(
        sender_player_id=sender_player_id,
        receiver_player_id=receiver_player_id,
        status=FriendRequestStatus.PENDING.value,
    )
    session.add(friend_request)
    try:
        await session.commit()
    except IntegrityError:
        # Lost a race against an identical request
        await session.rollback()
        raise FriendRequestError("Friend request already sent")

    logger.info(f"Friend request {sender_player_id} -> {receiver_player_id}")
    return _format_friend_request(friend_request)


async def _get_incoming_request(
    session: AsyncSession, receiver_player_id: int, sender_player_id: int
) -> FriendRequest:
    result = await session.execute(
        select(FriendRequest).where(
            FriendRequest.sender_player_id == sender_player_id,
            FriendRequest.receiver_player_id == receiver_player_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
    )
    friend_request = result.scalar_one_or_none()
    if friend_request is None:
        raise NotFound("Friend request not found")
    return friend_request


async def accept_friend_request(
    session: AsyncSession, receiver_player_id: int, sender_player_id: int
) -> Dict:
    """
    Accept a pending friend request.

    Removes the request and inserts the friendship (normalized so
    player1_id < player2_id) in one commit. A single row serves both
    sides, so the friendship is symmetric.

    Args:
        session: Database session
        receiver_player_id: Player accepting (current user)
        sender_player_id: Player who sent the request

    Returns:
        Dict with the new friendship

    Raises:
        NotFound: If there is no pending request from sender_player_id
    """
    friend_request = await _get_incoming_request(session, receiver_player_id, sender_player_id)
    await session.delete(friend_request)

    # Insert into friends table with normalized ordering (player1_id < player2_id)
    p1, p2 = sorted([sender_player_id, receiver_player_id])
    friendship = Friend(
        player1_id=p1,
        player2_id=p2,
        created_by=receiver_player_id,
    )
    session.add(friendship)
    await session.commit()

    logger.info(f"Player {receiver_player_id} accepted friend request from {sender_player_id}")
    return {
        "id": friendship.id,
        "player_id": receiver_player_id,
        "friend_player_id": sender_player_id,
        "created_at": isoformat(friendship.created_at),
    }


async def decline_friend_request(
    session: AsyncSession, receiver_player_id: int, sender_player_id: int
) -> None:
    """
    Decline a pending friend request by deleting it.

    Deleting the row lets the sender re-send later without hitting the
    unique constraint on (sender_player_id, receiver_player_id).

    Raises:
        NotFound: If there is no pending request from sender_player_id
    """
    friend_request = await _get_incoming_request(session, receiver_player_id, sender_player_id)
    await session.delete(friend_request)
    await session.commit()
    logger.info(f"Player {receiver_player_id} declined friend request from {sender_player_id}")


async def remove_friend(
    session: AsyncSession, player_id: int, friend_player_id: int
) -> None:
    """
    Remove a friendship between two players.

    Deletes the friendship row and cleans up any requests between the pair.

    Raises:
        FriendRequestError: If the players are not friends
    """
    p1, p2 = sorted([player_id, friend_player_id])

    result = await session.execute(
        select(Friend).where(
            and_(Friend.player1_id == p1, Friend.player2_id == p2)
        )
    )
    friendship = result.scalar_one_or_none()

    if not friendship:
        raise FriendRequestError("Not friends with this player")

    await session.delete(friendship)

    await session.execute(
        delete(FriendRequest).where(
            or_(
                and_(
                    FriendRequest.sender_player_id == player_id,
                    FriendRequest.receiver_player_id == friend_player_id,
                ),
                and_(
                    FriendRequest.sender_player_id == friend_player_id,
                    FriendRequest.receiver_player_id == player_id,
                ),
            )
        )
    )
    await session.commit()
    logger.info(f"Player {player_id} removed friend {friend_player_id}")


async def get_friends(session: AsyncSession, player_id: int) -> List[Dict]:
    """
    Get the friends of a player with basic profile fields, ordered by name.
    """
    friend_ids = await get_friend_ids(session, player_id)
    if not friend_ids:
        return []

    result = await session.execute(
        select(Player.id, Player.full_name, Player.avatar_url, Player.city)
        .where(Player.id.in_(friend_ids))
        .order_by(Player.full_name, Player.id)
    )
    return [
        {
            "player_id": row.id,
            "full_name": row.full_name,
            "avatar_url": row.avatar_url,
            "city": row.city,
        }
        for row in result.all()
    ]


async def get_pending_requests(session: AsyncSession, player_id: int) -> List[Dict]:
    """
    Get pending friend requests received by a player, oldest first.

    Returns:
        List of dicts with sender id and name
    """
    result = await session.execute(
        select(FriendRequest, Player.full_name)
        .join(Player, Player.id == FriendRequest.sender_player_id)
        .where(
            FriendRequest.receiver_player_id == player_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .order_by(FriendRequest.id)
    )
    return [
        _format_friend_request(friend_request, sender_name=sender_name)
        for friend_request, sender_name in result.all()
    ]


async def get_friendship_status(
    session: AsyncSession, viewer_id: int, target_id: int
) -> str:
    """
    Relationship between a viewer and another player.

    Precedence: already_friends > request_sent (by viewer) >
    request_pending (from target) > none.
    """
    if await are_friends(session, viewer_id, target_id):
        return ALREADY_FRIENDS

    result = await session.execute(
        select(FriendRequest.sender_player_id).where(
            FriendRequest.status == FriendRequestStatus.PENDING.value,
            or_(
                and_(
                    FriendRequest.sender_player_id == viewer_id,
                    FriendRequest.receiver_player_id == target_id,
                ),
                and_(
                    FriendRequest.sender_player_id == target_id,
                    FriendRequest.receiver_player_id == viewer_id,
                ),
            ),
        )
    )
    senders = set(result.scalars().all())
    if viewer_id in senders:
        return REQUEST_SENT
    if target_id in senders:
        return REQUEST_PENDING
    return NO_RELATION


def _format_friend_request(friend_request: FriendRequest, sender_name: Optional[str] = None) -> Dict:
    return {
        "id": friend_request.id,
        "sender_player_id": friend_request.sender_player_id,
        "sender_name": sender_name,
        "receiver_player_id": friend_request.receiver_player_id,
        "status": friend_request.status,
        "created_at": isoformat(friend_request.created_at),
    }
