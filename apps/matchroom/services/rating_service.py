"""
Rating service: post-meetup peer ratings and reputation aggregation.

Ratings are stored in full. What a viewer sees is decided at read time:
the ratee and subscribed viewers get the per-sport breakdown and comments,
everyone else only the overall rating.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from matchroom.database.models import (
    CoinReason,
    Player,
    PlayerRating,
    Room,
    RoomPlayer,
    SubscriptionTier,
)
from matchroom.services import coin_service
from matchroom.utils.constants import COINS_PER_RATING, MIN_SCORE, MAX_SCORE
from matchroom.utils.datetime_utils import utcnow, ensure_utc
from matchroom.utils.errors import (
    DuplicateRating,
    PlayerNotFound,
    RatingNotOpen,
    RoomNotFound,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


def average(scores: Iterable[float]) -> float:
    """
    Arithmetic mean of a sequence of scores.

    An empty sequence averages to 0.

    Examples:
        >>> average([])
        0
        >>> average([4, 5])
        4.5
    """
    scores = list(scores)
    if not scores:
        return 0
    return sum(scores) / len(scores)


def overall_rating(ratings: Dict) -> float:
    """
    Overall rating from a stored projection.

    Mean over every intensity score of every sport together with every
    friendliness score.
    """
    all_intensity = [score for scores in ratings["intensity"].values() for score in scores]
    return average(all_intensity + list(ratings["friendliness"]))


def _validate_score(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer between {MIN_SCORE} and {MAX_SCORE}")
    if value < MIN_SCORE or value > MAX_SCORE:
        raise ValidationError(f"{field} must be between {MIN_SCORE} and {MAX_SCORE}")
    return value


async def submit_ratings(
    session: AsyncSession,
    room_id: int,
    reviewer_player_id: int,
    ratings: List[Dict],
    now: Optional[datetime] = None,
) -> Dict:
    """
    Submit a reviewer's ratings of the other players in a room.

    Each entry has rated_player_id, intensity (1-5, stored under the room's
    sport), friendliness (1-5) and an optional comment. The reviewer earns
    COINS_PER_RATING coins per rating. The whole batch is stored together
    with the reward, or not at all.

    Args:
        session: Database session
        room_id: Room that was played
        reviewer_player_id: Player submitting the ratings
        ratings: List of rating entries
        now: Current time (defaults to utcnow())

    Returns:
        Dict with submitted count, coins earned and the reviewer's balance

    Raises:
        RoomNotFound: If the room does not exist
        RatingNotOpen: If the room's scheduled time has not passed yet
        ValidationError: If the reviewer or a ratee is not in the room, or a score is invalid
        DuplicateRating: If the reviewer already rated one of the ratees for this room
    """
    now = now or utcnow()
    room = await session.get(Room, room_id)
    if room is None:
        raise RoomNotFound(room_id)
    if ensure_utc(room.scheduled_at) > ensure_utc(now):
        raise RatingNotOpen(room_id)
    if not ratings:
        raise ValidationError("No ratings submitted")

    result = await session.execute(
        select(RoomPlayer.player_id).where(RoomPlayer.room_id == room_id)
    )
    members = set(result.scalars().all())
    if reviewer_player_id not in members:
        raise ValidationError("Only room members can submit ratings")

    rows = []
    seen = set()
    for entry in ratings:
        rated_player_id = entry.get("rated_player_id")
        if rated_player_id == reviewer_player_id:
            raise ValidationError("Cannot rate yourself")
        if rated_player_id not in members:
            raise ValidationError(f"Player {rated_player_id} did not join this room")
        if rated_player_id in seen:
            raise DuplicateRating(f"Player {rated_player_id} rated twice in one submission")
        seen.add(rated_player_id)

        comment = (entry.get("comment") or "").strip() or None
        rows.append(
            PlayerRating(
                room_id=room_id,
                reviewer_player_id=reviewer_player_id,
                rated_player_id=rated_player_id,
                sport=room.sport,
                intensity=_validate_score(entry.get("intensity"), "intensity"),
                friendliness=_validate_score(entry.get("friendliness"), "friendliness"),
                comment=comment,
            )
        )

    result = await session.execute(
        select(PlayerRating.rated_player_id).where(
            PlayerRating.room_id == room_id,
            PlayerRating.reviewer_player_id == reviewer_player_id,
            PlayerRating.rated_player_id.in_(seen),
        )
    )
    already_rated = sorted(result.scalars().all())
    if already_rated:
        raise DuplicateRating(
            f"Already rated player(s) {', '.join(str(p) for p in already_rated)} for this room"
        )

    earned = COINS_PER_RATING * len(rows)
    try:
        session.add_all(rows)
        await session.flush()
        balance = await coin_service.credit(
            session, reviewer_player_id, earned, CoinReason.RATING_REWARD
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"Player {reviewer_player_id} submitted {len(rows)} rating(s) for room {room_id}, earned {earned} coins"
    )
    return {"submitted": len(rows), "coins_earned": earned, "balance": balance}


async def get_player_ratings(session: AsyncSession, player_id: int) -> Dict:
    """
    Stored rating projection for a player.

    Returns:
        Dict with intensity (sport -> list of scores), friendliness (list of
        scores) and comments (list of {from_player_id, text})
    """
    result = await session.execute(
        select(PlayerRating)
        .where(PlayerRating.rated_player_id == player_id)
        .order_by(PlayerRating.id)
    )
    projection = {"intensity": {}, "friendliness": [], "comments": []}
    for rating in result.scalars().all():
        projection["intensity"].setdefault(rating.sport, []).append(rating.intensity)
        projection["friendliness"].append(rating.friendliness)
        if rating.comment:
            projection["comments"].append(
                {"from_player_id": rating.reviewer_player_id, "text": rating.comment}
            )
    return projection


async def can_view_details(session: AsyncSession, player_id: int, viewer_id: int) -> bool:
    """The ratee and subscribed viewers may see the full breakdown."""
    if viewer_id == player_id:
        return True
    result = await session.execute(
        select(Player.subscription_tier).where(Player.id == viewer_id)
    )
    tier = result.scalar_one_or_none()
    if tier is None:
        raise PlayerNotFound(viewer_id)
    return tier == SubscriptionTier.SUBSCRIBED.value


async def get_rating_view(session: AsyncSession, player_id: int, viewer_id: int) -> Dict:
    """
    Ratings of a player as a given viewer may see them.
    """
    ratings = await get_player_ratings(session, player_id)
    view = {
        "overall": overall_rating(ratings),
        "rating_count": len(ratings["friendliness"]),
        "details_visible": await can_view_details(session, player_id, viewer_id),
    }
    if view["details_visible"]:
        view["friendliness"] = average(ratings["friendliness"])
        view["intensity"] = {
            sport: average(scores) for sport, scores in sorted(ratings["intensity"].items())
        }
        view["comments"] = ratings["comments"]
    return view
