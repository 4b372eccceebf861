"""
User directory service: registration, profile updates and profile reads.

The directory is the authoritative mapping of player id to profile. A
profile read composes the coin balance, the friend graph, the inbox unread
count and the rating view a given viewer is allowed to see.
"""

from typing import Dict, Optional
from datetime import date, datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update, or_
from matchroom.database.models import (
    Player,
    PlayerSkillLevel,
    Gender,
    Sport,
    SkillLevel,
    SubscriptionTier,
)
from matchroom.services import friend_service, inbox_service, rating_service
from matchroom.utils.constants import INITIAL_COINS, MONTHLY_COINS
from matchroom.utils.datetime_utils import utcnow, isoformat, start_of_month, calculate_age
from matchroom.utils.errors import PlayerNotFound, ValidationError
import logging

logger = logging.getLogger(__name__)

# Fields a profile patch may change
UPDATABLE_FIELDS = {
    "full_name",
    "gender",
    "date_of_birth",
    "city",
    "district",
    "avatar_url",
    "subscription_tier",
    "skill_levels",
}


def _validate_gender(gender) -> str:
    try:
        return Gender(gender).value
    except ValueError:
        raise ValidationError(f"Invalid gender: {gender}")


def _validate_tier(tier) -> str:
    try:
        return SubscriptionTier(tier).value
    except ValueError:
        raise ValidationError(f"Invalid subscription tier: {tier}")


def _validate_skill_levels(skill_levels: Optional[Dict]) -> Dict[str, str]:
    """Normalize a sport -> level mapping (one level per sport)."""
    normalized = {}
    for sport, level in (skill_levels or {}).items():
        try:
            normalized[Sport(sport).value] = SkillLevel(level).value
        except ValueError:
            raise ValidationError(f"Invalid skill level {level!r} for sport {sport!r}")
    return normalized


def _validate_birth_date(value) -> Optional[date]:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid date of birth: {value}")


async def get_player_model(session: AsyncSession, player_id: int) -> Player:
    """
    Load a Player row.

    Raises:
        PlayerNotFound: If no player has this id
    """
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise PlayerNotFound(player_id)
    return player


async def get_skill_levels(session: AsyncSession, player_id: int) -> Dict[str, str]:
    """Sport -> level mapping for a player."""
    result = await session.execute(
        select(PlayerSkillLevel.sport, PlayerSkillLevel.level)
        .where(PlayerSkillLevel.player_id == player_id)
        .order_by(PlayerSkillLevel.sport)
    )
    return {sport: level for sport, level in result.all()}


def _format_player(player: Player, skill_levels: Dict[str, str]) -> Dict:
    return {
        "id": player.id,
        "full_name": player.full_name,
        "gender": player.gender,
        "date_of_birth": player.date_of_birth.isoformat() if player.date_of_birth else None,
        "age": calculate_age(player.date_of_birth) if player.date_of_birth else None,
        "city": player.city,
        "district": player.district,
        "avatar_url": player.avatar_url,
        "skill_levels": skill_levels,
        "coins": player.coins,
        "subscription_tier": player.subscription_tier,
        "monthly_reset_at": isoformat(player.monthly_reset_at),
        "created_at": isoformat(player.created_at),
    }


async def get_player(session: AsyncSession, player_id: int) -> Optional[Dict]:
    """
    Get a player's public profile fields.

    Returns:
        Player dict, or None if not found
    """
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        return None
    await session.refresh(player)
    return _format_player(player, await get_skill_levels(session, player_id))


async def _replace_skill_levels(session: AsyncSession, player_id: int, skill_levels: Dict[str, str]):
    await session.execute(delete(PlayerSkillLevel).where(PlayerSkillLevel.player_id == player_id))
    session.add_all(
        PlayerSkillLevel(player_id=player_id, sport=sport, level=level)
        for sport, level in skill_levels.items()
    )
    await session.flush()


async def register(
    session: AsyncSession,
    full_name: str,
    gender: str,
    date_of_birth=None,
    city: Optional[str] = None,
    district: Optional[str] = None,
    skill_levels: Optional[Dict[str, str]] = None,
    avatar_url: Optional[str] = None,
) -> Dict:
    """
    Register a new player.

    The player starts on the free tier with the initial coin grant, and the
    monthly activity clock starts now.

    Args:
        session: Database session
        full_name: Display name (required)
        gender: Gender enum value
        date_of_birth: Birth date (date or ISO string)
        city: City name
        district: District name
        skill_levels: Optional sport -> level mapping
        avatar_url: Optional avatar URL (upload is handled elsewhere)

    Returns:
        Profile dict of the created player

    Raises:
        ValidationError: If a field is invalid
    """
    if not full_name or not full_name.strip():
        raise ValidationError("full_name is required")

    player = Player(
        full_name=full_name.strip(),
        gender=_validate_gender(gender),
        date_of_birth=_validate_birth_date(date_of_birth),
        city=city,
        district=district,
        avatar_url=avatar_url,
        coins=INITIAL_COINS,
        subscription_tier=SubscriptionTier.FREE.value,
        monthly_reset_at=utcnow(),
    )
    levels = _validate_skill_levels(skill_levels)
    session.add(player)
    await session.flush()
    await _replace_skill_levels(session, player.id, levels)
    await session.commit()

    logger.info(f"Registered player {player.id} ({player.full_name}) with {INITIAL_COINS} coins")
    return _format_player(player, levels)


async def update_profile(session: AsyncSession, player_id: int, patch: Dict) -> Dict:
    """
    Apply a partial update to a player's profile.

    Coins and the monthly reset timestamp are not patchable; they only move
    through the ledger and the monthly grant.

    Raises:
        PlayerNotFound: If the player does not exist
        ValidationError: If the patch contains unknown or invalid fields
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    # Validate everything before touching the row
    changes = {
        field: patch[field] for field in ("city", "district", "avatar_url") if field in patch
    }
    if "full_name" in patch:
        if not patch["full_name"] or not patch["full_name"].strip():
            raise ValidationError("full_name cannot be empty")
        changes["full_name"] = patch["full_name"].strip()
    if "gender" in patch:
        changes["gender"] = _validate_gender(patch["gender"])
    if "date_of_birth" in patch:
        changes["date_of_birth"] = _validate_birth_date(patch["date_of_birth"])
    if "subscription_tier" in patch:
        changes["subscription_tier"] = _validate_tier(patch["subscription_tier"])
    levels = _validate_skill_levels(patch["skill_levels"]) if "skill_levels" in patch else None

    player = await get_player_model(session, player_id)
    for field, value in changes.items():
        setattr(player, field, value)
    if levels is not None:
        await _replace_skill_levels(session, player_id, levels)

    await session.commit()
    await session.refresh(player)
    logger.info(f"Updated profile for player {player_id}: {sorted(patch)}")
    return _format_player(player, await get_skill_levels(session, player_id))


async def get_profile(
    session: AsyncSession, player_id: int, viewer_id: Optional[int] = None
) -> Dict:
    """
    Full profile of a player as seen by a viewer.

    The viewer defaults to the player. Friend lists, pending requests and
    the unread count are only included for the player's own profile; the
    rating section follows the visibility rule in rating_service.

    Raises:
        PlayerNotFound: If the player does not exist
    """
    player = await get_player_model(session, player_id)
    await session.refresh(player)
    viewer_id = player_id if viewer_id is None else viewer_id

    profile = _format_player(player, await get_skill_levels(session, player_id))
    profile["ratings"] = await rating_service.get_rating_view(session, player_id, viewer_id)

    if viewer_id == player_id:
        profile["friends"] = sorted(await friend_service.get_friend_ids(session, player_id))
        profile["friend_requests"] = await friend_service.get_pending_requests(session, player_id)
        profile["unread_count"] = await inbox_service.get_unread_count(session, player_id)
    else:
        profile.pop("coins")
        profile["friendship_status"] = await friend_service.get_friendship_status(
            session, viewer_id, player_id
        )
    return profile


async def grant_monthly_coins(
    session: AsyncSession, player_id: int, now: Optional[datetime] = None
) -> Optional[Dict]:
    """
    Deliver the monthly coin grant if a new calendar month has started.

    The grant arrives as a system message carrying an unclaimed reward, so
    coins only move when the player claims it. The month is claimed with a
    conditional UPDATE on monthly_reset_at, so racing calls deliver at most
    one grant per calendar month.

    Args:
        session: Database session
        player_id: Player to check
        now: Current time (defaults to utcnow())

    Returns:
        The system message dict if a grant was delivered, otherwise None
    """
    now = now or utcnow()
    await get_player_model(session, player_id)

    try:
        result = await session.execute(
            update(Player)
            .where(
                Player.id == player_id,
                or_(
                    Player.monthly_reset_at.is_(None),
                    Player.monthly_reset_at < start_of_month(now),
                ),
            )
            .values(monthly_reset_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.rollback()
            return None

        # Commits the month claim together with the reward message
        message = await inbox_service.send_system_message(
            session,
            player_id,
            f"Your monthly {MONTHLY_COINS} coins have arrived. Claim them in your inbox!",
            reward_amount=MONTHLY_COINS,
        )
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Monthly grant of {MONTHLY_COINS} coins delivered to player {player_id}")
    return message
