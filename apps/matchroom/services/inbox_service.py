"""
Inbox service: direct messages, system messages and reward claims.

Every participant owns a copy of each conversation, keyed by the
counterpart's player id (as a string) or "system". A direct message is
written twice, once per participant, sharing message_uid and created_at
but with independent read flags.

System messages may carry a coin reward. Claiming flips reward_claimed with
a conditional UPDATE, so a reward is credited at most once no matter how
many claims race.
"""

import uuid
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError
from matchroom.database.models import Conversation, DirectMessage, Player, CoinReason
from matchroom.services import coin_service
from matchroom.utils.constants import SYSTEM_SENDER
from matchroom.utils.datetime_utils import utcnow, isoformat
from matchroom.utils.errors import (
    AlreadyClaimed,
    PlayerNotFound,
    RewardNotFound,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


def conversation_key(counterpart) -> str:
    """Normalize a counterpart (player id or 'system') to a conversation key."""
    return str(counterpart)


async def _find_conversation(
    session: AsyncSession, owner_player_id: int, key: str
) -> Optional[Conversation]:
    result = await session.execute(
        select(Conversation).where(
            Conversation.owner_player_id == owner_player_id,
            Conversation.counterpart_key == key,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_conversation(
    session: AsyncSession, owner_player_id: int, counterpart
) -> Conversation:
    """
    Get the owner's copy of a conversation, creating it on first use.

    The insert runs in a savepoint. If a concurrent request created the
    same conversation first, the savepoint is rolled back and that row is
    returned instead.
    """
    key = conversation_key(counterpart)
    conversation = await _find_conversation(session, owner_player_id, key)
    if conversation is not None:
        return conversation

    conversation = Conversation(owner_player_id=owner_player_id, counterpart_key=key)
    try:
        async with session.begin_nested():
            session.add(conversation)
            await session.flush()
    except IntegrityError:
        logger.info(f"Conversation {owner_player_id}/{key} created concurrently; reusing it")
        conversation = await _find_conversation(session, owner_player_id, key)
        if conversation is None:
            raise
    return conversation


def _format_message(message: DirectMessage) -> Dict:
    reward = None
    if message.reward_amount is not None:
        reward = {"amount": message.reward_amount, "claimed": message.reward_claimed}
    return {
        "id": message.message_uid,
        "sender": message.sender_key,
        "text": message.text,
        "is_read": message.is_read,
        "reward": reward,
        "created_at": isoformat(message.created_at),
    }


async def send_direct_message(
    session: AsyncSession, sender_player_id: int, receiver_player_id: int, text: str
) -> Dict:
    """
    Send a direct message between two players.

    The sender's copy is stored read under the receiver's key; the
    receiver's copy is stored unread under the sender's key.

    Returns:
        The sender's copy of the message

    Raises:
        ValidationError: If the text is blank or the players are the same
        PlayerNotFound: If either player does not exist
    """
    if not text or not text.strip():
        raise ValidationError("Message text cannot be empty")
    if sender_player_id == receiver_player_id:
        raise ValidationError("Cannot send a message to yourself")

    result = await session.execute(
        select(Player.id).where(Player.id.in_([sender_player_id, receiver_player_id]))
    )
    found = set(result.scalars().all())
    for player_id in (sender_player_id, receiver_player_id):
        if player_id not in found:
            raise PlayerNotFound(player_id)

    message_uid = str(uuid.uuid4())
    created_at = utcnow()
    text = text.strip()

    try:
        sender_conversation = await get_or_create_conversation(
            session, sender_player_id, receiver_player_id
        )
        receiver_conversation = await get_or_create_conversation(
            session, receiver_player_id, sender_player_id
        )
        sender_copy = DirectMessage(
            conversation_id=sender_conversation.id,
            owner_player_id=sender_player_id,
            message_uid=message_uid,
            sender_key=str(sender_player_id),
            text=text,
            is_read=True,
            created_at=created_at,
        )
        receiver_copy = DirectMessage(
            conversation_id=receiver_conversation.id,
            owner_player_id=receiver_player_id,
            message_uid=message_uid,
            sender_key=str(sender_player_id),
            text=text,
            is_read=False,
            created_at=created_at,
        )
        session.add_all([sender_copy, receiver_copy])
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Direct message {message_uid} from {sender_player_id} to {receiver_player_id}")
    return _format_message(sender_copy)


async def send_system_message(
    session: AsyncSession,
    player_id: int,
    text: str,
    reward_amount: Optional[int] = None,
) -> Dict:
    """
    Append an unread system message to a player's inbox.

    Args:
        session: Database session
        player_id: Recipient
        text: Message body
        reward_amount: Optional number of coins the player can claim

    Returns:
        The message dict
    """
    if reward_amount is not None and reward_amount <= 0:
        raise ValidationError("Reward amount must be positive")

    try:
        conversation = await get_or_create_conversation(session, player_id, SYSTEM_SENDER)
        message = DirectMessage(
            conversation_id=conversation.id,
            owner_player_id=player_id,
            message_uid=str(uuid.uuid4()),
            sender_key=SYSTEM_SENDER,
            text=text,
            is_read=False,
            reward_amount=reward_amount,
            reward_claimed=False,
        )
        session.add(message)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"System message {message.message_uid} to player {player_id} (reward {reward_amount})")
    return _format_message(message)


async def claim_reward(session: AsyncSession, player_id: int, message_uid: str) -> Dict:
    """
    Claim the coin reward attached to a system message.

    Marking the reward claimed, marking the message read and crediting the
    ledger commit together.

    Returns:
        Dict with the credited amount and the new balance

    Raises:
        RewardNotFound: If the message is missing or carries no reward
        AlreadyClaimed: If the reward was claimed before
    """
    result = await session.execute(
        select(DirectMessage)
        .join(Conversation, Conversation.id == DirectMessage.conversation_id)
        .where(
            Conversation.owner_player_id == player_id,
            Conversation.counterpart_key == SYSTEM_SENDER,
            DirectMessage.message_uid == message_uid,
        )
    )
    message = result.scalar_one_or_none()
    if message is None or message.reward_amount is None:
        raise RewardNotFound(message_uid)
    if message.reward_claimed:
        raise AlreadyClaimed(message_uid)

    try:
        result = await session.execute(
            update(DirectMessage)
            .where(DirectMessage.id == message.id, DirectMessage.reward_claimed == False)  # noqa: E712
            .values(reward_claimed=True, is_read=True)
        )
        if result.rowcount == 0:
            raise AlreadyClaimed(message_uid)

        balance = await coin_service.credit(
            session, player_id, message.reward_amount, CoinReason.REWARD_CLAIM
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Player {player_id} claimed reward {message_uid} ({message.reward_amount} coins)")
    return {"amount": message.reward_amount, "balance": balance}


async def mark_conversation_read(
    session: AsyncSession, player_id: int, counterpart
) -> int:
    """
    Mark every message in the player's copy of a conversation as read.

    The counterpart's copy is untouched.

    Returns:
        Number of messages that changed
    """
    conversation_ids = select(Conversation.id).where(
        Conversation.owner_player_id == player_id,
        Conversation.counterpart_key == conversation_key(counterpart),
    )
    result = await session.execute(
        update(DirectMessage)
        .where(
            DirectMessage.owner_player_id == player_id,
            DirectMessage.conversation_id.in_(conversation_ids),
            DirectMessage.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session="fetch")
    )
    await session.commit()
    return result.rowcount


async def get_conversations(session: AsyncSession, player_id: int) -> List[Dict]:
    """
    List a player's conversations, most recent message first.

    Each entry carries the counterpart key and name, the last message and
    the number of unread messages.
    """
    latest = (
        select(
            DirectMessage.conversation_id.label("conversation_id"),
            func.max(DirectMessage.id).label("last_id"),
            func.sum(case((DirectMessage.is_read.is_(False), 1), else_=0)).label("unread"),
        )
        .where(DirectMessage.owner_player_id == player_id)
        .group_by(DirectMessage.conversation_id)
        .subquery()
    )
    result = await session.execute(
        select(Conversation, DirectMessage, latest.c.unread)
        .join(latest, latest.c.conversation_id == Conversation.id)
        .join(DirectMessage, DirectMessage.id == latest.c.last_id)
        .where(Conversation.owner_player_id == player_id)
        .order_by(DirectMessage.id.desc())
    )
    rows = result.all()

    counterpart_ids = [
        int(conversation.counterpart_key)
        for conversation, _, _ in rows
        if conversation.counterpart_key != SYSTEM_SENDER
    ]
    names = {}
    if counterpart_ids:
        name_result = await session.execute(
            select(Player.id, Player.full_name).where(Player.id.in_(counterpart_ids))
        )
        names = {str(row.id): row.full_name for row in name_result.all()}

    return [
        {
            "key": conversation.counterpart_key,
            "counterpart_name": names.get(conversation.counterpart_key, SYSTEM_SENDER),
            "last_message": _format_message(last_message),
            "unread_count": int(unread or 0),
            "has_unread": bool(unread),
        }
        for conversation, last_message, unread in rows
    ]


async def get_conversation_messages(
    session: AsyncSession, player_id: int, counterpart
) -> List[Dict]:
    """Messages in the player's copy of a conversation, oldest first."""
    result = await session.execute(
        select(DirectMessage)
        .join(Conversation, Conversation.id == DirectMessage.conversation_id)
        .where(
            Conversation.owner_player_id == player_id,
            Conversation.counterpart_key == conversation_key(counterpart),
        )
        .order_by(DirectMessage.id)
    )
    return [_format_message(message) for message in result.scalars().all()]


async def get_unread_count(session: AsyncSession, player_id: int) -> int:
    """Total unread messages across all of a player's conversations."""
    result = await session.execute(
        select(func.count(DirectMessage.id)).where(
            DirectMessage.owner_player_id == player_id,
            DirectMessage.is_read.is_(False),
        )
    )
    return result.scalar_one() or 0
