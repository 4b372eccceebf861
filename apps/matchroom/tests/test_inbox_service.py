"""
Tests for the inbox: dual-copy direct messages, read state and reward claims.
"""

import pytest
from sqlalchemy import select

from matchroom.services import coin_service, inbox_service
from matchroom.database.models import CoinTransaction, Conversation, DirectMessage
from matchroom.utils.errors import AlreadyClaimed, RewardNotFound, ValidationError


@pytest.mark.asyncio
async def test_direct_message_dual_copy(db_session, players):
    alice, bob = players["alice"], players["bob"]

    sent = await inbox_service.send_direct_message(db_session, alice, bob, "Tennis on Sunday?")
    assert sent["is_read"] is True
    assert sent["sender"] == str(alice)

    alice_copy = await inbox_service.get_conversation_messages(db_session, alice, bob)
    bob_copy = await inbox_service.get_conversation_messages(db_session, bob, alice)

    assert len(alice_copy) == len(bob_copy) == 1
    assert alice_copy[0]["id"] == bob_copy[0]["id"]
    assert alice_copy[0]["created_at"] == bob_copy[0]["created_at"]
    assert alice_copy[0]["is_read"] is True
    assert bob_copy[0]["is_read"] is False


@pytest.mark.asyncio
async def test_mark_read_only_touches_own_copy(db_session, players):
    alice, bob = players["alice"], players["bob"]
    await inbox_service.send_direct_message(db_session, alice, bob, "Hi")
    await inbox_service.send_direct_message(db_session, alice, bob, "Are you free?")
    await inbox_service.send_direct_message(db_session, bob, alice, "Yes!")

    assert await inbox_service.get_unread_count(db_session, bob) == 2
    assert await inbox_service.mark_conversation_read(db_session, bob, str(alice)) == 2
    assert await inbox_service.get_unread_count(db_session, bob) == 0

    # Alice still has Bob's reply unread
    assert await inbox_service.get_unread_count(db_session, alice) == 1


@pytest.mark.asyncio
async def test_conversations_ordered_by_latest_message(db_session, players):
    alice = players["alice"]
    await inbox_service.send_direct_message(db_session, players["bob"], alice, "first")
    await inbox_service.send_system_message(db_session, alice, "Welcome!")
    await inbox_service.send_direct_message(db_session, players["carol"], alice, "latest")

    conversations = await inbox_service.get_conversations(db_session, alice)
    assert [c["key"] for c in conversations] == [str(players["carol"]), "system", str(players["bob"])]
    assert conversations[0]["counterpart_name"] == "Carol Wu"
    assert conversations[0]["last_message"]["text"] == "latest"
    assert all(c["has_unread"] for c in conversations)


@pytest.mark.asyncio
async def test_invalid_direct_messages(db_session, players):
    with pytest.raises(ValidationError):
        await inbox_service.send_direct_message(db_session, players["alice"], players["bob"], "   ")
    with pytest.raises(ValidationError):
        await inbox_service.send_direct_message(db_session, players["alice"], players["alice"], "me")


@pytest.mark.asyncio
async def test_claim_reward_once(db_session, players):
    alice = players["alice"]
    message = await inbox_service.send_system_message(
        db_session, alice, "Monthly coins", reward_amount=10
    )
    assert message["reward"] == {"amount": 10, "claimed": False}

    result = await inbox_service.claim_reward(db_session, alice, message["id"])
    assert result == {"amount": 10, "balance": 30}

    stored = await inbox_service.get_conversation_messages(db_session, alice, "system")
    assert stored[0]["reward"] == {"amount": 10, "claimed": True}
    assert stored[0]["is_read"] is True

    with pytest.raises(AlreadyClaimed):
        await inbox_service.claim_reward(db_session, alice, message["id"])
    assert await coin_service.get_balance(db_session, alice) == 30

    credits = await db_session.execute(
        select(CoinTransaction).where(CoinTransaction.player_id == alice)
    )
    assert len(credits.scalars().all()) == 1


@pytest.mark.asyncio
async def test_claim_race_credits_once(db_session, players):
    """The conditional update refuses a claim whose flag flipped after the read."""
    alice = players["alice"]
    message = await inbox_service.send_system_message(db_session, alice, "Bonus", reward_amount=10)
    await inbox_service.claim_reward(db_session, alice, message["id"])

    # Simulate a second request that read the row before the first claim committed
    row = (
        await db_session.execute(
            select(DirectMessage).where(DirectMessage.message_uid == message["id"])
        )
    ).scalar_one()
    row.reward_claimed = False  # stale in-memory view, never flushed (autoflush is off)

    with pytest.raises(AlreadyClaimed):
        await inbox_service.claim_reward(db_session, alice, message["id"])
    assert await coin_service.get_balance(db_session, alice) == 30


@pytest.mark.asyncio
async def test_claim_reward_not_found(db_session, players):
    alice, bob = players["alice"], players["bob"]
    plain = await inbox_service.send_system_message(db_session, alice, "No reward here")
    dm = await inbox_service.send_direct_message(db_session, bob, alice, "hello")
    bobs_reward = await inbox_service.send_system_message(db_session, bob, "Bob's", reward_amount=5)

    with pytest.raises(RewardNotFound):
        await inbox_service.claim_reward(db_session, alice, "missing-uid")
    with pytest.raises(RewardNotFound):
        await inbox_service.claim_reward(db_session, alice, plain["id"])
    with pytest.raises(RewardNotFound):
        await inbox_service.claim_reward(db_session, alice, dm["id"])
    with pytest.raises(RewardNotFound):
        await inbox_service.claim_reward(db_session, alice, bobs_reward["id"])
    assert await coin_service.get_balance(db_session, alice) == 20


@pytest.mark.asyncio
async def test_system_message_reward_must_be_positive(db_session, players):
    with pytest.raises(ValidationError):
        await inbox_service.send_system_message(db_session, players["alice"], "Oops", reward_amount=0)


@pytest.mark.asyncio
async def test_conversation_created_concurrently_is_reused(db_session, players, monkeypatch):
    """Losing the insert race on a conversation falls back to the winner's row."""
    alice = players["alice"]
    existing = await inbox_service.get_or_create_conversation(db_session, alice, "system")
    await db_session.commit()

    real_find = inbox_service._find_conversation
    lookups = []

    async def find_before_other_commit(session, owner_player_id, key):
        # First lookup runs before the competing request has committed
        lookups.append(key)
        if len(lookups) == 1:
            return None
        return await real_find(session, owner_player_id, key)

    monkeypatch.setattr(inbox_service, "_find_conversation", find_before_other_commit, raising=True)

    message = await inbox_service.send_system_message(db_session, alice, "Welcome!", reward_amount=5)
    assert message["reward"] == {"amount": 5, "claimed": False}
    assert len(lookups) == 2

    result = await db_session.execute(
        select(Conversation).where(Conversation.owner_player_id == alice)
    )
    conversations = result.scalars().all()
    assert [c.id for c in conversations] == [existing.id]

    stored = await inbox_service.get_conversation_messages(db_session, alice, "system")
    assert [m["text"] for m in stored] == ["Welcome!"]
