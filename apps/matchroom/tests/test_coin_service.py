"""
Unit tests for the coin ledger.
"""

import pytest
from matchroom.services import coin_service
from matchroom.database.models import CoinReason
from matchroom.utils.errors import InsufficientFunds, PlayerNotFound


@pytest.mark.asyncio
async def test_debit_subtracts_and_records(db_session, players):
    balance = await coin_service.debit(db_session, players["alice"], 5, CoinReason.CREATE_ROOM)
    await db_session.commit()

    assert balance == 15
    assert await coin_service.get_balance(db_session, players["alice"]) == 15

    transactions = await coin_service.get_transactions(db_session, players["alice"])
    assert len(transactions) == 1
    assert transactions[0]["amount"] == -5
    assert transactions[0]["reason"] == "create_room"
    assert transactions[0]["balance_after"] == 15


@pytest.mark.asyncio
async def test_overdrawing_debit_is_rejected_without_mutation(db_session, make_player):
    poor = await make_player("Poor Pete", coins=2)

    with pytest.raises(InsufficientFunds) as exc_info:
        await coin_service.debit(db_session, poor, 5, CoinReason.JOIN_ROOM)

    assert exc_info.value.balance == 2
    assert exc_info.value.required == 5
    assert await coin_service.get_balance(db_session, poor) == 2
    assert await coin_service.get_transactions(db_session, poor) == []


@pytest.mark.asyncio
async def test_debit_exact_balance_reaches_zero(db_session, make_player):
    player = await make_player("Exact Emma", coins=5)

    assert await coin_service.debit(db_session, player, 5, CoinReason.JOIN_ROOM) == 0

    with pytest.raises(InsufficientFunds):
        await coin_service.debit(db_session, player, 1, CoinReason.JOIN_ROOM)
    assert await coin_service.get_balance(db_session, player) == 0


@pytest.mark.asyncio
async def test_balance_never_negative_over_sequence(db_session, players):
    player = players["bob"]
    for amount in [7, 7, 7, 3, 1]:
        try:
            await coin_service.debit(db_session, player, amount, CoinReason.JOIN_ROOM)
        except InsufficientFunds:
            pass
        await coin_service.credit(db_session, player, 1, CoinReason.RATING_REWARD)
        assert await coin_service.get_balance(db_session, player) >= 0


@pytest.mark.asyncio
async def test_credit_adds_coins(db_session, players):
    balance = await coin_service.credit(db_session, players["carol"], 10, CoinReason.REWARD_CLAIM)
    assert balance == 30


@pytest.mark.asyncio
async def test_negative_amounts_are_rejected(db_session, players):
    with pytest.raises(ValueError):
        await coin_service.credit(db_session, players["carol"], -1, CoinReason.REWARD_CLAIM)
    with pytest.raises(ValueError):
        await coin_service.debit(db_session, players["carol"], -1, CoinReason.JOIN_ROOM)


@pytest.mark.asyncio
async def test_unknown_player(db_session):
    with pytest.raises(PlayerNotFound):
        await coin_service.get_balance(db_session, 999)
    with pytest.raises(PlayerNotFound):
        await coin_service.credit(db_session, 999, 1, CoinReason.REWARD_CLAIM)


@pytest.mark.asyncio
async def test_transactions_newest_first(db_session, players):
    await coin_service.debit(db_session, players["dave"], 5, CoinReason.CREATE_ROOM)
    await coin_service.credit(db_session, players["dave"], 2, CoinReason.RATING_REWARD)
    await db_session.commit()

    transactions = await coin_service.get_transactions(db_session, players["dave"])
    assert [t["reason"] for t in transactions] == ["rating_reward", "create_room"]
    assert [t["balance_after"] for t in transactions] == [17, 15]
