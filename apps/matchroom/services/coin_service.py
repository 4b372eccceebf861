"""
Coin ledger service.

Owns every player's coin balance. Debits and credits are single
conditional UPDATE statements, so a balance can never go negative even when
two requests race on the same player. Each movement is recorded in
coin_transactions.

Ledger functions flush but never commit: the operation that charges or
rewards coins (room creation, join, reward claim, rating) owns the
transaction boundary, so the fee and the state change commit together.
"""

from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from matchroom.database.models import Player, CoinTransaction, CoinReason
from matchroom.utils.datetime_utils import isoformat
from matchroom.utils.errors import InsufficientFunds, PlayerNotFound
import logging

logger = logging.getLogger(__name__)


async def get_balance(session: AsyncSession, player_id: int) -> int:
    """
    Get a player's current coin balance.

    Raises:
        PlayerNotFound: If the player does not exist
    """
    result = await session.execute(select(Player.coins).where(Player.id == player_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise PlayerNotFound(player_id)
    return balance


async def _record(
    session: AsyncSession, player_id: int, amount: int, reason: CoinReason
) -> int:
    balance = await get_balance(session, player_id)
    session.add(
        CoinTransaction(
            player_id=player_id,
            amount=amount,
            reason=reason.value,
            balance_after=balance,
        )
    )
    await session.flush()
    return balance


async def debit(
    session: AsyncSession, player_id: int, amount: int, reason: CoinReason
) -> int:
    """
    Subtract coins from a player's balance.

    Args:
        session: Database session
        player_id: Player being charged
        amount: Non-negative number of coins
        reason: Ledger reason tag

    Returns:
        Balance after the debit

    Raises:
        InsufficientFunds: If the balance is lower than amount (nothing changes)
        PlayerNotFound: If the player does not exist
        ValueError: If amount is negative
    """
    if amount < 0:
        raise ValueError("Debit amount must be non-negative")
    reason = CoinReason(reason)

    result = await session.execute(
        update(Player)
        .where(Player.id == player_id, Player.coins >= amount)
        .values(coins=Player.coins - amount)
    )
    if result.rowcount == 0:
        balance = await get_balance(session, player_id)
        logger.info(
            f"Debit refused for player {player_id}: balance {balance}, required {amount} ({reason.value})"
        )
        raise InsufficientFunds(balance=balance, required=amount)

    balance = await _record(session, player_id, -amount, reason)
    logger.info(f"Debited {amount} coins from player {player_id} ({reason.value}); balance {balance}")
    return balance


async def credit(
    session: AsyncSession, player_id: int, amount: int, reason: CoinReason
) -> int:
    """
    Add coins to a player's balance.

    Returns:
        Balance after the credit

    Raises:
        PlayerNotFound: If the player does not exist
        ValueError: If amount is negative
    """
    if amount < 0:
        raise ValueError("Credit amount must be non-negative")
    reason = CoinReason(reason)

    result = await session.execute(
        update(Player)
        .where(Player.id == player_id)
        .values(coins=Player.coins + amount)
    )
    if result.rowcount == 0:
        raise PlayerNotFound(player_id)

    balance = await _record(session, player_id, amount, reason)
    logger.info(f"Credited {amount} coins to player {player_id} ({reason.value}); balance {balance}")
    return balance


async def get_transactions(
    session: AsyncSession, player_id: int, limit: int = 50, offset: int = 0
) -> List[Dict]:
    """Ledger history for a player, newest first."""
    result = await session.execute(
        select(CoinTransaction)
        .where(CoinTransaction.player_id == player_id)
        .order_by(CoinTransaction.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [
        {
            "id": tx.id,
            "player_id": tx.player_id,
            "amount": tx.amount,
            "reason": tx.reason,
            "balance_after": tx.balance_after,
            "created_at": isoformat(tx.created_at),
        }
        for tx in result.scalars().all()
    ]
