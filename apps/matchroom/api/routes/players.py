"""Player directory route handlers: registration, profiles and coins."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchroom.database.db import get_db_session
from matchroom.services import coin_service, user_service
from matchroom.api.auth_dependencies import require_player
from matchroom.models.schemas import (
    CoinTransactionResponse,
    PlayerCreate,
    PlayerResponse,
    PlayerUpdate,
    ProfileResponse,
)
from matchroom.utils.errors import MatchroomError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/players", response_model=PlayerResponse, status_code=201)
async def register_player(
    payload: PlayerCreate,
    session: AsyncSession = Depends(get_db_session),
):
    """Register a new player with the initial coin grant."""
    try:
        return await user_service.register(session, **payload.model_dump())
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error registering player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error registering player")


@router.get("/api/players/me", response_model=ProfileResponse)
async def get_my_profile(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the acting player's full profile."""
    try:
        return await user_service.get_profile(session, player["id"])
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error fetching profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching profile")


@router.patch("/api/players/me", response_model=PlayerResponse)
async def update_my_profile(
    payload: PlayerUpdate,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the acting player's profile. Only fields present in the body change."""
    try:
        return await user_service.update_profile(
            session, player["id"], payload.model_dump(exclude_unset=True)
        )
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating profile")


@router.post("/api/players/me/monthly-grant")
async def claim_monthly_grant(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Deliver this month's coin grant to the inbox if it has not arrived yet.

    Returns {"granted": false} when the grant was already delivered this month.
    """
    try:
        message = await user_service.grant_monthly_coins(session, player["id"])
        if message is None:
            return {"granted": False, "message": None}
        return {"granted": True, "message": message}
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error delivering monthly grant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error delivering monthly grant")


@router.get("/api/players/me/transactions", response_model=List[CoinTransactionResponse])
async def get_my_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Coin ledger history for the acting player, newest first."""
    try:
        return await coin_service.get_transactions(session, player["id"], limit=limit, offset=offset)
    except Exception as e:
        logger.error(f"Error fetching transactions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching transactions")


@router.get("/api/players/{player_id}", response_model=ProfileResponse)
async def get_player_profile(
    player_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Get another player's profile as the acting player sees it."""
    try:
        return await user_service.get_profile(session, player_id, viewer_id=player["id"])
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error fetching player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching player")
