"""
Acting-player dependencies for FastAPI routes.

Authentication happens upstream; requests identify the acting player with
the X-Player-Id header.
"""

from fastapi import Depends, Header, HTTPException, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from matchroom.services import user_service
from matchroom.database.db import get_db_session


async def get_current_player_optional(
    x_player_id: Optional[int] = Header(None),
    session: AsyncSession = Depends(get_db_session),
) -> Optional[dict]:
    """
    Resolve the acting player if the header is present.

    Returns:
        Player dictionary, or None if no header was sent

    Raises:
        HTTPException: 404 if the header names an unknown player
    """
    if x_player_id is None:
        return None

    player = await user_service.get_player(session, x_player_id)
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Player {x_player_id} not found",
        )
    return player


async def require_player(player: Optional[dict] = Depends(get_current_player_optional)) -> dict:
    """Dependency that requires an acting player."""
    if player is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Player-Id header is required",
        )
    return player
