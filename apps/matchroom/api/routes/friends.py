"""Friend system route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from matchroom.database.db import get_db_session
from matchroom.services import friend_service
from matchroom.api.auth_dependencies import require_player
from matchroom.models.schemas import (
    FriendRequestCreate,
    FriendRequestResponse,
    FriendResponse,
    FriendshipResponse,
    FriendshipStatusResponse,
)
from matchroom.utils.errors import MatchroomError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/friends/request", response_model=FriendRequestResponse, status_code=201)
async def send_friend_request(
    payload: FriendRequestCreate,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a friend request to another player."""
    try:
        return await friend_service.send_friend_request(
            session, player["id"], payload.receiver_player_id
        )
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending friend request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error sending friend request")


@router.post("/api/friends/requests/{sender_player_id}/accept", response_model=FriendshipResponse)
async def accept_friend_request(
    sender_player_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept a pending friend request from another player."""
    try:
        return await friend_service.accept_friend_request(session, player["id"], sender_player_id)
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error accepting friend request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error accepting friend request")


@router.post("/api/friends/requests/{sender_player_id}/decline", status_code=204)
async def decline_friend_request(
    sender_player_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a pending friend request (deletes the row so sender can re-request)."""
    try:
        await friend_service.decline_friend_request(session, player["id"], sender_player_id)
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error declining friend request: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error declining friend request")


@router.get("/api/friends", response_model=List[FriendResponse])
async def get_friends(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the acting player's friends."""
    try:
        return await friend_service.get_friends(session, player["id"])
    except Exception as e:
        logger.error(f"Error fetching friends: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching friends")


@router.get("/api/friends/requests", response_model=List[FriendRequestResponse])
async def get_friend_requests(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Get pending friend requests sent to the acting player."""
    try:
        return await friend_service.get_pending_requests(session, player["id"])
    except Exception as e:
        logger.error(f"Error fetching friend requests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching friend requests")


@router.get("/api/friends/status/{player_id}", response_model=FriendshipStatusResponse)
async def get_friendship_status(
    player_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Relationship between the acting player and another player."""
    try:
        status = await friend_service.get_friendship_status(session, player["id"], player_id)
        return {"player_id": player_id, "status": status}
    except Exception as e:
        logger.error(f"Error fetching friendship status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching friendship status")


@router.delete("/api/friends/{player_id}")
async def remove_friend(
    player_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a friend (unfriend)."""
    try:
        await friend_service.remove_friend(session, player["id"], player_id)
        return {"status": "ok", "message": "Friend removed"}
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error removing friend: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error removing friend")
