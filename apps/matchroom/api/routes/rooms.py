"""Room route handlers: listing, creating, joining, chat and ratings."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from matchroom.api.routes import limiter, MESSAGE_RATE_LIMIT
from matchroom.database.db import get_db_session
from matchroom.services import rating_service, room_service
from matchroom.api.auth_dependencies import get_current_player_optional, require_player
from matchroom.models.schemas import (
    ChatMessageCreate,
    ChatMessageResponse,
    PlayerRoomsResponse,
    RatingSubmission,
    RatingSubmissionResponse,
    RoomCreate,
    RoomDetailResponse,
    RoomResponse,
)
from matchroom.utils.errors import MatchroomError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/rooms", response_model=List[RoomResponse])
async def list_rooms(
    sport: Optional[str] = Query(None),
    exclude_joined: bool = Query(False),
    player: Optional[dict] = Depends(get_current_player_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List rooms by scheduled time.

    When an acting player is given, each room says whether that player may
    join it and, if not, the first reason why.
    """
    try:
        return await room_service.list_rooms(
            session,
            sport=sport,
            viewer_id=player["id"] if player else None,
            exclude_joined=exclude_joined,
        )
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error listing rooms: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing rooms")


@router.post("/api/rooms", response_model=RoomResponse, status_code=201)
async def create_room(
    payload: RoomCreate,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a room hosted by the acting player (charges the create fee)."""
    try:
        return await room_service.create_room(session, player["id"], payload.model_dump())
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating room")


@router.get("/api/rooms/mine", response_model=PlayerRoomsResponse)
async def get_my_rooms(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Rooms the acting player hosts or has joined."""
    try:
        return await room_service.get_player_rooms(session, player["id"])
    except Exception as e:
        logger.error(f"Error fetching rooms for player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching rooms")


@router.get("/api/rooms/{room_id}", response_model=RoomDetailResponse)
async def get_room(
    room_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Room details with its roster."""
    try:
        return await room_service.get_room(session, room_id)
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error fetching room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching room")


@router.post("/api/rooms/{room_id}/join", response_model=RoomResponse)
async def join_room(
    room_id: int,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a room (charges the join fee)."""
    try:
        return await room_service.join_room(session, player["id"], room_id)
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error joining room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error joining room")


@router.get("/api/rooms/{room_id}/chat", response_model=List[ChatMessageResponse])
async def get_room_chat(
    room_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Room chat log, oldest first."""
    try:
        return await room_service.get_room_chat(session, room_id)
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error fetching chat for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching chat")


@router.post("/api/rooms/{room_id}/chat", response_model=ChatMessageResponse, status_code=201)
@limiter.limit(MESSAGE_RATE_LIMIT)
async def post_chat_message(
    request: Request,
    room_id: int,
    payload: ChatMessageCreate,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Post a message to a room's chat."""
    try:
        return await room_service.post_chat_message(session, room_id, player["id"], payload.text)
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error posting chat message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error posting chat message")


@router.post("/api/rooms/{room_id}/ratings", response_model=RatingSubmissionResponse)
async def submit_ratings(
    room_id: int,
    payload: RatingSubmission,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Rate the other players of a room once its scheduled time has passed."""
    try:
        return await rating_service.submit_ratings(
            session,
            room_id,
            player["id"],
            [entry.model_dump() for entry in payload.ratings],
        )
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error submitting ratings for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting ratings")
