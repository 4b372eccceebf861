"""Inbox route handlers: conversations, direct messages and reward claims."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from matchroom.api.routes import limiter, MESSAGE_RATE_LIMIT
from matchroom.database.db import get_db_session
from matchroom.services import inbox_service
from matchroom.api.auth_dependencies import require_player
from matchroom.models.schemas import (
    ClaimRewardResponse,
    ConversationSummary,
    DirectMessageCreate,
    MarkReadResponse,
    MessageResponse,
    UnreadCountResponse,
)
from matchroom.utils.errors import MatchroomError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/inbox", response_model=List[ConversationSummary])
async def get_conversations(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """List the acting player's conversations, most recent first."""
    try:
        return await inbox_service.get_conversations(session, player["id"])
    except Exception as e:
        logger.error(f"Error fetching conversations: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching conversations")


@router.get("/api/inbox/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Number of unread messages across all conversations."""
    try:
        return {"count": await inbox_service.get_unread_count(session, player["id"])}
    except Exception as e:
        logger.error(f"Error fetching unread count: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching unread count")


@router.post("/api/inbox/rewards/{message_uid}/claim", response_model=ClaimRewardResponse)
async def claim_reward(
    message_uid: str,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Claim the coin reward attached to a system message."""
    try:
        return await inbox_service.claim_reward(session, player["id"], message_uid)
    except MatchroomError:
        raise
    except Exception as e:
        logger.error(f"Error claiming reward {message_uid}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error claiming reward")


@router.get("/api/inbox/{conversation_key}", response_model=List[MessageResponse])
async def get_conversation_messages(
    conversation_key: str,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Messages in one conversation ("system" or a player id), oldest first."""
    try:
        return await inbox_service.get_conversation_messages(session, player["id"], conversation_key)
    except Exception as e:
        logger.error(f"Error fetching conversation {conversation_key}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching conversation")


@router.post("/api/inbox/{receiver_player_id}/messages", response_model=MessageResponse, status_code=201)
@limiter.limit(MESSAGE_RATE_LIMIT)
async def send_direct_message(
    request: Request,
    receiver_player_id: int,
    payload: DirectMessageCreate,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Send a direct message to another player."""
    try:
        return await inbox_service.send_direct_message(
            session, player["id"], receiver_player_id, payload.text
        )
    except MatchroomError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending direct message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error sending message")


@router.put("/api/inbox/{conversation_key}/read", response_model=MarkReadResponse)
async def mark_conversation_read(
    conversation_key: str,
    player: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark every message in one of the acting player's conversations as read."""
    try:
        updated = await inbox_service.mark_conversation_read(session, player["id"], conversation_key)
        return {"updated": updated}
    except Exception as e:
        logger.error(f"Error marking conversation {conversation_key} read: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error marking conversation read")
