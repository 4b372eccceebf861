"""
Pydantic models for API request/response validation.
"""

from datetime import date, datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, model_validator


# Player schemas
class PlayerCreate(BaseModel):
    """Request to register a player."""

    full_name: str = Field(min_length=1)
    gender: str  # male or female
    date_of_birth: Optional[date] = None
    city: Optional[str] = None
    district: Optional[str] = None
    avatar_url: Optional[str] = None
    skill_levels: Dict[str, str] = Field(default_factory=dict)  # sport -> level


class PlayerUpdate(BaseModel):
    """Partial profile update. Only fields that are sent are changed."""

    full_name: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    city: Optional[str] = None
    district: Optional[str] = None
    avatar_url: Optional[str] = None
    subscription_tier: Optional[str] = None  # free or subscribed
    skill_levels: Optional[Dict[str, str]] = None


class PlayerResponse(BaseModel):
    """Player profile fields."""

    id: int
    full_name: str
    gender: str
    date_of_birth: Optional[str] = None
    age: Optional[int] = None
    city: Optional[str] = None
    district: Optional[str] = None
    avatar_url: Optional[str] = None
    skill_levels: Dict[str, str] = Field(default_factory=dict)
    coins: Optional[int] = None  # hidden from other players
    subscription_tier: str
    monthly_reset_at: Optional[str] = None
    created_at: Optional[str] = None


class RatingView(BaseModel):
    """Ratings as the viewer is allowed to see them."""

    overall: float
    rating_count: int
    details_visible: bool
    friendliness: Optional[float] = None
    intensity: Optional[Dict[str, float]] = None
    comments: Optional[List[Dict]] = None


class ProfileResponse(PlayerResponse):
    """Full profile, including social state for the player's own profile."""

    ratings: RatingView
    friends: Optional[List[int]] = None
    friend_requests: Optional[List[Dict]] = None
    unread_count: Optional[int] = None
    friendship_status: Optional[str] = None


class CoinTransactionResponse(BaseModel):
    """Ledger movement."""

    id: int
    player_id: int
    amount: int
    reason: str
    balance_after: int
    created_at: str


# Room schemas
class RoomCreate(BaseModel):
    """Request to create a room."""

    sport: str
    location_name: str = Field(min_length=1)
    scheduled_at: datetime
    max_players: int
    skill_level: str
    gender_requirement: str = "unrestricted"
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_age_bounds(self):
        """Ensure min_age does not exceed max_age."""
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age cannot be greater than max_age")
        return self


class RoomResponse(BaseModel):
    """Room data."""

    id: int
    host_player_id: int
    sport: str
    location_name: str
    scheduled_at: str
    max_players: int
    player_count: int
    player_ids: List[int]
    skill_level: str
    gender_requirement: str
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    # Present when listed for a viewer
    is_member: Optional[bool] = None
    allowed: Optional[bool] = None
    reason: Optional[str] = None  # gender, age, coins, full or joined


class RoomMember(BaseModel):
    player_id: int
    full_name: str
    avatar_url: Optional[str] = None
    joined_at: str
    is_host: bool


class RoomDetailResponse(RoomResponse):
    """Room with roster details."""

    players: List[RoomMember]


class PlayerRoomsResponse(BaseModel):
    hosted: List[RoomResponse]
    joined: List[RoomResponse]


class ChatMessageCreate(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class ChatMessageResponse(BaseModel):
    id: int
    room_id: int
    player_id: int
    full_name: Optional[str] = None
    text: str
    created_at: str


# Rating schemas
class RatingEntry(BaseModel):
    """One co-participant's rating."""

    rated_player_id: int
    intensity: int = Field(ge=1, le=5)
    friendliness: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class RatingSubmission(BaseModel):
    ratings: List[RatingEntry] = Field(min_length=1)


class RatingSubmissionResponse(BaseModel):
    submitted: int
    coins_earned: int
    balance: int


# Friend schemas
class FriendRequestCreate(BaseModel):
    """Request to send a friend request."""

    receiver_player_id: int


class FriendRequestResponse(BaseModel):
    """Friend request data."""

    id: int
    sender_player_id: int
    sender_name: Optional[str] = None
    receiver_player_id: int
    status: str
    created_at: Optional[str] = None


class FriendshipResponse(BaseModel):
    id: int
    player_id: int
    friend_player_id: int
    created_at: Optional[str] = None


class FriendResponse(BaseModel):
    """Friend with basic profile fields."""

    player_id: int
    full_name: str
    avatar_url: Optional[str] = None
    city: Optional[str] = None


class FriendshipStatusResponse(BaseModel):
    player_id: int
    status: str  # already_friends, request_sent, request_pending or none


# Inbox schemas
class DirectMessageCreate(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class RewardInfo(BaseModel):
    amount: int
    claimed: bool


class MessageResponse(BaseModel):
    """One message as seen by its owner."""

    id: str
    sender: str  # player id or "system"
    text: str
    is_read: bool
    reward: Optional[RewardInfo] = None
    created_at: str


class ConversationSummary(BaseModel):
    key: str
    counterpart_name: str
    last_message: MessageResponse
    unread_count: int
    has_unread: bool


class ClaimRewardResponse(BaseModel):
    amount: int
    balance: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadResponse(BaseModel):
    updated: int
