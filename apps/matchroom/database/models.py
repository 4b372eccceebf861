"""
SQLAlchemy ORM models for the sports meetup matchmaking system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from matchroom.database.db import Base
from matchroom.utils.datetime_utils import utcnow


class Gender(str, enum.Enum):
    """Player gender enum."""

    MALE = "male"
    FEMALE = "female"


class GenderRequirement(str, enum.Enum):
    """Room gender requirement enum."""

    UNRESTRICTED = "unrestricted"
    MALE = "male"
    FEMALE = "female"


class SubscriptionTier(str, enum.Enum):
    """Subscription tier enum. Subscribers see detailed rating breakdowns."""

    FREE = "free"
    SUBSCRIBED = "subscribed"


class Sport(str, enum.Enum):
    """Supported sports."""

    BADMINTON = "badminton"
    BASKETBALL = "basketball"
    TENNIS = "tennis"
    SOCCER = "soccer"
    VOLLEYBALL = "volleyball"
    RUNNING = "running"


class SkillLevel(str, enum.Enum):
    """Self-declared proficiency tier, lowest to highest."""

    BEGINNER = "beginner"
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    COMPETITIVE = "competitive"


class CoinReason(str, enum.Enum):
    """Reason tag on a coin ledger movement."""

    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    REWARD_CLAIM = "reward_claim"
    RATING_REWARD = "rating_reward"


class FriendRequestStatus(str, enum.Enum):
    """Friend request status enum."""

    PENDING = "pending"


class Player(Base):
    """Player profiles (identity plus social and economic state)."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    gender = Column(String(10), nullable=False)  # Gender enum value
    date_of_birth = Column(Date, nullable=True)
    city = Column(String, nullable=True)
    district = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    coins = Column(Integer, default=0, nullable=False)
    subscription_tier = Column(
        String(20), default=SubscriptionTier.FREE.value, nullable=False
    )
    monthly_reset_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    skill_levels = relationship(
        "PlayerSkillLevel", back_populates="player", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_players_coins_non_negative"),
        Index("idx_players_name", "full_name"),
    )


class PlayerSkillLevel(Base):
    """Per-sport skill level (at most one level per sport)."""

    __tablename__ = "player_skill_levels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    sport = Column(String(20), nullable=False)
    level = Column(String(20), nullable=False)

    player = relationship("Player", back_populates="skill_levels")

    __table_args__ = (
        UniqueConstraint("player_id", "sport", name="uq_player_skill_levels_player_sport"),
        Index("idx_player_skill_levels_player", "player_id"),
    )


class CoinTransaction(Base):
    """Audit log of every coin movement (signed delta per player)."""

    __tablename__ = "coin_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)  # negative for debits
    reason = Column(String(30), nullable=False)  # CoinReason enum value
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_coin_transactions_player", "player_id", "created_at"),
    )


class Friend(Base):
    """Join table (Player ↔ Player). One row per friendship, ids ordered."""

    __tablename__ = "friends"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player1_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    player2_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    created_by = Column(
        Integer, ForeignKey("players.id"), nullable=True
    )  # Player who accepted the request

    __table_args__ = (
        UniqueConstraint("player1_id", "player2_id"),
        CheckConstraint("player1_id < player2_id"),
        Index("idx_friends_player1", "player1_id"),
        Index("idx_friends_player2", "player2_id"),
    )


class FriendRequest(Base):
    """Pending friend request, stored against the receiver."""

    __tablename__ = "friend_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    receiver_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    status = Column(String(20), default=FriendRequestStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("sender_player_id", "receiver_player_id", name="uq_friend_request_sender_receiver"),
        CheckConstraint("sender_player_id <> receiver_player_id", name="ck_friend_request_not_self"),
        Index("idx_friend_requests_receiver_status", "receiver_player_id", "status"),
        Index("idx_friend_requests_sender", "sender_player_id"),
    )


class Room(Base):
    """A scheduled meetup for one sport."""

    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    host_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    sport = Column(String(20), nullable=False)
    location_name = Column(String, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)  # UTC
    max_players = Column(Integer, nullable=False)
    player_count = Column(Integer, default=0, nullable=False)
    skill_level = Column(String(20), nullable=False)
    gender_requirement = Column(
        String(20), default=GenderRequirement.UNRESTRICTED.value, nullable=False
    )
    min_age = Column(Integer, nullable=True)
    max_age = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    host = relationship("Player", foreign_keys=[host_player_id])
    players = relationship(
        "RoomPlayer", back_populates="room", cascade="all, delete-orphan", order_by="RoomPlayer.id"
    )
    chat_messages = relationship(
        "RoomChatMessage", back_populates="room", cascade="all, delete-orphan",
        order_by="RoomChatMessage.id",
    )

    __table_args__ = (
        CheckConstraint("max_players >= 2", name="ck_rooms_min_capacity"),
        CheckConstraint("player_count <= max_players", name="ck_rooms_capacity"),
        CheckConstraint(
            "min_age IS NULL OR max_age IS NULL OR min_age <= max_age", name="ck_rooms_age_bounds"
        ),
        Index("idx_rooms_scheduled_at", "scheduled_at"),
        Index("idx_rooms_sport", "sport"),
        Index("idx_rooms_host", "host_player_id"),
    )


class RoomPlayer(Base):
    """Room roster, ordered by join (row id)."""

    __tablename__ = "room_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)  # UTC

    # Relationships
    room = relationship("Room", back_populates="players")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint("room_id", "player_id", name="uq_room_players_room_player"),
        Index("idx_room_players_room", "room_id"),
        Index("idx_room_players_player", "player_id"),
    )


class RoomChatMessage(Base):
    """Room-scoped chat log entry."""

    __tablename__ = "room_chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    room = relationship("Room", back_populates="chat_messages")

    __table_args__ = (
        Index("idx_room_chat_messages_room", "room_id", "created_at"),
    )


class Conversation(Base):
    """One participant's copy of a conversation (counterpart id or 'system')."""

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    counterpart_key = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    messages = relationship(
        "DirectMessage", back_populates="conversation", cascade="all, delete-orphan",
        order_by="DirectMessage.id",
    )

    __table_args__ = (
        UniqueConstraint("owner_player_id", "counterpart_key", name="uq_conversations_owner_key"),
        Index("idx_conversations_owner", "owner_player_id"),
    )


class DirectMessage(Base):
    """
    A message as seen by one participant.

    Both participants get their own row sharing message_uid and created_at;
    read state is tracked per row.
    """

    __tablename__ = "direct_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    owner_player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    message_uid = Column(String(36), nullable=False)
    sender_key = Column(String(50), nullable=False)  # player id or 'system'
    text = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    reward_amount = Column(Integer, nullable=True)
    reward_claimed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        UniqueConstraint("owner_player_id", "message_uid", name="uq_direct_messages_owner_uid"),
        CheckConstraint(
            "reward_amount IS NULL OR reward_amount > 0", name="ck_direct_messages_reward_positive"
        ),
        Index("idx_direct_messages_owner_unread", "owner_player_id", "is_read"),
        Index("idx_direct_messages_conversation", "conversation_id", "created_at"),
    )


class PlayerRating(Base):
    """One reviewer's rating of one co-participant for one room."""

    __tablename__ = "player_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False)
    reviewer_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    rated_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    sport = Column(String(20), nullable=False)
    intensity = Column(Integer, nullable=False)  # 1-5 stars
    friendliness = Column(Integer, nullable=False)  # 1-5 stars
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "room_id", "reviewer_player_id", "rated_player_id",
            name="uq_player_ratings_room_reviewer_rated",
        ),
        CheckConstraint("intensity >= 1 AND intensity <= 5", name="ck_player_ratings_intensity_range"),
        CheckConstraint(
            "friendliness >= 1 AND friendliness <= 5", name="ck_player_ratings_friendliness_range"
        ),
        CheckConstraint("reviewer_player_id <> rated_player_id", name="ck_player_ratings_not_self"),
        Index("idx_player_ratings_rated", "rated_player_id"),
        Index("idx_player_ratings_room", "room_id"),
    )
