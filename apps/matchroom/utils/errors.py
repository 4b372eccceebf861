"""
Domain errors raised by the service layer.

Every error subclasses ValueError so route handlers can keep catching
ValueError, while ``code`` tells the caller which outcome occurred.
"""

from typing import Optional


class MatchroomError(ValueError):
    """Base class for refused operations."""

    code = "error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return self.code.replace("_", " ").capitalize()


class NotFound(MatchroomError):
    code = "not_found"
    status_code = 404


class PlayerNotFound(NotFound):
    code = "player_not_found"

    def __init__(self, player_id=None):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class RoomNotFound(NotFound):
    code = "room_not_found"

    def __init__(self, room_id=None):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class ValidationError(MatchroomError):
    """Malformed input rejected before any mutation."""

    code = "validation_error"


class InsufficientFunds(MatchroomError):
    code = "insufficient_funds"
    status_code = 409

    def __init__(self, balance: int = 0, required: int = 0):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient coins: balance {balance}, required {required}")


class NotEligible(MatchroomError):
    """Join refused by a room restriction (gender or age)."""

    code = "not_eligible"
    status_code = 409

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Not eligible to join room ({reason})")


class RoomFull(MatchroomError):
    code = "room_full"
    status_code = 409

    def __init__(self, room_id=None):
        self.room_id = room_id
        super().__init__("Room is full")


class AlreadyJoined(MatchroomError):
    code = "already_joined"
    status_code = 409

    def __init__(self, room_id=None):
        self.room_id = room_id
        super().__init__("Already joined this room")


class AlreadyClaimed(MatchroomError):
    code = "already_claimed"
    status_code = 409

    def __init__(self, message_uid=None):
        self.message_uid = message_uid
        super().__init__("Reward already claimed")


class RewardNotFound(NotFound):
    code = "reward_not_found"

    def __init__(self, message_uid=None):
        self.message_uid = message_uid
        super().__init__("Reward message not found")


class RatingNotOpen(MatchroomError):
    code = "rating_not_open"
    status_code = 409

    def __init__(self, room_id=None):
        self.room_id = room_id
        super().__init__("Ratings open once the room's scheduled time has passed")


class DuplicateRating(MatchroomError):
    code = "duplicate_rating"
    status_code = 409


class FriendRequestError(MatchroomError):
    code = "friend_request_error"
    status_code = 409
