"""
Unit tests for the API endpoints.
Service functions are monkeypatched so the routes are tested in isolation.
"""

import pytest
from fastapi.testclient import TestClient

from matchroom.api.main import app
from matchroom.services import (
    coin_service,
    friend_service,
    inbox_service,
    rating_service,
    room_service,
    user_service,
)
from matchroom.utils.errors import (
    AlreadyClaimed,
    InsufficientFunds,
    NotEligible,
    RoomFull,
    RoomNotFound,
    ValidationError,
)

PLAYER = {
    "id": 1,
    "full_name": "Alice Chen",
    "gender": "female",
    "date_of_birth": "1995-05-20",
    "age": 31,
    "city": "Taipei",
    "district": "Da'an",
    "avatar_url": None,
    "skill_levels": {"tennis": "intermediate"},
    "coins": 20,
    "subscription_tier": "free",
    "monthly_reset_at": "2026-10-01T00:00:00+00:00",
    "created_at": "2026-09-01T00:00:00+00:00",
}

ROOM = {
    "id": 7,
    "host_player_id": 1,
    "sport": "tennis",
    "location_name": "Riverside Courts",
    "scheduled_at": "2030-01-05T01:30:00+00:00",
    "max_players": 4,
    "player_count": 1,
    "player_ids": [1],
    "skill_level": "novice",
    "gender_requirement": "unrestricted",
    "min_age": None,
    "max_age": None,
    "notes": None,
    "created_at": "2026-10-01T00:00:00+00:00",
}

MESSAGE = {
    "id": "2b1f9d4e-0000-4000-8000-000000000001",
    "sender": "system",
    "text": "Your monthly 10 coins have arrived.",
    "is_read": False,
    "reward": {"amount": 10, "claimed": False},
    "created_at": "2026-10-01T00:00:00+00:00",
}


def make_client_with_player(monkeypatch, player=PLAYER):
    """Helper to create a test client acting as a known player."""

    async def fake_get_player(session, player_id):
        return player if player_id == player["id"] else None

    monkeypatch.setattr(user_service, "get_player", fake_get_player, raising=True)
    return TestClient(app), {"X-Player-Id": str(player["id"])}


# ============================================================================
# Acting player
# ============================================================================


class TestActingPlayer:
    def test_missing_header_is_unauthorized(self):
        client = TestClient(app)
        response = client.get("/api/players/me")
        assert response.status_code == 401

    def test_unknown_player_is_not_found(self, monkeypatch):
        client, _ = make_client_with_player(monkeypatch)
        response = client.get("/api/players/me", headers={"X-Player-Id": "42"})
        assert response.status_code == 404

    def test_health(self):
        response = TestClient(app).get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


# ============================================================================
# Players
# ============================================================================


class TestPlayerEndpoints:
    def test_register(self, monkeypatch):
        captured = {}

        async def fake_register(session, **kwargs):
            captured.update(kwargs)
            return PLAYER

        monkeypatch.setattr(user_service, "register", fake_register, raising=True)
        response = TestClient(app).post(
            "/api/players",
            json={"full_name": "Alice Chen", "gender": "female", "date_of_birth": "1995-05-20"},
        )
        assert response.status_code == 201
        assert response.json()["coins"] == 20
        assert captured["full_name"] == "Alice Chen"

    def test_register_validation_error(self, monkeypatch):
        async def fake_register(session, **kwargs):
            raise ValidationError("Invalid gender: other")

        monkeypatch.setattr(user_service, "register", fake_register, raising=True)
        response = TestClient(app).post("/api/players", json={"full_name": "X", "gender": "other"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid gender: other", "code": "validation_error"}

    def test_patch_sends_only_present_fields(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)
        captured = {}

        async def fake_update_profile(session, player_id, patch):
            captured["patch"] = patch
            return {**PLAYER, "city": "Kaohsiung"}

        monkeypatch.setattr(user_service, "update_profile", fake_update_profile, raising=True)
        response = client.patch("/api/players/me", json={"city": "Kaohsiung"}, headers=headers)
        assert response.status_code == 200
        assert captured["patch"] == {"city": "Kaohsiung"}

    def test_monthly_grant_already_delivered(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_grant(session, player_id, now=None):
            return None

        monkeypatch.setattr(user_service, "grant_monthly_coins", fake_grant, raising=True)
        response = client.post("/api/players/me/monthly-grant", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"granted": False, "message": None}

    def test_transactions(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_get_transactions(session, player_id, limit=50, offset=0):
            return [{
                "id": 3, "player_id": player_id, "amount": -5, "reason": "join_room",
                "balance_after": 15, "created_at": "2026-10-01T00:00:00+00:00",
            }]

        monkeypatch.setattr(coin_service, "get_transactions", fake_get_transactions, raising=True)
        response = client.get("/api/players/me/transactions", headers=headers)
        assert response.status_code == 200
        assert response.json()[0]["amount"] == -5


# ============================================================================
# Rooms
# ============================================================================


class TestRoomEndpoints:
    def test_create_room(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_create_room(session, host_player_id, spec):
            assert spec["sport"] == "tennis"
            return ROOM

        monkeypatch.setattr(room_service, "create_room", fake_create_room, raising=True)
        response = client.post(
            "/api/rooms",
            json={
                "sport": "tennis",
                "location_name": "Riverside Courts",
                "scheduled_at": "2030-01-05T09:30:00+08:00",
                "max_players": 4,
                "skill_level": "novice",
            },
            headers=headers,
        )
        assert response.status_code == 201
        assert response.json()["player_ids"] == [1]

    def test_create_room_insufficient_funds(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_create_room(session, host_player_id, spec):
            raise InsufficientFunds(balance=2, required=5)

        monkeypatch.setattr(room_service, "create_room", fake_create_room, raising=True)
        response = client.post(
            "/api/rooms",
            json={
                "sport": "tennis",
                "location_name": "Riverside Courts",
                "scheduled_at": "2030-01-05T09:30:00+08:00",
                "max_players": 4,
                "skill_level": "novice",
            },
            headers=headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "insufficient_funds"

    @pytest.mark.parametrize(
        "error, status, code",
        [
            (NotEligible("gender"), 409, "not_eligible"),
            (RoomFull(7), 409, "room_full"),
            (RoomNotFound(7), 404, "room_not_found"),
        ],
    )
    def test_join_room_errors(self, monkeypatch, error, status, code):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_join_room(session, player_id, room_id):
            raise error

        monkeypatch.setattr(room_service, "join_room", fake_join_room, raising=True)
        response = client.post("/api/rooms/7/join", headers=headers)
        assert response.status_code == status
        assert response.json()["code"] == code

    def test_list_rooms_without_viewer(self, monkeypatch):
        captured = {}

        async def fake_list_rooms(session, sport=None, viewer_id=None, exclude_joined=False):
            captured.update(sport=sport, viewer_id=viewer_id)
            return [ROOM]

        monkeypatch.setattr(room_service, "list_rooms", fake_list_rooms, raising=True)
        response = TestClient(app).get("/api/rooms?sport=tennis")
        assert response.status_code == 200
        assert captured == {"sport": "tennis", "viewer_id": None}

    def test_list_rooms_with_viewer(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_list_rooms(session, sport=None, viewer_id=None, exclude_joined=False):
            return [{**ROOM, "is_member": False, "allowed": False, "reason": "coins"}]

        monkeypatch.setattr(room_service, "list_rooms", fake_list_rooms, raising=True)
        response = client.get("/api/rooms", headers=headers)
        assert response.json()[0]["reason"] == "coins"

    def test_post_chat(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_post(session, room_id, player_id, text):
            return {
                "id": 1, "room_id": room_id, "player_id": player_id, "full_name": "Alice Chen",
                "text": text, "created_at": "2026-10-01T00:00:00+00:00",
            }

        monkeypatch.setattr(room_service, "post_chat_message", fake_post, raising=True)
        response = client.post("/api/rooms/7/chat", json={"text": "See you!"}, headers=headers)
        assert response.status_code == 201
        assert response.json()["text"] == "See you!"

    def test_submit_ratings_rejects_out_of_range_scores(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)
        response = client.post(
            "/api/rooms/7/ratings",
            json={"ratings": [{"rated_player_id": 2, "intensity": 6, "friendliness": 3}]},
            headers=headers,
        )
        assert response.status_code == 422

    def test_submit_ratings(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_submit(session, room_id, reviewer_player_id, ratings):
            return {"submitted": len(ratings), "coins_earned": len(ratings), "balance": 21}

        monkeypatch.setattr(rating_service, "submit_ratings", fake_submit, raising=True)
        response = client.post(
            "/api/rooms/7/ratings",
            json={"ratings": [{"rated_player_id": 2, "intensity": 4, "friendliness": 5}]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json() == {"submitted": 1, "coins_earned": 1, "balance": 21}


# ============================================================================
# Friends
# ============================================================================


class TestFriendEndpoints:
    def test_friendship_status(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_status(session, viewer_id, target_id):
            return "request_pending"

        monkeypatch.setattr(friend_service, "get_friendship_status", fake_status, raising=True)
        response = client.get("/api/friends/status/2", headers=headers)
        assert response.json() == {"player_id": 2, "status": "request_pending"}

    def test_decline_returns_no_content(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)
        calls = []

        async def fake_decline(session, receiver_player_id, sender_player_id):
            calls.append((receiver_player_id, sender_player_id))

        monkeypatch.setattr(friend_service, "decline_friend_request", fake_decline, raising=True)
        response = client.post("/api/friends/requests/2/decline", headers=headers)
        assert response.status_code == 204
        assert calls == [(1, 2)]


# ============================================================================
# Inbox
# ============================================================================


class TestInboxEndpoints:
    def test_claim_reward(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_claim(session, player_id, message_uid):
            return {"amount": 10, "balance": 30}

        monkeypatch.setattr(inbox_service, "claim_reward", fake_claim, raising=True)
        response = client.post(f"/api/inbox/rewards/{MESSAGE['id']}/claim", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"amount": 10, "balance": 30}

    def test_claim_reward_twice(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_claim(session, player_id, message_uid):
            raise AlreadyClaimed(message_uid)

        monkeypatch.setattr(inbox_service, "claim_reward", fake_claim, raising=True)
        response = client.post(f"/api/inbox/rewards/{MESSAGE['id']}/claim", headers=headers)
        assert response.status_code == 409
        assert response.json()["code"] == "already_claimed"

    def test_unread_count(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_count(session, player_id):
            return 3

        monkeypatch.setattr(inbox_service, "get_unread_count", fake_count, raising=True)
        response = client.get("/api/inbox/unread-count", headers=headers)
        assert response.json() == {"count": 3}

    def test_system_conversation(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_messages(session, player_id, counterpart):
            assert counterpart == "system"
            return [MESSAGE]

        monkeypatch.setattr(inbox_service, "get_conversation_messages", fake_messages, raising=True)
        response = client.get("/api/inbox/system", headers=headers)
        assert response.status_code == 200
        assert response.json()[0]["reward"] == {"amount": 10, "claimed": False}

    def test_send_direct_message(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_send(session, sender_player_id, receiver_player_id, text):
            return {**MESSAGE, "sender": str(sender_player_id), "text": text, "is_read": True, "reward": None}

        monkeypatch.setattr(inbox_service, "send_direct_message", fake_send, raising=True)
        response = client.post("/api/inbox/2/messages", json={"text": "Hi!"}, headers=headers)
        assert response.status_code == 201
        assert response.json()["is_read"] is True

    def test_mark_read(self, monkeypatch):
        client, headers = make_client_with_player(monkeypatch)

        async def fake_mark(session, player_id, counterpart):
            return 2

        monkeypatch.setattr(inbox_service, "mark_conversation_read", fake_mark, raising=True)
        response = client.put("/api/inbox/2/read", headers=headers)
        assert response.json() == {"updated": 2}
