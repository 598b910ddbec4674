"""
Integration tests for the chat REST API.

Tests the HTTP surface end to end:
- /users - registration, profiles, presence
- /messages - send, edit, delete, pins, reactions, timelines
- /rooms - listing, statistics, locking
- /admin - roles, bans, resets, cleanup, audit log
- /config/chat - client limits
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from app.config import Settings
from app.core.chat_store import ChatStore

from conftest import FakeClock


@pytest.fixture
def client():
    """Create FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def api_clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_chat_store(api_clock):
    """Give every test an empty store driven by a fake clock."""
    app.state.chat_store = ChatStore(settings=Settings(), clock=api_clock)
    yield


def as_user(identity):
    return {"X-Caller-Identity": identity}


@pytest.fixture
def users(client):
    """Register alice (owner), bob and carol (moderator)."""
    for identity, name in [("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")]:
        response = client.post(
            "/users/register",
            json={"display_name": name, "username": identity},
            headers=as_user(identity),
        )
        assert response.status_code == 201
    client.post("/admin/moderators/carol", headers=as_user("alice"))
    return ["alice", "bob", "carol"]


@pytest.fixture
def send(client, api_clock):
    """Send a message as `identity`, spaced out to pass the rate limiter."""
    def _send(identity, content="hello", **body):
        api_clock.advance(2)
        response = client.post("/messages", json={"content": content, **body}, headers=as_user(identity))
        assert response.status_code == 201, response.json()
        return response.json()["id"]
    return _send


class TestUsersApi:
    """Test /users endpoints."""

    def test_register_first_user_is_owner(self, client):
        response = client.post(
            "/users/register",
            json={"display_name": "Alice", "username": "alice", "bio": "Hi"},
            headers=as_user("alice"),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["identity"] == "alice"
        assert data["role"] == "owner"
        assert data["bio"] == "Hi"
        assert data["banned"] is False

    def test_register_requires_identity_header(self, client):
        response = client.post("/users/register", json={"display_name": "Alice"})
        assert response.status_code == 422

    def test_register_duplicate(self, client, users):
        response = client.post("/users/register", json={"display_name": "Again"}, headers=as_user("bob"))

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "already_exists"

    def test_register_invalid_display_name(self, client):
        response = client.post("/users/register", json={"display_name": "a@b"}, headers=as_user("x"))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_input"

    def test_me(self, client, users):
        response = client.get("/users/me", headers=as_user("bob"))
        assert response.status_code == 200
        assert response.json()["display_name"] == "Bob"

        assert client.get("/users/me", headers=as_user("ghost")).status_code == 404

    def test_update_profile(self, client, users):
        response = client.patch("/users/me", json={"bio": "New bio", "status": "away"}, headers=as_user("bob"))

        assert response.status_code == 200
        data = response.json()
        assert data["bio"] == "New bio"
        assert data["status"] == "away"
        assert data["display_name"] == "Bob"

    def test_update_profile_username_taken(self, client, users):
        response = client.patch("/users/me", json={"username": "alice"}, headers=as_user("bob"))
        assert response.status_code == 409

    def test_list_and_filter(self, client, users):
        response = client.get("/users")
        assert [u["identity"] for u in response.json()] == users

        response = client.get("/users", params={"role": "moderator"})
        assert [u["identity"] for u in response.json()] == ["carol"]

    def test_search(self, client, users):
        response = client.get("/users/search", params={"q": "CAR"})
        assert [u["identity"] for u in response.json()] == ["carol"]

    def test_lookup_by_identity(self, client, users):
        assert client.get("/users/bob").json()["username"] == "bob"
        assert client.get("/users/carol/role").json() == {"identity": "carol", "role": "moderator"}
        assert client.get("/users/ghost").status_code == 404
        assert client.get("/users/ghost/role").status_code == 404

    def test_heartbeat(self, client, users, api_clock):
        api_clock.advance(10)
        response = client.post("/users/me/heartbeat", json={"status": "do_not_disturb"}, headers=as_user("bob"))

        assert response.status_code == 200
        assert response.json()["last_seen"] == api_clock.now
        assert response.json()["status"] == "do_not_disturb"

    def test_delete_account(self, client, users, send):
        send("bob", "bye")

        response = client.delete("/users/me", headers=as_user("bob"))
        assert response.status_code == 204
        assert client.get("/users/bob").status_code == 404

        assert client.get("/users/bob/message-count").json() == {"identity": "bob", "count": 1}
        message = client.get("/messages").json()[0]
        assert message["sender"] == "bob"
        assert message["sender_name"] is None

    def test_expired_ban_reads_as_not_banned(self, client, users, api_clock):
        client.post("/admin/bans/bob", json={"duration_seconds": 60}, headers=as_user("carol"))
        data = client.get("/users/bob").json()
        assert data["banned"] is True
        assert data["banned_until"] == api_clock.now + 60

        api_clock.advance(61)
        data = client.get("/users/bob").json()
        assert data["banned"] is False
        assert data["banned_until"] is None

    def test_owner_cannot_delete_account_with_members(self, client, users):
        response = client.delete("/users/me", headers=as_user("alice"))
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "no_permission"


class TestMessagesApi:
    """Test /messages endpoints."""

    def test_send_and_fetch(self, client, users, send):
        message_id = send("bob", "hello world")

        response = client.get(f"/messages/{message_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["content"] == "hello world"
        assert data["sender_name"] == "Bob"
        assert data["room_id"] == "general"
        assert data["reactions"] == []

    def test_send_errors(self, client, users, api_clock):
        response = client.post("/messages", json={"content": "x" * 5001}, headers=as_user("bob"))
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "message_too_long"

        response = client.post("/messages", json={"content": "   "}, headers=as_user("bob"))
        assert response.json()["detail"]["error"] == "invalid_input"

        response = client.post("/messages", json={"content": "hi"}, headers=as_user("ghost"))
        assert response.status_code == 404

    def test_rate_limited(self, client, users):
        assert client.post("/messages", json={"content": "one"}, headers=as_user("bob")).status_code == 201

        response = client.post("/messages", json={"content": "two"}, headers=as_user("bob"))
        assert response.status_code == 429
        assert response.json()["detail"]["error"] == "rate_limited"

    def test_attachments(self, client, users, send):
        message_id = send("bob", "see file", attachments=[
            {"filename": "a.png", "content_type": "image/png", "size_bytes": 100},
        ])

        data = client.get(f"/messages/{message_id}").json()
        assert data["attachments"] == [{"filename": "a.png", "content_type": "image/png", "size_bytes": 100}]

    def test_timeline_and_cursor(self, client, users, send):
        ids = [send("bob", f"m{i}") for i in range(5)]

        response = client.get("/messages")
        assert [m["id"] for m in response.json()] == list(reversed(ids))

        response = client.get("/messages", params={"before": 3, "limit": 2})
        assert [m["id"] for m in response.json()] == [2, 1]

        response = client.get("/messages/page", params={"page": 1, "page_size": 2})
        assert [m["id"] for m in response.json()] == [2, 1]

        response = client.get("/messages/after", params={"after_id": 2})
        assert [m["id"] for m in response.json()] == [3, 4]

        assert client.get("/messages/count").json() == {"count": 5}

    def test_since(self, client, users, send, api_clock):
        send("bob", "old")
        cutoff = api_clock.now
        new_id = send("bob", "new")

        response = client.get("/messages/since", params={"timestamp": cutoff})
        assert [m["id"] for m in response.json()] == [new_id]

    def test_since_limit(self, client, users, send):
        first = send("bob", "one")
        send("bob", "two")

        response = client.get("/messages/since", params={"timestamp": 0, "limit": 1})
        assert [m["id"] for m in response.json()] == [first]

    def test_edit(self, client, users, send):
        message_id = send("bob", "helo")

        response = client.put(f"/messages/{message_id}", json={"content": "hello"}, headers=as_user("bob"))
        assert response.status_code == 200
        assert response.json()["edited"] is True

        response = client.put(f"/messages/{message_id}", json={"content": "mine"}, headers=as_user("alice"))
        assert response.status_code == 200

        response = client.put(f"/messages/{message_id}", json={"content": "x"}, headers=as_user("ghost"))
        assert response.status_code == 404

    def test_edit_window_expired(self, client, users, send, api_clock):
        message_id = send("bob", "helo")
        api_clock.advance(901)

        response = client.put(f"/messages/{message_id}", json={"content": "hello"}, headers=as_user("bob"))
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "unauthorized"

    def test_delete_hides_message(self, client, users, send):
        message_id = send("bob", "oops")

        response = client.delete(f"/messages/{message_id}", headers=as_user("bob"))
        assert response.json() == {"changed": True}

        assert client.get("/messages").json() == []
        assert client.get(f"/messages/{message_id}").status_code == 404
        assert client.get(f"/messages/{message_id}", headers=as_user("bob")).status_code == 404

        response = client.get(f"/messages/{message_id}", headers=as_user("carol"))
        assert response.status_code == 200
        assert response.json()["deleted"] is True

    def test_pin(self, client, users, send):
        message_id = send("bob")

        response = client.post(f"/messages/{message_id}/pin", headers=as_user("bob"))
        assert response.status_code == 403

        response = client.post(f"/messages/{message_id}/pin", headers=as_user("carol"))
        assert response.json() == {"changed": True}
        assert [m["id"] for m in client.get("/messages/pinned").json()] == [message_id]

        response = client.delete(f"/messages/{message_id}/pin", headers=as_user("carol"))
        assert response.json() == {"changed": True}
        assert client.get("/messages/pinned").json() == []

    def test_reactions(self, client, users, send):
        message_id = send("alice")

        response = client.post(f"/messages/{message_id}/reactions", json={"emoji": "🎉"}, headers=as_user("bob"))
        assert response.json() == {"added": True}
        assert client.get(f"/messages/{message_id}").json()["reaction_counts"] == {"🎉": 1}

        response = client.post(f"/messages/{message_id}/reactions", json={"emoji": "🎉"}, headers=as_user("bob"))
        assert response.json() == {"added": False}

    def test_thread_and_search(self, client, users, send):
        root = send("alice", "Who is around?")
        send("bob", "unrelated")
        reply = send("carol", "I am", reply_to=root)

        response = client.get(f"/messages/{root}/thread")
        assert [m["id"] for m in response.json()] == [root, reply]

        response = client.get("/messages/search", params={"q": "AROUND"})
        assert [m["id"] for m in response.json()] == [root]

        assert client.get("/messages/search", params={"q": ""}).json() == []


class TestRoomsApi:
    """Test /rooms endpoints."""

    def test_list_rooms(self, client, users, send):
        send("bob", "hi")
        send("bob", "hey", room_id="random")
        client.post("/rooms/announcements/lock", headers=as_user("carol"))

        response = client.get("/rooms")
        assert response.json() == [
            {"room_id": "announcements", "locked": True, "message_count": 0},
            {"room_id": "general", "locked": False, "message_count": 1},
            {"room_id": "random", "locked": False, "message_count": 1},
        ]

    def test_statistics(self, client, users, send):
        send("bob")
        send("bob")
        send("alice")

        data = client.get("/rooms/statistics", params={"room_id": "general"}).json()
        assert data["total_messages"] == 3
        assert data["active_users"] == 2
        assert data["messages_today"] == 3
        assert data["top_posters"] == [["bob", 2], ["alice", 1]]

    def test_lock_blocks_users(self, client, users, api_clock):
        assert client.post("/rooms/general/lock", headers=as_user("bob")).status_code == 403
        assert client.post("/rooms/general/lock", headers=as_user("carol")).json() == {"changed": True}

        response = client.post("/messages", json={"content": "hi"}, headers=as_user("bob"))
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "no_permission"

        assert client.delete("/rooms/general/lock", headers=as_user("carol")).json() == {"changed": True}
        assert client.post("/messages", json={"content": "hi"}, headers=as_user("bob")).status_code == 201


class TestAdminApi:
    """Test /admin endpoints."""

    def test_moderators(self, client, users):
        response = client.post("/admin/moderators/bob", headers=as_user("carol"))
        assert response.status_code == 403

        assert client.post("/admin/moderators/bob", headers=as_user("alice")).json() == {"changed": True}
        assert client.delete("/admin/moderators/bob", headers=as_user("alice")).json() == {"changed": True}
        assert client.post("/admin/moderators/ghost", headers=as_user("alice")).status_code == 404

    def test_transfer(self, client, users):
        response = client.post("/admin/transfer/bob", headers=as_user("alice"))

        assert response.json() == {"changed": True}
        assert client.get("/users/bob/role").json()["role"] == "owner"
        assert client.get("/users/alice/role").json()["role"] == "user"

    def test_ban_and_unban(self, client, users):
        response = client.post("/admin/bans/bob", json={"reason": "spam"}, headers=as_user("carol"))
        assert response.json() == {"changed": True}

        response = client.post("/messages", json={"content": "hi"}, headers=as_user("bob"))
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "banned"

        assert client.delete("/admin/bans/bob", headers=as_user("carol")).json() == {"changed": True}

    def test_ban_rank_rules(self, client, users):
        response = client.post("/admin/bans/alice", json={}, headers=as_user("carol"))
        assert response.status_code == 403

        response = client.post("/admin/bans/bob", json={"duration_seconds": -5}, headers=as_user("carol"))
        assert response.status_code == 422

    def test_clear_messages_and_users(self, client, users, send):
        send("bob")
        send("bob")

        assert client.delete("/admin/messages", headers=as_user("bob")).status_code == 403
        assert client.delete("/admin/messages", headers=as_user("alice")).json() == {"removed": 2}
        assert client.delete("/admin/users", headers=as_user("alice")).json() == {"removed": 2}
        assert [u["identity"] for u in client.get("/users").json()] == ["alice"]

    def test_cleanup(self, client, users):
        response = client.post("/admin/cleanup", headers=as_user("alice"))
        assert response.json() == {"messages_purged": 0, "rate_limits_purged": 0}

    def test_audit_log(self, client, users):
        client.post("/admin/bans/bob", json={"reason": "spam"}, headers=as_user("carol"))

        response = client.get("/admin/audit", params={"limit": 1}, headers=as_user("alice"))
        assert response.status_code == 200
        entries = response.json()
        assert len(entries) == 1
        assert entries[0]["action"] == "ban_user"
        assert entries[0]["actor"] == "carol"
        assert entries[0]["target"] == "bob"
        assert entries[0]["detail"] == "spam"

        assert client.get("/admin/audit", headers=as_user("bob")).status_code == 403


class TestConfigApi:

    def test_chat_config(self, client):
        data = client.get("/config/chat").json()

        assert data["MAX_MESSAGE_LENGTH"] == 5000
        assert data["EDIT_WINDOW_SECONDS"] == 900
        assert data["POLL_INTERVAL_SECONDS"] == 5.0
