"""Tests for the FastAPI application over a real WebSocket."""

from collections.abc import Iterator
from http import HTTPStatus
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from parlor import ChatConfig
from parlor.app import create_app


@pytest.fixture
def client() -> Iterator[TestClient]:
    app = create_app(ChatConfig(typing_timeout=0.05))
    with TestClient(app) as client:
        yield client


def join(ws: Any, username: str) -> list[dict[str, Any]]:
    ws.send_json({"type": "join", "username": username})
    return [ws.receive_json() for _ in range(3)]


def receive_until(ws: Any, event_type: str) -> dict[str, Any]:
    while True:
        event = ws.receive_json()
        if event["type"] == event_type:
            return event


class TestHttpEndpoints:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == HTTPStatus.OK
        assert response.json() == {"status": "ok", "running": True}

    def test_users_empty(self, client: TestClient) -> None:
        response = client.get("/users")
        assert response.status_code == HTTPStatus.OK
        assert response.json() == {"usernames": [], "count": 0}

    def test_users_lists_joined(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            join(ws, "alice")
            assert client.get("/users").json() == {"usernames": ["alice"], "count": 1}

        assert client.get("/users").json() == {"usernames": [], "count": 0}


class TestChatSocket:
    def test_join_handshake(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            joined, notice, roster = join(ws, "alice")

        assert joined == {"type": "joined", "username": "alice"}
        assert notice["type"] == "message"
        assert notice["kind"] == "system-notice"
        assert notice["username"] is None
        assert notice["text"] == "alice joined"
        assert "timestamp" in notice
        assert "id" in notice
        assert roster == {"type": "roster", "usernames": ["alice"]}

    def test_two_clients_chat(self, client: TestClient) -> None:
        with (
            client.websocket_connect("/ws") as alice,
            client.websocket_connect("/ws") as bob,
        ):
            join(alice, "alice")
            join(bob, "bob")
            assert receive_until(alice, "roster")["usernames"] == ["alice", "bob"]

            alice.send_json({"type": "chatMessage", "text": "hi"})
            for ws in (alice, bob):
                message = receive_until(ws, "message")
                assert message["kind"] == "user-message"
                assert message["username"] == "alice"
                assert message["text"] == "hi"

    def test_duplicate_username(self, client: TestClient) -> None:
        with (
            client.websocket_connect("/ws") as alice,
            client.websocket_connect("/ws") as impostor,
        ):
            join(alice, "alice")
            impostor.send_json({"type": "join", "username": "alice"})
            assert impostor.receive_json() == {
                "type": "joinRejected",
                "reason": "duplicate-username",
            }

    def test_disconnect_announces_leave(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            join(alice, "alice")
            with client.websocket_connect("/ws") as bob:
                join(bob, "bob")
                receive_until(alice, "roster")

            left = receive_until(alice, "message")
            assert left["text"] == "bob left"
            assert receive_until(alice, "roster")["usernames"] == ["alice"]

    def test_typing_round_trip(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            join(alice, "alice")
            alice.send_json({"type": "typing", "isTyping": True})
            assert alice.receive_json() == {"type": "typing", "usernames": ["alice"]}
            # Cleared by the server once the typing window passes.
            assert alice.receive_json() == {"type": "typing", "usernames": []}

    def test_malformed_frame_is_ignored(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            alice.send_text("this is not json")
            alice.send_json({"type": "chatMessage", "text": "too early"})
            joined, _, _ = join(alice, "alice")
            assert joined["username"] == "alice"

            alice.send_json({"type": "chatMessage", "text": "   "})
            alice.send_json({"type": "chatMessage", "text": "hello"})
            assert receive_until(alice, "message")["text"] == "hello"

    def test_binary_frames(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            join(alice, "alice")
            alice.send_bytes(b'{"type": "chatMessage", "text": "hi"}')
            alice.send_bytes(b"not json either")
            alice.send_json({"type": "chatMessage", "text": "after"})

            assert receive_until(alice, "message")["text"] == "hi"
            assert receive_until(alice, "message")["text"] == "after"

    def test_leave_delivers_queued_messages(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            join(alice, "alice")
            alice.send_json({"type": "chatMessage", "text": "bye"})
            alice.send_json({"type": "leave"})

            assert receive_until(alice, "message")["text"] == "bye"
            with pytest.raises(WebSocketDisconnect):
                alice.receive_json()

    def test_leave_closes_socket(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as alice:
            join(alice, "alice")
            alice.send_json({"type": "leave"})
            with pytest.raises(WebSocketDisconnect):
                alice.receive_json()

        assert client.get("/users").json()["count"] == 0
