"""Tests for chat conversations, messages and the WebSocket relay."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ajira.chat import ConnectionManager
from ajira.routes.chat import normalize_participants

CUSTOMER_ID = "usr_TEST_CUSTOMER_000"
OTHER_ID = "usr_TEST_OTHER_000"

CONVERSATION = {
    "id": "conv-1",
    "participant_ids": sorted([CUSTOMER_ID, OTHER_ID]),
    "is_group": False,
    "name": None,
}


def _token(headers: dict) -> str:
    return headers["Authorization"].removeprefix("Bearer ")


def _dead_socket() -> WebSocket:
    """A connected socket whose transport fails on send."""

    async def receive():
        return {"type": "websocket.disconnect", "code": 1006}

    async def send(message):
        raise OSError("Connection reset by peer")

    scope = {"type": "websocket", "path": "/api/chat/ws", "headers": []}
    websocket = WebSocket(scope, receive, send)
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


class TestConnectionManager:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_room_members_only(self):
        manager = ConnectionManager()
        a, b, outsider = AsyncMock(), AsyncMock(), AsyncMock()
        await manager.join("c1", a)
        await manager.join("c1", b)
        await manager.join("c2", outsider)

        delivered = await manager.broadcast("c1", {"event": "newMessage"})

        assert delivered == 2
        a.send_json.assert_awaited_once_with({"event": "newMessage"})
        outsider.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_socket_is_dropped(self):
        manager = ConnectionManager()
        alive, dead = AsyncMock(), _dead_socket()
        await manager.join("c1", alive)
        await manager.join("c1", dead)

        assert await manager.broadcast("c1", {"event": "x"}) == 1
        assert manager.members("c1") == {alive}

    @pytest.mark.asyncio
    async def test_disconnected_peer_does_not_stop_the_room(self):
        manager = ConnectionManager()
        gone, alive = AsyncMock(), AsyncMock()
        gone.send_json.side_effect = WebSocketDisconnect(code=1006)
        await manager.join("c1", gone)
        await manager.join("c1", alive)

        assert await manager.broadcast("c1", {"event": "x"}) == 1
        alive.send_json.assert_awaited_once_with({"event": "x"})
        assert manager.rooms_for(gone) == []

    @pytest.mark.asyncio
    async def test_disconnect_leaves_every_room(self):
        manager = ConnectionManager()
        ws = AsyncMock()
        await manager.join("c1", ws)
        await manager.join("c2", ws)

        await manager.disconnect(ws)

        assert manager.rooms_for(ws) == []
        assert manager.members("c1") == set()


def test_normalize_participants_includes_caller():
    assert normalize_participants(["b", "a", "b"], "c") == ["a", "b", "c"]
    assert normalize_participants(["a"], "a") == ["a"]


class TestConversationRoutes:
    def test_direct_conversation_is_reused(self, client, auth_headers):
        with patch(
            "ajira.routes.chat.find_direct_conversation", new_callable=AsyncMock
        ) as mock_find, patch(
            "ajira.routes.chat.create_conversation", new_callable=AsyncMock
        ) as mock_create:
            mock_find.return_value = CONVERSATION
            response = client.post(
                "/api/chat/conversations",
                json={"participant_ids": [OTHER_ID]},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["id"] == "conv-1"
        mock_create.assert_not_awaited()
        assert mock_find.call_args.args[1] == sorted([CUSTOMER_ID, OTHER_ID])

    def test_group_needs_name(self, client, auth_headers):
        response = client.post(
            "/api/chat/conversations",
            json={"participant_ids": [OTHER_ID, "usr_3"], "is_group": True},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_conversation_with_only_self(self, client, auth_headers):
        response = client.post(
            "/api/chat/conversations",
            json={"participant_ids": [CUSTOMER_ID]},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_non_participant_cannot_read(self, client, vendor_headers):
        with patch(
            "ajira.routes.chat.get_conversation", new_callable=AsyncMock, return_value=CONVERSATION
        ):
            response = client.get("/api/chat/conversations/conv-1/messages", headers=vendor_headers)
        assert response.status_code == 403

    def test_send_message_broadcasts(self, client, auth_headers):
        message = {"id": "m1", "conversation_id": "conv-1", "sender_id": CUSTOMER_ID,
                   "text": "Habari"}
        with patch(
            "ajira.routes.chat.get_conversation", new_callable=AsyncMock, return_value=CONVERSATION
        ), patch(
            "ajira.routes.chat.save_message", new_callable=AsyncMock, return_value=message
        ), patch("ajira.routes.chat.manager.broadcast", new_callable=AsyncMock) as mock_broadcast:
            response = client.post(
                "/api/chat/conversations/conv-1/messages",
                json={"text": "Habari"},
                headers=auth_headers,
            )

        assert response.status_code == 201
        mock_broadcast.assert_awaited_once_with(
            "conv-1", {"event": "newMessage", "message": message}
        )

    def test_send_message_survives_dead_peer(self, client, auth_headers):
        message = {"id": "m2", "conversation_id": "conv-1", "sender_id": CUSTOMER_ID,
                   "text": "Upo?"}
        room = ConnectionManager()
        asyncio.run(room.join("conv-1", _dead_socket()))
        with patch(
            "ajira.routes.chat.get_conversation", new_callable=AsyncMock, return_value=CONVERSATION
        ), patch(
            "ajira.routes.chat.save_message", new_callable=AsyncMock, return_value=message
        ), patch("ajira.routes.chat.manager", room):
            response = client.post(
                "/api/chat/conversations/conv-1/messages",
                json={"text": "Upo?"},
                headers=auth_headers,
            )

        assert response.status_code == 201
        assert room.members("conv-1") == set()


class TestChatSocket:
    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/chat/ws"):
                pass
        assert exc_info.value.code == 4401

    def test_join_then_send_relays_message(self, client, auth_headers):
        message = {"id": "m1", "conversation_id": "conv-1", "sender_id": CUSTOMER_ID,
                   "text": "Uko wapi?"}
        with patch(
            "ajira.routes.chat.get_conversation", new_callable=AsyncMock, return_value=CONVERSATION
        ), patch("ajira.routes.chat.save_message", new_callable=AsyncMock, return_value=message):
            url = f"/api/chat/ws?token={_token(auth_headers)}"
            with client.websocket_connect(url) as ws:
                ws.send_json({"event": "joinConversation", "conversation_id": "conv-1"})
                ws.send_json(
                    {"event": "sendMessage", "conversation_id": "conv-1", "text": "Uko wapi?"}
                )
                assert ws.receive_json() == {"event": "newMessage", "message": message}

    def test_unknown_event_reports_error(self, client, auth_headers):
        url = f"/api/chat/ws?token={_token(auth_headers)}"
        with client.websocket_connect(url) as ws:
            ws.send_json({"event": "typing", "conversation_id": "conv-1"})
            reply = ws.receive_json()
        assert reply["event"] == "error"

    def test_join_requires_membership(self, client, vendor_headers):
        with patch(
            "ajira.routes.chat.get_conversation", new_callable=AsyncMock, return_value=CONVERSATION
        ):
            url = f"/api/chat/ws?token={_token(vendor_headers)}"
            with client.websocket_connect(url) as ws:
                ws.send_json({"event": "joinConversation", "conversation_id": "conv-1"})
                reply = ws.receive_json()
        assert reply == {"event": "error", "message": "Not a participant in this conversation"}
