"""In-process WebSocket relay for chat rooms.

One room per conversation id. The manager only tracks sockets; persistence
and membership checks happen in the chat routes before anything reaches it.
"""

import asyncio
from collections import defaultdict

from fastapi import WebSocket, WebSocketDisconnect

from ..logging_config import get_logger

logger = get_logger("ajira.chat.manager")


class ConnectionManager:
    """Maps conversation ids to the sockets currently joined to them."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, conversation_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms[conversation_id].add(websocket)

    async def leave(self, conversation_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            members = self._rooms.get(conversation_id)
            if members is None:
                return
            members.discard(websocket)
            if not members:
                del self._rooms[conversation_id]

    async def disconnect(self, websocket: WebSocket) -> None:
        """Drop a socket from every room it joined."""
        async with self._lock:
            for conversation_id in list(self._rooms):
                members = self._rooms[conversation_id]
                members.discard(websocket)
                if not members:
                    del self._rooms[conversation_id]

    def members(self, conversation_id: str) -> set[WebSocket]:
        return set(self._rooms.get(conversation_id, ()))

    def rooms_for(self, websocket: WebSocket) -> list[str]:
        return [cid for cid, members in self._rooms.items() if websocket in members]

    async def broadcast(self, conversation_id: str, payload: dict) -> int:
        """Send ``payload`` to every socket in the room. Returns the delivery count."""
        delivered = 0
        stale: list[WebSocket] = []
        for websocket in self.members(conversation_id):
            try:
                await websocket.send_json(payload)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(f"Dropping stale socket in {conversation_id}: {e}")
                stale.append(websocket)
        for websocket in stale:
            await self.disconnect(websocket)
        return delivered


manager = ConnectionManager()
